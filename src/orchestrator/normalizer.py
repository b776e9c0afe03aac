"""
src/orchestrator/normalizer.py

Turn whatever a provider returned into a CanonicalResponse.

Providers wrap results differently (chat-completions "choices", responses-API
"output_text", bare "message"/"content" envelopes, ...). Each envelope has a
matcher below; MATCHERS is tried in order and the first matcher that returns
a result wins. The shapes are not mutually exclusive, so the order matters.
"""


import json
import logging
from typing import Any, Callable, List, Mapping, Optional

from orchestrator.errors import ProviderResponseError
from orchestrator.models import CanonicalResponse, Message, ToolInvocation, Usage


LOGGER = logging.getLogger(__name__)

Matcher = Callable[[Mapping[str, Any]], Optional[CanonicalResponse]]

_ROLES = {"system", "user", "assistant", "tool"}


# -------- Content ---------------------------------------------------------------
def _segment_text(segment: Any) -> str:

    if isinstance(segment, str):
        return segment
    if isinstance(segment, Mapping):
        for key in ("text", "content"):
            if isinstance(segment.get(key), str):
                return segment[key]

    return ""

def flatten_content(content: Any) -> str:
    """
    Reduce message content to one string.

    Strings pass through; segment lists are joined with newlines and trimmed;
    objects yield their `text`/`content` string, else pretty JSON.
    """

    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        return "\n".join(_segment_text(seg) for seg in content).strip()
    if isinstance(content, Mapping):
        for key in ("text", "content"):
            if isinstance(content.get(key), str):
                return content[key]
        try:
            return json.dumps(content, indent=2, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(content)

    return str(content)


# -------- Pieces ----------------------------------------------------------------
def _parse_usage(raw: Any) -> Optional[Usage]:

    if not isinstance(raw, Mapping):
        return None

    total = raw.get("total_tokens", raw.get("totalTokens"))

    try:
        if total is None:
            prompt = raw.get("prompt_tokens", raw.get("input_tokens")) or 0
            completion = raw.get("completion_tokens", raw.get("output_tokens")) or 0
            total = int(prompt) + int(completion)
        return Usage(total_tokens=int(total or 0))
    except (TypeError, ValueError):
        LOGGER.debug("Ignoring unparseable usage block: %r", raw)
        return None

def _parse_tool_calls(raw: Any) -> List[ToolInvocation]:
    """Accept OpenAI `{id, function: {name, arguments}}` entries or already-canonical ones."""

    out: List[ToolInvocation] = []

    if not isinstance(raw, list):
        return out

    for idx, tc in enumerate(raw):
        if not isinstance(tc, Mapping):
            continue
        fn = tc.get("function") if isinstance(tc.get("function"), Mapping) else tc
        name = fn.get("name")
        if not name:
            continue
        args = fn.get("arguments", tc.get("raw_arguments", "{}"))
        if args is None:
            args = "{}"
        if not isinstance(args, str):
            args = json.dumps(args, ensure_ascii=False)
        out.append(ToolInvocation(id=str(tc.get("id") or f"call_{idx}"), name=name, raw_arguments=args))

    return out

def message_from_wire(raw: Mapping[str, Any]) -> Message:
    """Build a Message from an OpenAI-style or canonical message dict."""

    role = raw.get("role")

    # Some gateways report "model" or omit the role entirely
    if role not in _ROLES:
        role = "assistant"

    return Message(
        role=role,
        content=raw.get("content", ""),
        tool_call_id=raw.get("tool_call_id"),
        tool_calls=_parse_tool_calls(raw.get("tool_calls")),
    )

def _assistant(content: Any) -> Message:

    return Message(role="assistant", content=content)


# -------- Matchers (priority order) ---------------------------------------------
def _match_error(data: Mapping[str, Any]) -> Optional[CanonicalResponse]:

    err = data.get("error")

    if not err:
        return None
    if isinstance(err, str):
        raise ProviderResponseError(err)
    if isinstance(err, Mapping) and err.get("message"):
        raise ProviderResponseError(str(err["message"]))

    raise ProviderResponseError(json.dumps(err, ensure_ascii=False, default=str))

def _match_choices(data: Mapping[str, Any]) -> Optional[CanonicalResponse]:

    choices = data.get("choices")

    if not isinstance(choices, list) or not choices:
        return None

    choice = choices[0] if isinstance(choices[0], Mapping) else {}
    raw_message = choice.get("message")

    if isinstance(raw_message, Mapping):
        message = message_from_wire(raw_message)
    else:
        message = _assistant(choice.get("text") or "")

    usage = data.get("usage") or choice.get("usage")

    return CanonicalResponse(message=message, usage=_parse_usage(usage))

def _match_output_text(data: Mapping[str, Any]) -> Optional[CanonicalResponse]:

    if not isinstance(data.get("output_text"), str):
        return None

    return CanonicalResponse(message=_assistant(data["output_text"]), usage=_parse_usage(data.get("usage")))

def _match_output(data: Mapping[str, Any]) -> Optional[CanonicalResponse]:

    if not isinstance(data.get("output"), str):
        return None

    return CanonicalResponse(message=_assistant(data["output"]), usage=_parse_usage(data.get("usage")))

def _match_message_string(data: Mapping[str, Any]) -> Optional[CanonicalResponse]:

    if not isinstance(data.get("message"), str):
        return None

    return CanonicalResponse(message=_assistant(data["message"]), usage=_parse_usage(data.get("usage")))

def _match_message_object(data: Mapping[str, Any]) -> Optional[CanonicalResponse]:

    message = data.get("message")

    if not isinstance(message, Mapping) or not (message.get("content") or message.get("tool_calls")):
        return None

    return CanonicalResponse(message=message_from_wire(message), usage=_parse_usage(data.get("usage")))

def _match_content(data: Mapping[str, Any]) -> Optional[CanonicalResponse]:

    if data.get("content") is None:
        return None

    return CanonicalResponse(message=_assistant(data["content"]), usage=_parse_usage(data.get("usage")))


MATCHERS: List[Matcher] = [
    _match_error,
    _match_choices,
    _match_output_text,
    _match_output,
    _match_message_string,
    _match_message_object,
    _match_content,
]


def normalize_response(data: Any) -> CanonicalResponse:
    """
    Map a raw provider payload onto CanonicalResponse.

    Accepts a dict, or any pydantic-style object exposing model_dump().

    Raises:
        ProviderResponseError: error payloads, empty payloads, unknown shapes.
    """

    if data is not None and not isinstance(data, Mapping) and hasattr(data, "model_dump"):
        data = data.model_dump()
    if not data:
        raise ProviderResponseError("empty provider response")
    if not isinstance(data, Mapping):
        raise ProviderResponseError("unrecognized response shape")

    for matcher in MATCHERS:
        result = matcher(data)
        if result is not None:
            return result

    raise ProviderResponseError("unrecognized response shape")
