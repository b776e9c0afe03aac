"""Fakes and payload builders shared by the test modules."""

from __future__ import annotations

import copy
from typing import Any, Iterable


class FakeProvider:
    """Scripted ChatProvider: returns (or raises) queued payloads in order."""

    def __init__(self, responses: Iterable[Any] = ()):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def queue(self, *responses: Any) -> "FakeProvider":
        self.responses.extend(responses)
        return self

    async def chat(self, messages, *, model, tools=None):
        self.calls.append({"messages": copy.deepcopy(messages), "model": model, "tools": tools})
        if not self.responses:
            raise AssertionError("FakeProvider ran out of scripted responses")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def completion(content: Any = "", *, tool_calls: list[dict] | None = None, tokens: int | None = None) -> dict:
    """Chat-completions shaped payload."""

    message: dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    payload: dict[str, Any] = {"choices": [{"index": 0, "message": message}]}
    if tokens is not None:
        payload["usage"] = {"total_tokens": tokens}
    return payload


def tool_call(name: str, arguments: str, call_id: str = "call_1") -> dict:
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}
