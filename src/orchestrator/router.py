"""
src/orchestrator/router.py

Conversation: runs one user turn as a tool-calling loop, feeds tool results
back to the model, accumulates usage, and persists history and analytics.

Turn states: Idle -> Sending -> (ToolRound)* -> Settled. A turn always ends
with exactly one assistant message: the model's reply, or "Error: ...".
"""


import logging
import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

import config
from context.loader import IdeContext
from orchestrator.dispatcher import ToolDispatcher, get_tool_specs
from orchestrator.errors import AssistantError, MaxRoundsExceeded, TurnInProgressError
from orchestrator.llm_openai import ActiveProvider, ChatProvider, CustomHttpProvider
from orchestrator.models import (
    AuditEntry,
    CanonicalResponse,
    Message,
    ProviderConfig,
    ToolInvocation,
    TurnResult,
    UsageRecord,
)
from orchestrator.normalizer import flatten_content, message_from_wire, normalize_response


LOGGER = logging.getLogger(__name__)

_UNSET: Any = object()


class Conversation:
    """
    One chat thread against one IdeContext.

    The context owns the history; this class is the only writer. A second
    submit() while a turn is running raises TurnInProgressError.
    """

    def __init__(
            self,
            ctx: IdeContext,
            provider: ChatProvider,
            dispatcher: Optional[ToolDispatcher] = None,
            *,
            max_rounds: Optional[int] = _UNSET,
            provider_factory: Callable[[ProviderConfig], ChatProvider] = CustomHttpProvider,
    ):

        self.ctx = ctx
        self.provider = ActiveProvider(ctx, provider, factory=provider_factory)
        self.dispatcher = dispatcher or ToolDispatcher(ctx, self.provider)
        self.max_rounds = config.MAX_TOOL_ROUNDS if max_rounds is _UNSET else max_rounds
        self._busy = False

    @property
    def busy(self) -> bool:

        return self._busy

    # -------- Persistence ------------------------------------------------------
    async def load_history(self) -> List[Message]:
        """Replace in-memory history with the stored transcript (if any)."""

        try:
            stored = await self.ctx.kv.get(self.ctx.history_key)
        except Exception:
            LOGGER.warning("Failed to restore chat history", exc_info=True)
            return self.ctx.history

        if isinstance(stored, list):
            messages = []
            for entry in stored:
                if not isinstance(entry, dict) or entry.get("role") == "system":
                    continue
                try:
                    messages.append(message_from_wire(entry))
                except ValidationError as e:
                    LOGGER.warning("Skipping unreadable history entry: %s", e)
            self.ctx.replace_history(messages)
            LOGGER.info("Restored %d messages of chat history", len(messages))

        return self.ctx.history

    async def clear(self) -> None:

        self.ctx.replace_history([])
        await self.ctx.kv.set(self.ctx.history_key, [])

    async def _persist_history(self) -> None:

        payload = [m.model_dump(mode="json") for m in self.ctx.history]
        await self.ctx.kv.set(self.ctx.history_key, payload)

    async def _track_usage(self, record: UsageRecord) -> None:
        """Append to the usage log. Analytics is best-effort: failures are logged only."""

        try:
            existing = await self.ctx.kv.get(config.USAGE_KEY) or []
            await self.ctx.kv.set(config.USAGE_KEY, [*existing, record.model_dump(mode="json")])
        except Exception:
            LOGGER.warning("Failed to track usage", exc_info=True)

    # -------- Provider round ---------------------------------------------------
    def _build_messages(self, turn: List[Message]) -> List[Dict[str, Any]]:

        system = Message(role="system", content=self.ctx.system_prompt)

        return [m.to_wire() for m in [system, *self.ctx.history, *turn]]

    async def _send(self, turn: List[Message], rounds: int) -> CanonicalResponse:

        if self.max_rounds and rounds > self.max_rounds:
            raise MaxRoundsExceeded(self.max_rounds)

        raw = await self.provider.chat(
            self._build_messages(turn),
            model=self.ctx.model_id,
            tools=get_tool_specs(),
        )
        response = normalize_response(raw)
        LOGGER.debug(
            "Round %d: %d tool call(s), %d tokens",
            rounds, len(response.message.tool_calls), response.tokens,
        )

        return response

    # -------- Turn -------------------------------------------------------------
    async def submit(self, text: str) -> TurnResult:
        """
        Entry point: run one user turn to completion and return a tidy result.

        Provider and normalisation failures do not raise; they settle the turn
        with a single "Error: ..." assistant message.
        """

        text = (text or "").strip()

        if not text:
            return TurnResult(reply="", ok=False, messages=[], audit=[])
        if self._busy:
            raise TurnInProgressError("A message is already being processed")

        self._busy = True
        try:
            return await self._run_turn(text)
        finally:
            self._busy = False

    async def _run_turn(self, text: str) -> TurnResult:

        started = time.monotonic()
        turn: List[Message] = [Message(role="user", content=text)]
        audit: List[AuditEntry] = []
        total_tokens = 0
        rounds = 0

        try:
            rounds += 1
            response = await self._send(turn, rounds)
            total_tokens += response.tokens
            audit.append(AuditEntry(step=f"model_round_{rounds}", ok=True, detail=f"{len(response.message.tool_calls)} tool call(s)"))

            # Each invocation gets its own round trip; the latest response decides whether to loop again
            while response.message.tool_calls:
                requesting = response.message
                for idx, invocation in enumerate(requesting.tool_calls):
                    # No tool runs unless its result can still be sent back
                    if self.max_rounds and rounds + 1 > self.max_rounds:
                        raise MaxRoundsExceeded(self.max_rounds)
                    turn.extend(await self._tool_step(requesting, invocation, idx, audit))
                    rounds += 1
                    response = await self._send(turn, rounds)
                    total_tokens += response.tokens
                    audit.append(AuditEntry(step=f"model_round_{rounds}", ok=True, detail=f"{len(response.message.tool_calls)} tool call(s)"))

        except AssistantError as e:
            return await self._settle_error(turn, audit, e)
        except Exception as e:
            LOGGER.exception("Unexpected failure while contacting the model")
            return await self._settle_error(turn, audit, e)

        reply = flatten_content(response.message.content)
        turn.append(Message(role="assistant", content=reply))
        audit.append(AuditEntry(step="settled", ok=True, detail=f"{rounds} round(s), {total_tokens} tokens"))

        self.ctx.append_history(turn)
        try:
            await self._persist_history()
        except Exception:
            LOGGER.warning("Failed to persist chat history", exc_info=True)

        record = UsageRecord(
            model_id=self.ctx.model_id,
            tokens=total_tokens,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        await self._track_usage(record)

        return TurnResult(reply=reply, ok=True, messages=turn, audit=audit, usage=record)

    async def _tool_step(self, requesting: Message, invocation: ToolInvocation, idx: int, audit: List[AuditEntry]) -> List[Message]:
        """
        Dispatch one invocation and return the assistant/tool message pair to append.

        The assistant message is narrowed to this single invocation so every
        resend is a well-formed transcript (each tool_call answered).
        """

        audit.append(AuditEntry(step="tool_call", ok=True, detail=f"Calling {invocation.name}", tool_call=invocation))
        result = await self.dispatcher.dispatch(invocation)
        audit.append(AuditEntry(
            step="tool_result",
            ok=result.ok,
            detail=("ok" if result.ok else result.error or "error"),
            tool_call=invocation,
            tool_result=result,
        ))

        assistant = requesting.model_copy(update={
            "content": requesting.content if idx == 0 else "",
            "tool_calls": [invocation],
        })
        tool_msg = Message(role="tool", content=result.as_content(), tool_call_id=invocation.id)

        return [assistant, tool_msg]

    async def _settle_error(self, turn: List[Message], audit: List[AuditEntry], error: Exception) -> TurnResult:

        LOGGER.warning("Turn failed: %s", error)
        reply = "Error: " + (str(error) or "Unknown issue contacting the model.")
        turn.append(Message(role="assistant", content=reply))
        audit.append(AuditEntry(step="error", ok=False, detail=str(error) or type(error).__name__))

        self.ctx.append_history(turn)
        try:
            await self._persist_history()
        except Exception:
            LOGGER.warning("Failed to persist chat history", exc_info=True)

        return TurnResult(reply=reply, ok=False, messages=turn, audit=audit)

