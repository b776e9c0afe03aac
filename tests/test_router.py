"""Tests for the Conversation turn loop."""

from __future__ import annotations

import asyncio

import pytest

from helpers import FakeProvider, completion, tool_call
from orchestrator.errors import ProviderResponseError, TurnInProgressError
from orchestrator.models import Message, ProviderConfig, ToolInvocation, ToolResult
from orchestrator.router import Conversation


class RecordingDispatcher:
    def __init__(self, output: str = "tool output"):
        self.output = output
        self.invocations: list[ToolInvocation] = []

    async def dispatch(self, invocation: ToolInvocation) -> ToolResult:
        self.invocations.append(invocation)
        return ToolResult(name=invocation.name, ok=True, output=self.output)


@pytest.mark.asyncio
async def test_single_tool_round_then_answer(ctx, kv):
    provider = FakeProvider([
        completion(None, tool_calls=[tool_call("read_file", '{"path": "src/main.py"}')], tokens=30),
        completion("The file has three lines.", tokens=12),
    ])
    dispatcher = RecordingDispatcher()
    conv = Conversation(ctx, provider, dispatcher)

    result = await conv.submit("What is in main.py?")

    assert result.ok
    assert result.reply == "The file has three lines."
    assert len(provider.calls) == 2
    assert [i.name for i in dispatcher.invocations] == ["read_file"]

    usage = await kv.get("analytics:token_usage")
    assert len(usage) == 1
    assert usage[0]["tokens"] == 42
    assert usage[0]["model_id"] == "test-model"
    assert result.usage.tokens == 42


@pytest.mark.asyncio
async def test_second_round_carries_assistant_request_and_tool_result(ctx):
    provider = FakeProvider([
        completion(None, tool_calls=[tool_call("read_file", '{"path": "src/main.py"}', "call_7")]),
        completion("done"),
    ])
    conv = Conversation(ctx, provider)

    await conv.submit("read it")

    resent = provider.calls[1]["messages"]
    assert [m["role"] for m in resent] == ["system", "user", "assistant", "tool"]
    assert resent[2]["tool_calls"][0]["id"] == "call_7"
    assert resent[3] == {"role": "tool", "content": "a\nb\nc", "tool_call_id": "call_7"}
    assert provider.calls[0]["tools"] is not None


@pytest.mark.asyncio
async def test_each_invocation_gets_its_own_round_trip(ctx):
    provider = FakeProvider([
        completion("working", tool_calls=[
            tool_call("get_summary", '{"path": "a"}', "c1"),
            tool_call("get_summary", '{"path": "b"}', "c2"),
        ], tokens=1),
        completion("still thinking", tokens=2),   # answer after the first tool; the loop keeps going
        completion("final", tokens=3),
    ])
    dispatcher = RecordingDispatcher()
    conv = Conversation(ctx, provider, dispatcher)

    result = await conv.submit("summaries please")

    assert result.reply == "final"
    assert len(provider.calls) == 3
    assert [i.id for i in dispatcher.invocations] == ["c1", "c2"]

    third = provider.calls[2]["messages"]
    tool_ids = [m["tool_call_id"] for m in third if m["role"] == "tool"]
    assert tool_ids == ["c1", "c2"]
    requests = [m for m in third if m["role"] == "assistant" and m.get("tool_calls")]
    assert [r["tool_calls"][0]["id"] for r in requests] == ["c1", "c2"]
    assert requests[0]["content"] == "working"
    assert requests[1]["content"] == ""
    assert result.usage.tokens == 6


@pytest.mark.asyncio
async def test_provider_failure_yields_single_error_message(ctx, kv):
    provider = FakeProvider([ProviderResponseError("upstream exploded")])
    dispatcher = RecordingDispatcher()
    conv = Conversation(ctx, provider, dispatcher)

    result = await conv.submit("hello")

    assert not result.ok
    assert result.reply.startswith("Error:")
    assert "upstream exploded" in result.reply
    assert dispatcher.invocations == []
    assistant = [m for m in result.messages if m.role == "assistant"]
    assert len(assistant) == 1
    assert await kv.get("analytics:token_usage") is None


@pytest.mark.asyncio
async def test_unrecognized_payload_settles_with_error(ctx):
    conv = Conversation(ctx, FakeProvider([{"weird": True}]))

    result = await conv.submit("hello")

    assert result.reply == "Error: unrecognized response shape"


@pytest.mark.asyncio
async def test_tool_failure_does_not_end_the_turn(ctx):
    provider = FakeProvider([
        completion(None, tool_calls=[tool_call("read_file", '{"path": "missing.txt"}')]),
        completion("That file does not exist."),
    ])
    conv = Conversation(ctx, provider)

    result = await conv.submit("open missing.txt")

    assert result.ok
    tool_msg = provider.calls[1]["messages"][-1]
    assert tool_msg["role"] == "tool"
    assert tool_msg["content"].startswith("Error:")


@pytest.mark.asyncio
async def test_round_limit(ctx):
    looping = completion(None, tool_calls=[tool_call("get_summary", '{"path": "x"}')])
    provider = FakeProvider([looping] * 5)
    dispatcher = RecordingDispatcher()
    conv = Conversation(ctx, provider, dispatcher, max_rounds=3)

    result = await conv.submit("loop forever")

    assert not result.ok
    assert len(provider.calls) == 3
    # the third request is refused before it runs, since no round is left to report it
    assert len(dispatcher.invocations) == 2
    assert "exceeded 3" in result.reply


@pytest.mark.asyncio
async def test_history_persisted_and_reused(ctx, kv):
    provider = FakeProvider([completion("first answer"), completion("second answer")])
    conv = Conversation(ctx, provider)

    await conv.submit("one")
    await conv.submit("two")

    second = provider.calls[1]["messages"]
    assert [m["content"] for m in second] == [ctx.system_prompt, "one", "first answer", "two"]

    stored = await kv.get(ctx.history_key)
    assert [m["content"] for m in stored] == ["one", "first answer", "two", "second answer"]


@pytest.mark.asyncio
async def test_load_history_replaces_in_memory_history(ctx, kv):
    await kv.set(ctx.history_key, [
        {"role": "system", "content": "old system prompt"},
        {"role": "user", "content": "earlier"},
        {"role": "assistant", "content": "reply"},
    ])
    conv = Conversation(ctx, FakeProvider())

    history = await conv.load_history()

    assert [m.content for m in history] == ["earlier", "reply"]
    assert ctx.history == history


@pytest.mark.asyncio
async def test_load_history_accepts_wire_shaped_tool_calls_and_skips_bad_entries(ctx, kv):
    await kv.set(ctx.history_key, [
        {"role": "user", "content": "read it"},
        {
            "role": "assistant",
            "content": None,
            "tool_calls": [{"id": "call_1", "type": "function", "function": {"name": "read_file", "arguments": "{\"path\": \"a\"}"}}],
        },
        {"role": "tool", "content": "text", "tool_call_id": 7},
        {"role": "tool", "content": "text", "tool_call_id": "call_1"},
        "not a message",
        {"role": "assistant", "content": "done"},
    ])
    conv = Conversation(ctx, FakeProvider())

    history = await conv.load_history()

    assert [m.role for m in history] == ["user", "assistant", "tool", "assistant"]
    assert history[1].tool_calls[0].name == "read_file"
    assert history[1].tool_calls[0].raw_arguments == '{"path": "a"}'
    assert history[2].tool_call_id == "call_1"


@pytest.mark.asyncio
async def test_selected_custom_provider_receives_the_turn(ctx):
    default = FakeProvider()
    custom = FakeProvider([completion("from acme"), completion("again")])
    built = []

    def factory(cfg):
        built.append(cfg.id)
        return custom

    ctx.add_provider(ProviderConfig(id="acme", label="Acme", url="http://acme.test/chat", api_key="k"))
    ctx.provider_id = "acme"
    conv = Conversation(ctx, default, provider_factory=factory)

    first = await conv.submit("hello")
    await conv.submit("hello again")

    assert first.reply == "from acme"
    assert default.calls == []
    assert len(custom.calls) == 2
    assert built == ["acme"]


@pytest.mark.asyncio
async def test_summarize_tool_uses_the_selected_provider(ctx, kv):
    default = FakeProvider()
    custom = FakeProvider([
        completion(None, tool_calls=[tool_call("summarize_file", '{"path": "src/main.py"}')]),
        completion("- three letters"),
        completion("Summarized."),
    ])
    ctx.add_provider(ProviderConfig(id="acme", label="Acme", url="http://acme.test/chat", api_key="k"))
    ctx.provider_id = "acme"
    conv = Conversation(ctx, default, provider_factory=lambda cfg: custom)

    result = await conv.submit("summarize main.py")

    assert result.reply == "Summarized."
    assert len(custom.calls) == 3
    assert default.calls == []
    assert await kv.get("summary:src/main.py") == "- three letters"


@pytest.mark.asyncio
async def test_unknown_provider_selection_is_an_error_turn(ctx):
    ctx.provider_id = "ghost"
    default = FakeProvider()
    conv = Conversation(ctx, default)

    result = await conv.submit("hello")

    assert not result.ok
    assert result.reply == "Error: Provider not found"
    assert default.calls == []


@pytest.mark.asyncio
async def test_clear(ctx, kv):
    conv = Conversation(ctx, FakeProvider([completion("x")]))
    await conv.submit("hi")

    await conv.clear()

    assert ctx.history == []
    assert await kv.get(ctx.history_key) == []


@pytest.mark.asyncio
async def test_persona_system_prompt_is_sent(ctx):
    ctx.persona_id = "architect"
    provider = FakeProvider([completion("ok")])

    await Conversation(ctx, provider).submit("plan it")

    system = provider.calls[0]["messages"][0]
    assert system["role"] == "system"
    assert "software architect" in system["content"]


@pytest.mark.asyncio
async def test_blank_input_is_ignored(ctx):
    provider = FakeProvider()

    result = await Conversation(ctx, provider).submit("   ")

    assert not result.ok
    assert provider.calls == []
    assert ctx.history == []


@pytest.mark.asyncio
async def test_segmented_reply_is_flattened(ctx):
    provider = FakeProvider([completion([{"type": "text", "text": "part one"}, {"type": "text", "text": "part two"}])])

    result = await Conversation(ctx, provider).submit("hi")

    assert result.reply == "part one\npart two"
    assert ctx.history[-1] == Message(role="assistant", content="part one\npart two")


@pytest.mark.asyncio
async def test_concurrent_submit_is_rejected(ctx):
    gate = asyncio.Event()

    class SlowProvider(FakeProvider):
        async def chat(self, messages, *, model, tools=None):
            await gate.wait()
            return completion("slow")

    conv = Conversation(ctx, SlowProvider())
    first = asyncio.create_task(conv.submit("one"))
    await asyncio.sleep(0)

    assert conv.busy
    with pytest.raises(TurnInProgressError):
        await conv.submit("two")

    gate.set()
    assert (await first).reply == "slow"
    assert not conv.busy


@pytest.mark.asyncio
async def test_analytics_failure_is_ignored(ctx):
    class FlakyUsageStore:
        def __init__(self):
            self.data = {}

        async def get(self, key):
            if key == "analytics:token_usage":
                raise OSError("kv offline")
            return self.data.get(key)

        async def set(self, key, value):
            self.data[key] = value

        async def list(self, prefix=""):
            return [k for k in self.data if k.startswith(prefix)]

    ctx.kv = FlakyUsageStore()
    result = await Conversation(ctx, FakeProvider([completion("fine")])).submit("hi")

    assert result.ok
    assert result.reply == "fine"
