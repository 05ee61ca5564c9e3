from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from tests.fakes import (
    FAST_LONG_FORM,
    FAST_REPLY,
    SHORT_CEILING,
    FakeEngine,
    done,
    eventually,
    frame,
    message,
    silent,
    stream,
)
from turnbridge.errors import (
    EngineConnectionError,
    NotConnectedError,
    RemoteError,
    SendFailure,
    TurnInProgressError,
)
from turnbridge.protocol import CompletionReason, SignalKind
from turnbridge.protocol.adapter import PARSE_ERROR_MESSAGE


def _collect(adapter: Any, kind: SignalKind) -> list[Any]:
    seen: list[Any] = []
    adapter.on(kind, seen.append)
    return seen


@pytest.mark.asyncio
async def test_connect_sends_initialize_frame_to_engine_url() -> None:
    engine = FakeEngine()
    adapter = engine.adapter(deployment_type="staging")

    await adapter.connect()
    try:
        assert adapter.connected
        assert engine.urls == ["wss://engine.test/w1/f1?api_key=secret"]
        initialize = engine.transports[0].sent[0]
        assert initialize["action"] == "initialize"
        assert json.loads(initialize["data"]) == {"streaming": True, "deploymentType": "staging"}
    finally:
        await adapter.disconnect()


@pytest.mark.asyncio
async def test_stream_fragments_then_done_complete_as_one_turn() -> None:
    engine = FakeEngine(replies=lambda _text: [stream("He"), stream("llo"), done()])
    adapter = engine.adapter()
    fragments = _collect(adapter, SignalKind.STREAM)
    completed = _collect(adapter, SignalKind.COMPLETE)
    finished = _collect(adapter, SignalKind.DONE)

    async with adapter:
        result = await adapter.exchange("hello", FAST_REPLY)
        await eventually(lambda: bool(finished))

    assert result.text == "Hello"
    assert result.reason is CompletionReason.TERMINAL
    assert fragments == ["He", "llo"]
    assert completed == ["Hello"]
    assert engine.transports[0].sent[1] == {"action": "message", "data": {"message": "hello"}}


@pytest.mark.asyncio
async def test_full_message_replaces_streamed_fragments() -> None:
    engine = FakeEngine(replies=lambda _text: [stream("draft"), message("Final answer")])
    adapter = engine.adapter()
    messages = _collect(adapter, SignalKind.MESSAGE)

    async with adapter:
        result = await adapter.exchange("hi", FAST_REPLY)

    assert result.text == "Final answer"
    assert messages == ["Final answer"]


@pytest.mark.asyncio
async def test_consecutive_turns_do_not_leak_text() -> None:
    engine = FakeEngine(replies=lambda text: [stream(text.upper()), done()])
    adapter = engine.adapter()

    async with adapter:
        first = await adapter.exchange("one", FAST_REPLY)
        second = await adapter.exchange("two", FAST_REPLY)

    assert first.text == "ONE"
    assert second.text == "TWO"


@pytest.mark.asyncio
async def test_malformed_payload_emits_error_and_keeps_connection() -> None:
    engine = FakeEngine(replies=lambda _text: [b"\xff\xfe", "not json", message("still here")])
    adapter = engine.adapter()
    errors = _collect(adapter, SignalKind.ERROR)

    async with adapter:
        result = await adapter.exchange("hi", FAST_REPLY)
        assert adapter.connected

    assert errors == [PARSE_ERROR_MESSAGE, PARSE_ERROR_MESSAGE]
    assert result.text == "still here"


@pytest.mark.asyncio
async def test_error_frame_is_passed_through_while_a_reply_continues() -> None:
    engine = FakeEngine(replies=lambda _text: [frame("error", {"message": "tool timeout"}), message("recovered")])
    adapter = engine.adapter()
    errors = _collect(adapter, SignalKind.ERROR)

    async with adapter:
        result = await adapter.exchange("hi", FAST_REPLY)

    assert errors == ["tool timeout"]
    assert result.text == "recovered"


@pytest.mark.asyncio
async def test_error_frame_without_reply_runs_to_the_ceiling() -> None:
    engine = FakeEngine(replies=lambda _text: [frame("error", {"message": "flow crashed"})])
    adapter = engine.adapter()

    async with adapter:
        result = await adapter.exchange("hi", SHORT_CEILING)

    assert result.timed_out
    assert result.text == ""


@pytest.mark.asyncio
async def test_error_frame_fails_a_long_form_turn() -> None:
    engine = FakeEngine(replies=lambda _text: [frame("error", {"message": "flow crashed"})])
    adapter = engine.adapter()
    errors = _collect(adapter, SignalKind.ERROR)

    async with adapter:
        with pytest.raises(RemoteError, match="flow crashed"):
            await adapter.exchange("hi", FAST_LONG_FORM)
        await eventually(lambda: bool(errors))
        assert not adapter.turn_open

    assert errors == ["flow crashed"]


@pytest.mark.asyncio
async def test_function_call_and_unknown_frames_are_forwarded() -> None:
    engine = FakeEngine(
        replies=lambda _text: [
            frame("function_call", {"function": {"name": "lookup"}}),
            frame("typing", {"on": True}),
            message("done thinking"),
        ]
    )
    adapter = engine.adapter()
    calls = _collect(adapter, SignalKind.FUNCTION_CALL)
    unknown = _collect(adapter, SignalKind.UNKNOWN)

    async with adapter:
        result = await adapter.exchange("hi", FAST_REPLY)

    assert calls == [{"name": "lookup"}]
    assert unknown == [{"action": "typing", "data": {"on": True}}]
    assert result.text == "done thinking"


@pytest.mark.asyncio
async def test_initialize_ack_marks_adapter_initialized() -> None:
    engine = FakeEngine(greeting=[frame("initialized")])
    adapter = engine.adapter()

    async with adapter:
        await eventually(lambda: adapter.initialized)


@pytest.mark.asyncio
async def test_silent_engine_hits_the_ceiling() -> None:
    engine = FakeEngine(replies=silent)
    adapter = engine.adapter()

    async with adapter:
        result = await adapter.exchange("anyone?", SHORT_CEILING)

    assert result.text == ""
    assert result.timed_out


@pytest.mark.asyncio
async def test_long_form_turn_completes_after_silence() -> None:
    engine = FakeEngine(replies=lambda _text: [stream("Once "), stream("upon "), stream("a time.")])
    adapter = engine.adapter()
    completed = _collect(adapter, SignalKind.COMPLETE)

    async with adapter:
        result = await adapter.exchange("tell me a story", FAST_LONG_FORM)
        await eventually(lambda: bool(completed))

    assert result.text == "Once upon a time."
    assert result.reason is CompletionReason.QUIET
    assert completed == ["Once upon a time."]


@pytest.mark.asyncio
async def test_remote_hangup_resolves_pending_turn_with_partial_text() -> None:
    engine = FakeEngine(replies=lambda _text: [stream("partial"), None])
    adapter = engine.adapter()
    disconnected = _collect(adapter, SignalKind.DISCONNECTED)

    await adapter.connect()
    result = await adapter.exchange("hi", FAST_LONG_FORM)

    assert result.text == "partial"
    assert result.reason is CompletionReason.CLOSED
    assert not adapter.connected
    assert disconnected == [None]
    await adapter.disconnect()
    assert disconnected == [None]


@pytest.mark.asyncio
async def test_disconnect_twice_is_the_same_as_once() -> None:
    engine = FakeEngine()
    adapter = engine.adapter()
    disconnected = _collect(adapter, SignalKind.DISCONNECTED)

    await adapter.connect()
    await adapter.disconnect()
    await adapter.disconnect()

    assert disconnected == [None]
    assert engine.transports[0].closed
    assert not adapter.connected


@pytest.mark.asyncio
async def test_send_without_connection_raises() -> None:
    adapter = FakeEngine().adapter()

    with pytest.raises(NotConnectedError):
        await adapter.send("hello")
    with pytest.raises(NotConnectedError):
        await adapter.exchange("hello", FAST_REPLY)


@pytest.mark.asyncio
async def test_second_send_while_turn_open_is_rejected() -> None:
    engine = FakeEngine(replies=silent)
    adapter = engine.adapter()

    async with adapter:
        await adapter.send("one")
        assert adapter.turn_open
        with pytest.raises(TurnInProgressError):
            await adapter.send("two")

    assert [payload["action"] for payload in engine.transports[0].sent] == ["initialize", "message"]


@pytest.mark.asyncio
async def test_rejected_exchange_keeps_the_open_turn() -> None:
    engine = FakeEngine(replies=silent)
    adapter = engine.adapter()

    async with adapter:
        await adapter.send("one")
        with pytest.raises(TurnInProgressError):
            await adapter.exchange("two", FAST_REPLY)
        assert adapter.turn_open
        with pytest.raises(TurnInProgressError):
            await adapter.send("three")

    assert [payload["action"] for payload in engine.transports[0].sent] == ["initialize", "message"]


@pytest.mark.asyncio
async def test_second_wait_while_one_is_pending_is_rejected() -> None:
    engine = FakeEngine(replies=silent)
    adapter = engine.adapter()

    async with adapter:
        pending = asyncio.create_task(adapter.exchange("one", SHORT_CEILING))
        await asyncio.sleep(0)
        with pytest.raises(TurnInProgressError):
            adapter.watch(FAST_REPLY)
        assert (await pending).timed_out


@pytest.mark.asyncio
async def test_transport_send_failure_raises_send_failure() -> None:
    engine = FakeEngine()
    adapter = engine.adapter()

    async with adapter:
        engine.transports[0].fail_sends = True
        with pytest.raises(SendFailure):
            await adapter.exchange("hi", FAST_REPLY)
        assert not adapter.turn_open


@pytest.mark.asyncio
async def test_connect_failure_raises_connection_error() -> None:
    adapter = FakeEngine(fail_connect=True).adapter()

    with pytest.raises(EngineConnectionError) as exc_info:
        await adapter.connect()

    assert isinstance(exc_info.value, ConnectionError)
    assert not adapter.connected


@pytest.mark.asyncio
async def test_failing_signal_handler_does_not_break_the_turn() -> None:
    engine = FakeEngine(replies=lambda _text: [stream("a"), done()])
    adapter = engine.adapter()

    def explode(_payload: Any) -> None:
        raise RuntimeError("handler bug")

    adapter.on(SignalKind.STREAM, explode)

    async with adapter:
        result = await adapter.exchange("hi", FAST_REPLY)

    assert result.text == "a"
