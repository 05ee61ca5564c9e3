from __future__ import annotations

from typing import Any

import pytest

from turnbridge.protocol import AdapterSignals, SignalKind


@pytest.mark.asyncio
async def test_sync_and_async_handlers_receive_payload() -> None:
    signals = AdapterSignals()
    seen: list[tuple[str, Any]] = []

    async def async_handler(payload: Any) -> None:
        seen.append(("async", payload))

    signals.on(SignalKind.STREAM, lambda payload: seen.append(("sync", payload)))
    signals.on(SignalKind.STREAM, async_handler)

    await signals.emit(object(), SignalKind.STREAM, "chunk")

    assert sorted(seen) == [("async", "chunk"), ("sync", "chunk")]


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery() -> None:
    signals = AdapterSignals()
    seen: list[Any] = []
    unsubscribe = signals.on(SignalKind.DONE, seen.append)

    await signals.emit(object(), SignalKind.DONE, 1)
    unsubscribe()
    await signals.emit(object(), SignalKind.DONE, 2)

    assert seen == [1]
    assert not signals.has_receivers(SignalKind.DONE)


@pytest.mark.asyncio
async def test_hubs_are_isolated_per_instance() -> None:
    first, second = AdapterSignals(), AdapterSignals()
    seen: list[Any] = []
    first.on(SignalKind.MESSAGE, seen.append)

    await second.emit(object(), SignalKind.MESSAGE, "other")
    await first.emit(object(), SignalKind.ERROR, "ignored")

    assert seen == []
