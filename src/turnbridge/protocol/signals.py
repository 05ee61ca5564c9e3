"""Signal set emitted by the protocol adapter."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Coroutine
from enum import StrEnum
from typing import Any

from blinker import Namespace


class SignalKind(StrEnum):
    """Closed set of outward-visible adapter signals."""

    MESSAGE = "message"
    STREAM = "stream"
    COMPLETE = "complete"
    DONE = "done"
    FUNCTION_CALL = "function_call"
    ERROR = "error"
    UNKNOWN = "unknown"
    DISCONNECTED = "disconnected"


SignalHandler = Callable[[Any], Awaitable[None] | None]


def _sync_wrapper(func: Callable[..., Any]) -> Callable[..., Coroutine[Any, Any, Any]]:
    async def _inner(*args: Any, **kwargs: Any) -> Any:
        return func(*args, **kwargs)

    return _inner


class AdapterSignals:
    """Per-adapter signal hub backed by blinker signals, one per kind."""

    def __init__(self) -> None:
        self._namespace = Namespace()
        self._signals = {kind: self._namespace.signal(f"turnbridge.{kind.value}") for kind in SignalKind}

    def on(self, kind: SignalKind, handler: SignalHandler) -> Callable[[], None]:
        """Subscribe one handler and return the function that unsubscribes it."""
        signal = self._signals[SignalKind(kind)]

        def _receiver(sender: Any, *, payload: Any) -> Awaitable[None] | None:
            return handler(payload)

        signal.connect(_receiver, weak=False)
        return lambda: signal.disconnect(_receiver)

    async def emit(self, sender: Any, kind: SignalKind, payload: Any = None) -> None:
        signal = self._signals[kind]
        if not signal.receivers:
            return
        results = await signal.send_async(sender, _sync_wrapper=_sync_wrapper, payload=payload)
        for _receiver, result in results:
            if isinstance(result, Awaitable):
                await result

    def has_receivers(self, kind: SignalKind) -> bool:
        return bool(self._signals[kind].receivers)
