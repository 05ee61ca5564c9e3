"""Protocol adapter owning one duplex connection to the engine."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import suppress
from typing import Any, Protocol, TypeAlias

import websockets
from loguru import logger
from websockets.exceptions import WebSocketException

from turnbridge.errors import (
    BridgeError,
    EngineConnectionError,
    NotConnectedError,
    ParseFailure,
    RemoteError,
    SendFailure,
    TurnInProgressError,
)
from turnbridge.logging_utils import mask_secret
from turnbridge.protocol.completion import CompletionDetector, CompletionPolicy, CompletionReason, TurnResult
from turnbridge.protocol.frames import Frame, FrameAction, initialize_frame, message_frame, parse_frame
from turnbridge.protocol.signals import AdapterSignals, SignalHandler, SignalKind
from turnbridge.protocol.turn import TurnBuffer

DEFAULT_ENGINE_HOST = "wss://brainbase-engine-python.onrender.com"
PARSE_ERROR_MESSAGE = "Error parsing message from engine"


class Transport(Protocol):
    """The slice of a WebSocket client connection the adapter relies on."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector: TypeAlias = Callable[[str], Awaitable[Transport]]


def build_engine_url(host: str, worker_id: str, flow_id: str, api_key: str) -> str:
    return f"{host.rstrip('/')}/{worker_id}/{flow_id}?api_key={api_key}"


class ProtocolAdapter:
    """Bridge one engine connection to turn-level request/response calls."""

    def __init__(
        self,
        worker_id: str,
        flow_id: str,
        api_key: str,
        *,
        host: str = DEFAULT_ENGINE_HOST,
        deployment_type: str = "production",
        connector: Connector | None = None,
    ) -> None:
        self.url = build_engine_url(host, worker_id, flow_id, api_key)
        self._safe_url = mask_secret(self.url, api_key)
        self._deployment_type = deployment_type
        self._connector: Connector = connector or websockets.connect
        self.signals = AdapterSignals()
        self.buffer = TurnBuffer()
        self._transport: Transport | None = None
        self._receiver: asyncio.Task[None] | None = None
        self._detector: CompletionDetector | None = None
        self._connected = False
        self._initialized = False
        self._turn_open = False
        self._pending_signals: set[asyncio.Task[None]] = set()

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def initialized(self) -> bool:
        """Whether the engine acknowledged the initialize frame."""
        return self._initialized

    @property
    def turn_open(self) -> bool:
        return self._turn_open

    def on(self, kind: SignalKind, handler: SignalHandler) -> Callable[[], None]:
        return self.signals.on(kind, handler)

    async def __aenter__(self) -> ProtocolAdapter:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        if self._connected:
            return
        logger.info("adapter.connect url={}", self._safe_url)
        try:
            transport = await self._connector(self.url)
        except (OSError, TimeoutError, WebSocketException) as exc:
            logger.error("adapter.connect.failed url={} error={}", self._safe_url, exc)
            raise EngineConnectionError(f"Failed to connect to engine: {exc}") from exc

        self._transport = transport
        self._connected = True
        try:
            await transport.send(initialize_frame(self._deployment_type))
        except (OSError, WebSocketException) as exc:
            logger.error("adapter.initialize.failed url={} error={}", self._safe_url, exc)
            await self.disconnect()
            raise EngineConnectionError(f"Failed to initialize engine connection: {exc}") from exc
        logger.info("adapter.initialize.sent deployment_type={}", self._deployment_type)
        self._receiver = asyncio.create_task(self._receive_loop(transport))

    async def send(self, text: str) -> None:
        if not self._connected or self._transport is None:
            raise NotConnectedError("Not connected to engine")
        if self._turn_open:
            raise TurnInProgressError("The previous turn has not completed yet")
        self._turn_open = True
        try:
            await self._transport.send(message_frame(text))
        except (OSError, WebSocketException) as exc:
            self._turn_open = False
            logger.error("adapter.send.failed error={}", exc)
            raise SendFailure(f"Failed to send message: {exc}") from exc
        logger.info("adapter.send chars={}", len(text))

    async def disconnect(self) -> None:
        transport, receiver = self._transport, self._receiver
        self._receiver = None
        if transport is None and receiver is None and not self._connected:
            return
        await self._mark_closed()
        if transport is not None:
            with suppress(OSError, WebSocketException):
                await transport.close()
        if receiver is not None and receiver is not asyncio.current_task():
            receiver.cancel()
            try:
                await receiver
            except asyncio.CancelledError:
                pass

    def watch(self, policy: CompletionPolicy) -> CompletionDetector:
        """Arm a completion detector on the current turn."""
        if not self._connected:
            raise NotConnectedError("Not connected to engine")
        if self._detector is not None and not self._detector.done:
            raise TurnInProgressError("A completion wait is already pending on this connection")
        pending = not self.buffer.sealed and not self.buffer.is_empty
        detector = CompletionDetector(
            policy,
            lambda: self.buffer.text,
            has_content=pending,
            on_complete=self._on_turn_complete,
        )
        self._detector = detector
        return detector

    async def exchange(self, text: str | None, policy: CompletionPolicy) -> TurnResult:
        """Send `text` (if any) and wait until the turn completes under `policy`."""
        if text is not None and self._connected and self._turn_open:
            raise TurnInProgressError("The previous turn has not completed yet")
        detector = self.watch(policy)
        if text is not None:
            try:
                await self.send(text)
            except BridgeError as exc:
                detector.fail(exc)
                raise
        return await detector.wait()

    def _on_turn_complete(self, detector: CompletionDetector) -> None:
        result = detector.result()
        if result is not None:
            self.buffer.seal()
            # Terminal frames emit their own signals from the receive loop.
            if result.reason is not CompletionReason.TERMINAL and result.text:
                task = asyncio.create_task(self._emit(SignalKind.COMPLETE, result.text))
                self._pending_signals.add(task)
                task.add_done_callback(self._pending_signals.discard)
        self._turn_open = False
        if self._detector is detector:
            self._detector = None

    async def _mark_closed(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._turn_open = False
        self._transport = None
        if self._detector is not None:
            self._detector.close()
        logger.info("adapter.disconnected url={}", self._safe_url)
        await self._emit(SignalKind.DISCONNECTED, None)

    async def _receive_loop(self, transport: Transport) -> None:
        try:
            async for raw in transport:
                await self._handle_raw(raw)
        except (OSError, WebSocketException) as exc:
            logger.error("adapter.connection.error error={}", exc)
            await self._emit(SignalKind.ERROR, str(exc))
        finally:
            if self._transport is transport:
                await self._mark_closed()

    async def _handle_raw(self, raw: str | bytes) -> None:
        try:
            frame = parse_frame(raw)
        except ParseFailure as exc:
            logger.warning("adapter.frame.malformed error={}", exc)
            await self._emit(SignalKind.ERROR, PARSE_ERROR_MESSAGE)
            return
        await self._dispatch(frame)

    async def _dispatch(self, frame: Frame) -> None:
        detector = self._detector if self._detector is not None and not self._detector.done else None

        if frame.action is FrameAction.MESSAGE:
            text = frame.text
            self.buffer.replace(text)
            self.buffer.seal()
            self._turn_open = False
            if detector is not None:
                detector.terminal(has_text=bool(text))
            await self._emit(SignalKind.MESSAGE, text)
        elif frame.action is FrameAction.STREAM:
            chunk = frame.text
            self.buffer.append(chunk)
            if detector is not None:
                detector.fragment(has_text=bool(chunk))
            await self._emit(SignalKind.STREAM, chunk)
        elif frame.action is FrameAction.DONE:
            completed = None if self.buffer.sealed or self.buffer.is_empty else self.buffer.text
            self.buffer.seal()
            self._turn_open = False
            if detector is not None:
                detector.terminal()
            if completed is not None:
                await self._emit(SignalKind.COMPLETE, completed)
            await self._emit(SignalKind.DONE, frame.data)
        elif frame.action is FrameAction.FUNCTION_CALL:
            await self._emit(SignalKind.FUNCTION_CALL, frame.function)
        elif frame.action is FrameAction.ERROR:
            text = frame.text or "engine reported an error"
            logger.warning("adapter.remote.error message={}", text)
            if detector is not None and detector.policy.fail_on_remote_error:
                detector.fail(RemoteError(text))
            await self._emit(SignalKind.ERROR, text)
        elif frame.action is FrameAction.INITIALIZE_ACK:
            self._initialized = True
            logger.info("adapter.initialize.ack")
        else:
            logger.debug("adapter.frame.unknown action={}", frame.raw_action)
            await self._emit(SignalKind.UNKNOWN, {"action": frame.raw_action, "data": frame.data})

    async def _emit(self, kind: SignalKind, payload: Any) -> None:
        try:
            await self.signals.emit(self, kind, payload)
        except Exception:
            logger.exception("adapter.signal.handler_error kind={}", kind)


AdapterFactory: TypeAlias = Callable[[], ProtocolAdapter]
