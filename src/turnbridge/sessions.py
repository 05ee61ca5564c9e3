"""Registry of live multi-turn chat sessions."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from loguru import logger

from turnbridge.errors import RemoteError, SessionNotFoundError
from turnbridge.protocol import AdapterFactory, CompletionPolicy, ProtocolAdapter, SignalKind, TurnResult


@dataclass
class Session:
    """One caller-visible handle bound to one live adapter."""

    session_id: str
    adapter: ProtocolAdapter
    greeting: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class SessionRegistry:
    """Map session ids to exactly one live protocol adapter each."""

    def __init__(self, adapter_factory: AdapterFactory, reply_policy: CompletionPolicy) -> None:
        self._adapter_factory = adapter_factory
        self._reply_policy = reply_policy
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def _new_session_id(self) -> str:
        while True:
            session_id = uuid.uuid4().hex
            if session_id not in self._sessions:
                return session_id

    async def open(self) -> Session:
        """Connect a new adapter, collect the engine greeting and register it."""
        adapter = self._adapter_factory()
        await adapter.connect()
        try:
            result = await adapter.exchange(None, self._reply_policy)
            greeting = result.text
        except RemoteError as exc:
            logger.warning("session.greeting.error error={}", exc)
            greeting = ""
        except BaseException:
            await adapter.disconnect()
            raise

        session = Session(session_id=self._new_session_id(), adapter=adapter, greeting=greeting)
        self._sessions[session.session_id] = session
        adapter.on(SignalKind.DISCONNECTED, lambda _payload: self._forget(session))
        logger.info("session.open session_id={} active={}", session.session_id, len(self._sessions))
        return session

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def send(self, session_id: str, text: str) -> TurnResult:
        """Run one request/response turn on an existing session."""
        session = self.get(session_id)
        result = await session.adapter.exchange(text, self._reply_policy)
        logger.info(
            "session.turn session_id={} reason={} chars={}", session_id, result.reason, len(result.text)
        )
        return result

    async def close(self, session_id: str) -> bool:
        """Disconnect and forget a session; unknown ids return False."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.adapter.disconnect()
        logger.info("session.close session_id={} active={}", session_id, len(self._sessions))
        return True

    def _forget(self, session: Session) -> None:
        if self._sessions.get(session.session_id) is session:
            del self._sessions[session.session_id]
            logger.info("session.dropped session_id={}", session.session_id)

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)
