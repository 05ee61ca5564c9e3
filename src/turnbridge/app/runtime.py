"""Application runtime holding the registry and job runner."""

from __future__ import annotations

from typing import Any

from loguru import logger

from turnbridge.config import Settings
from turnbridge.errors import RemoteError
from turnbridge.jobs import JobRunner, JobStore
from turnbridge.protocol import ProtocolAdapter, TurnResult
from turnbridge.protocol.adapter import Connector
from turnbridge.sessions import SessionRegistry


class BridgeRuntime:
    """Process runtime shared by the HTTP surface and the CLI."""

    def __init__(
        self,
        settings: Settings,
        *,
        job_store: JobStore | None = None,
        connector: Connector | None = None,
    ) -> None:
        self.settings = settings
        self._connector = connector
        self.reply_policy = settings.reply_policy()
        self.long_form_policy = settings.long_form_policy()
        self.sessions = SessionRegistry(self.new_adapter, self.reply_policy)
        self.jobs = JobRunner(
            self.new_adapter,
            reply_policy=self.reply_policy,
            long_form_policy=self.long_form_policy,
            store=job_store,
        )

    def new_adapter(self) -> ProtocolAdapter:
        worker_id, flow_id, api_key = self.settings.require_engine()
        return ProtocolAdapter(
            worker_id,
            flow_id,
            api_key,
            host=self.settings.engine_host,
            deployment_type=self.settings.deployment_type,
            connector=self._connector,
        )

    async def ask(self, message: str) -> TurnResult:
        """Open a throwaway connection, skip the greeting and return one reply."""
        async with self.new_adapter() as adapter:
            try:
                greeting = await adapter.exchange(None, self.reply_policy)
                logger.debug("runtime.ask.greeting chars={}", len(greeting.text))
            except RemoteError as exc:
                logger.warning("runtime.ask.greeting.error error={}", exc)
            return await adapter.exchange(message, self.reply_policy)

    async def aclose(self) -> None:
        await self.sessions.close_all()
        await self.jobs.shutdown()

    async def __aenter__(self) -> BridgeRuntime:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
