"""Job store collaborators.

The job runner only creates and updates records; reads exist for the HTTP
status endpoint. Supabase is the production backend, the in-memory store
serves local runs and tests.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

from loguru import logger
from supabase import Client, create_client

from turnbridge.errors import JobStoreUnavailable
from turnbridge.jobs.models import JobStatus


class JobStore(Protocol):
    """Minimal async contract for job persistence."""

    async def create(self, message: str, status: JobStatus, created_at: datetime) -> str | None: ...

    async def update(
        self,
        job_id: str,
        status: JobStatus,
        *,
        response: str | None = None,
        error: str | None = None,
        updated_at: datetime,
    ) -> None: ...

    async def get(self, job_id: str) -> dict[str, Any] | None: ...


class MemoryJobStore:
    """Dict-backed job store."""

    def __init__(self) -> None:
        self._rows: dict[str, dict[str, Any]] = {}

    async def create(self, message: str, status: JobStatus, created_at: datetime) -> str | None:
        job_id = uuid.uuid4().hex
        timestamp = created_at.isoformat()
        self._rows[job_id] = {
            "id": job_id,
            "message": message,
            "status": status.value,
            "response": None,
            "error": None,
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        return job_id

    async def update(
        self,
        job_id: str,
        status: JobStatus,
        *,
        response: str | None = None,
        error: str | None = None,
        updated_at: datetime,
    ) -> None:
        row = self._rows.get(job_id)
        if row is None:
            raise JobStoreUnavailable(f"job {job_id} is not stored")
        row["status"] = status.value
        row["updated_at"] = updated_at.isoformat()
        if response is not None:
            row["response"] = response
        if error is not None:
            row["error"] = error

    async def get(self, job_id: str) -> dict[str, Any] | None:
        row = self._rows.get(job_id)
        return dict(row) if row is not None else None


class SupabaseJobStore:
    """Job store backed by a Supabase table."""

    def __init__(self, client: Client, *, table: str = "jobs") -> None:
        self._client = client
        self.table = table
        self._columns: frozenset[str] | None = None

    @classmethod
    def from_credentials(cls, url: str, key: str, *, table: str = "jobs") -> SupabaseJobStore:
        try:
            client = create_client(url, key)
        except Exception as exc:
            raise JobStoreUnavailable(f"Failed to create Supabase client: {exc}") from exc
        return cls(client, table=table)

    async def _execute(self, operation: str, query: Callable[[], Any]) -> Any:
        # supabase-py is synchronous; keep its HTTP round-trips off the event loop.
        try:
            return await asyncio.to_thread(query)
        except Exception as exc:
            raise JobStoreUnavailable(f"Supabase {operation} on {self.table} failed: {exc}") from exc

    async def create(self, message: str, status: JobStatus, created_at: datetime) -> str | None:
        timestamp = created_at.isoformat()
        row = {"message": message, "status": status.value, "created_at": timestamp, "updated_at": timestamp}
        result = await self._execute("insert", lambda: self._client.table(self.table).insert(row).execute())
        rows = result.data or []
        if not rows or rows[0].get("id") is None:
            logger.warning("job_store.insert.no_id table={}", self.table)
            return None
        return str(rows[0]["id"])

    async def update(
        self,
        job_id: str,
        status: JobStatus,
        *,
        response: str | None = None,
        error: str | None = None,
        updated_at: datetime,
    ) -> None:
        row: dict[str, Any] = {"status": status.value, "updated_at": updated_at.isoformat()}
        optional = {name: value for name, value in (("response", response), ("error", error)) if value is not None}
        if optional:
            columns = await self._known_columns(job_id)
            for name, value in optional.items():
                if name in columns:
                    row[name] = value
                else:
                    logger.warning("job_store.column.missing table={} column={}", self.table, name)
        await self._execute("update", lambda: self._client.table(self.table).update(row).eq("id", job_id).execute())

    async def get(self, job_id: str) -> dict[str, Any] | None:
        result = await self._execute(
            "select", lambda: self._client.table(self.table).select("*").eq("id", job_id).limit(1).execute()
        )
        rows = result.data or []
        return dict(rows[0]) if rows else None

    async def _known_columns(self, job_id: str) -> frozenset[str]:
        """Learn the table's columns from one stored row before writing optional fields."""
        if self._columns is not None:
            return self._columns
        row = await self.get(job_id)
        if row is None:
            return frozenset()
        self._columns = frozenset(row)
        return self._columns
