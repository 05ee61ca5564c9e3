"""Fire-and-forget job execution."""

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from turnbridge.errors import RemoteError
from turnbridge.jobs.models import Job, JobStatus
from turnbridge.jobs.store import JobStore
from turnbridge.protocol import AdapterFactory, CompletionDetector, CompletionPolicy, ProtocolAdapter

MAX_FINISHED_JOBS = 1000


class JobRunner:
    """Run turns in the background and mirror their lifecycle to the job store."""

    def __init__(
        self,
        adapter_factory: AdapterFactory,
        *,
        reply_policy: CompletionPolicy,
        long_form_policy: CompletionPolicy,
        store: JobStore | None = None,
        max_finished_jobs: int = MAX_FINISHED_JOBS,
    ) -> None:
        self._adapter_factory = adapter_factory
        self._reply_policy = reply_policy
        self._long_form_policy = long_form_policy
        self.store = store
        self._max_finished_jobs = max_finished_jobs
        self._jobs: dict[str, Job] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    async def start(self, message: str) -> Job:
        """Connect, record the job as processing and return before the turn runs."""
        adapter = self._adapter_factory()
        await adapter.connect()
        # The greeting wait must exist before the first await after connect.
        greeting = adapter.watch(self._reply_policy)
        try:
            job = await self._create(message)
        except BaseException:
            await adapter.disconnect()
            raise
        task = asyncio.create_task(self._run(job, adapter, greeting), name=f"job:{job.job_id}")
        self._tasks[job.job_id] = task
        task.add_done_callback(lambda _task: self._tasks.pop(job.job_id, None))
        logger.info("job.start job_id={} persisted={}", job.job_id, job.persisted)
        return job

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    async def wait(self, job_id: str) -> Job | None:
        """Wait for a background job to reach a terminal status."""
        job = self._jobs.get(job_id)
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return job

    async def lookup(self, job_id: str) -> dict[str, Any] | None:
        """Return the stored record for a job, falling back to the in-process view."""
        if self.store is not None:
            try:
                row = await self.store.get(job_id)
            except Exception:
                logger.exception("job_store.get.failed job_id={}", job_id)
                row = None
            if row is not None:
                return row
        job = self._jobs.get(job_id)
        return job.to_record() if job is not None else None

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        # Tasks cancelled before their first step skip their cleanup.
        await asyncio.sleep(0)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                continue

    async def _create(self, message: str) -> Job:
        created_at = datetime.now(UTC)
        job_id: str | None = None
        if self.store is None:
            logger.warning("job_store.not_configured job not persisted")
        else:
            try:
                job_id = await self.store.create(message, JobStatus.PROCESSING, created_at)
            except Exception:
                logger.exception("job_store.create.failed")
        job = Job(
            job_id=job_id or uuid.uuid4().hex,
            message=message,
            created_at=created_at,
            updated_at=created_at,
            persisted=job_id is not None,
        )
        self._jobs[job.job_id] = job
        return job

    async def _run(self, job: Job, adapter: ProtocolAdapter, greeting: CompletionDetector) -> None:
        try:
            await self._collect_greeting(greeting)
            result = await adapter.exchange(job.message, self._long_form_policy)
        except asyncio.CancelledError:
            job.fail("Job cancelled")
            self._retain(job, stored=await self._persist(job))
            raise
        except Exception as exc:
            logger.warning("job.error job_id={} error={}", job.job_id, exc)
            job.fail(str(exc) or type(exc).__name__)
        else:
            job.complete(result.text)
            logger.info("job.complete job_id={} reason={} chars={}", job.job_id, result.reason, len(result.text))
        finally:
            await adapter.disconnect()
        self._retain(job, stored=await self._persist(job))

    async def _collect_greeting(self, detector: CompletionDetector) -> None:
        try:
            greeting = await detector.wait()
        except RemoteError as exc:
            logger.warning("job.greeting.error error={}", exc)
            return
        logger.debug("job.greeting reason={} chars={}", greeting.reason, len(greeting.text))

    async def _persist(self, job: Job) -> bool:
        if self.store is None or not job.persisted:
            return False
        try:
            await self.store.update(
                job.job_id,
                job.status,
                response=job.response,
                error=job.error,
                updated_at=job.updated_at,
            )
        except Exception:
            logger.exception("job_store.update.failed job_id={} status={}", job.job_id, job.status)
            return False
        return True

    def _retain(self, job: Job, *, stored: bool) -> None:
        """Drop finished jobs the store can serve and cap the ones it cannot."""
        if stored:
            self._jobs.pop(job.job_id, None)
            return
        finished = [job_id for job_id, tracked in self._jobs.items() if tracked.status.terminal]
        for job_id in finished[: max(0, len(finished) - self._max_finished_jobs)]:
            del self._jobs[job_id]
        logger.debug("job.retained job_id={} tracked={}", job.job_id, len(self._jobs))
