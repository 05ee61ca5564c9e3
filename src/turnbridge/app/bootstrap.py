"""Runtime bootstrap helpers."""

from __future__ import annotations

from loguru import logger

from turnbridge.app.runtime import BridgeRuntime
from turnbridge.config import Settings, load_settings
from turnbridge.errors import ConfigurationError, JobStoreUnavailable
from turnbridge.jobs import JobStore, MemoryJobStore, SupabaseJobStore
from turnbridge.protocol.adapter import Connector


def build_job_store(settings: Settings) -> JobStore | None:
    """Pick the job store backend named by settings."""
    if settings.job_store == "none":
        return None
    if settings.job_store == "memory":
        return MemoryJobStore()
    if not settings.supabase_configured:
        if settings.job_store == "supabase":
            raise ConfigurationError("JOB_STORE=supabase needs SUPABASE_URL and SUPABASE_KEY")
        logger.warning("job_store.not_configured jobs will not be persisted")
        return None
    try:
        return SupabaseJobStore.from_credentials(settings.supabase_url or "", settings.supabase_key or "")
    except JobStoreUnavailable:
        if settings.job_store == "supabase":
            raise
        logger.exception("job_store.unavailable jobs will not be persisted")
        return None


def build_runtime(
    settings: Settings | None = None,
    *,
    job_store: JobStore | None = None,
    connector: Connector | None = None,
) -> BridgeRuntime:
    """Build the bridge runtime for one process."""
    settings = settings or load_settings()
    store = job_store if job_store is not None else build_job_store(settings)
    return BridgeRuntime(settings, job_store=store, connector=connector)
