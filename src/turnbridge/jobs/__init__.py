"""Fire-and-forget job exports."""

from turnbridge.jobs.models import Job, JobStatus
from turnbridge.jobs.runner import JobRunner
from turnbridge.jobs.store import JobStore, MemoryJobStore, SupabaseJobStore

__all__ = ["Job", "JobRunner", "JobStatus", "JobStore", "MemoryJobStore", "SupabaseJobStore"]
