"""Background job records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from turnbridge.errors import JobTransitionError


class JobStatus(StrEnum):
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self is not JobStatus.PROCESSING


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class Job:
    """In-process view of one fire-and-forget turn."""

    job_id: str
    message: str
    status: JobStatus = JobStatus.PROCESSING
    response: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    persisted: bool = False

    def complete(self, response: str) -> None:
        self._transition(JobStatus.COMPLETE)
        self.response = response

    def fail(self, error: str) -> None:
        self._transition(JobStatus.ERROR)
        self.error = error

    def _transition(self, target: JobStatus) -> None:
        if self.status.terminal:
            raise JobTransitionError(self.job_id, self.status.value, target.value)
        self.status = target
        self.updated_at = _now()

    def to_record(self) -> dict[str, object]:
        return {
            "id": self.job_id,
            "message": self.message,
            "status": self.status.value,
            "response": self.response,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
