"""Request and response bodies of the HTTP surface."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class MessageRequest(BaseModel):
    message: str | None = None


class SessionCreated(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    message: str


class ChatResponse(BaseModel):
    response: str


class JobAccepted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "ok"
    job_id: str = Field(alias="jobId")


class StatusMessage(BaseModel):
    message: str


class HealthStatus(BaseModel):
    status: str = "ok"
