"""HTTP routes bridging synchronous calls onto engine turns."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from turnbridge.api.models import (
    ChatResponse,
    HealthStatus,
    JobAccepted,
    MessageRequest,
    SessionCreated,
    StatusMessage,
)
from turnbridge.app import BridgeRuntime
from turnbridge.errors import SessionNotFoundError

CONNECTED_FALLBACK = "Connected to chatbot"
NO_RESPONSE_FALLBACK = "No response received"
MESSAGE_REQUIRED = "Message is required"

router = APIRouter(prefix="/api", tags=["chat"])
health_router = APIRouter(tags=["health"])


def get_runtime(request: Request) -> BridgeRuntime:
    return request.app.state.runtime


def _require_message(payload: MessageRequest | None) -> str | JSONResponse:
    message = payload.message if payload is not None else None
    if not message:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": MESSAGE_REQUIRED})
    return message


@router.post("/chat/session", status_code=status.HTTP_201_CREATED, response_model=SessionCreated)
async def open_session(runtime: BridgeRuntime = Depends(get_runtime)) -> SessionCreated:
    session = await runtime.sessions.open()
    return SessionCreated(session_id=session.session_id, message=session.greeting or CONNECTED_FALLBACK)


@router.post("/chat/{session_id}/message", response_model=ChatResponse)
async def send_message(
    session_id: str,
    payload: MessageRequest | None = None,
    runtime: BridgeRuntime = Depends(get_runtime),
) -> Any:
    message = _require_message(payload)
    if isinstance(message, JSONResponse):
        return message
    result = await runtime.sessions.send(session_id, message)
    return ChatResponse(response=result.text)


@router.delete("/chat/{session_id}", response_model=StatusMessage)
async def close_session(session_id: str, runtime: BridgeRuntime = Depends(get_runtime)) -> StatusMessage:
    if not await runtime.sessions.close(session_id):
        raise SessionNotFoundError(session_id)
    return StatusMessage(message="Chat session closed successfully")


@router.post("/chat", response_model=ChatResponse)
async def single_shot(payload: MessageRequest | None = None, runtime: BridgeRuntime = Depends(get_runtime)) -> Any:
    message = _require_message(payload)
    if isinstance(message, JSONResponse):
        return message
    result = await runtime.ask(message)
    logger.info("api.chat reason={} chars={}", result.reason, len(result.text))
    return ChatResponse(response=result.text or NO_RESPONSE_FALLBACK)


@router.post("/chat/polling", response_model=JobAccepted)
async def start_job(payload: MessageRequest | None = None, runtime: BridgeRuntime = Depends(get_runtime)) -> Any:
    message = _require_message(payload)
    if isinstance(message, JSONResponse):
        return message
    job = await runtime.jobs.start(message)
    return JobAccepted(job_id=job.job_id)


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, runtime: BridgeRuntime = Depends(get_runtime)) -> Any:
    record = await runtime.jobs.lookup(job_id)
    if record is None:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Job not found"})
    return record


@health_router.get("/health", response_model=HealthStatus)
async def health() -> HealthStatus:
    return HealthStatus()
