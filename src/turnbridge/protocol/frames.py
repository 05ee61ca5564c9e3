"""Wire frames exchanged with the conversational engine."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from turnbridge.errors import ParseFailure


class FrameAction(StrEnum):
    """Inbound action vocabulary."""

    INITIALIZE_ACK = "initialize_ack"
    MESSAGE = "message"
    STREAM = "stream"
    FUNCTION_CALL = "function_call"
    ERROR = "error"
    DONE = "done"
    UNKNOWN = "unknown"


_ACTION_ALIASES: dict[str, FrameAction] = {
    "message": FrameAction.MESSAGE,
    "response": FrameAction.MESSAGE,
    "stream": FrameAction.STREAM,
    "function_call": FrameAction.FUNCTION_CALL,
    "error": FrameAction.ERROR,
    "done": FrameAction.DONE,
    "initialized": FrameAction.INITIALIZE_ACK,
    "initialize_ack": FrameAction.INITIALIZE_ACK,
}


@dataclass(frozen=True)
class Frame:
    """One parsed inbound frame."""

    action: FrameAction
    data: Any
    raw_action: str

    @property
    def text(self) -> str:
        """Text payload, conventionally under `data.message`."""
        if isinstance(self.data, str):
            return self.data
        if isinstance(self.data, dict):
            value = self.data.get("message")
            return "" if value is None else str(value)
        return ""

    @property
    def function(self) -> Any:
        if isinstance(self.data, dict):
            return self.data.get("function")
        return None


def parse_frame(raw: str | bytes) -> Frame:
    """Parse one raw inbound payload into a tagged frame."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseFailure(f"payload is not valid utf-8: {exc}") from exc
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ParseFailure(f"payload is not valid json: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise ParseFailure("payload is not a json object")
    action = payload.get("action")
    if not isinstance(action, str):
        raise ParseFailure("payload has no action")
    return Frame(
        action=_ACTION_ALIASES.get(action, FrameAction.UNKNOWN),
        data=payload.get("data"),
        raw_action=action,
    )


def initialize_frame(deployment_type: str) -> str:
    """Build the handshake frame declaring streaming support."""
    data = json.dumps({"streaming": True, "deploymentType": deployment_type})
    return json.dumps({"action": "initialize", "data": data})


def message_frame(text: str) -> str:
    return json.dumps({"action": "message", "data": {"message": text}}, ensure_ascii=False)
