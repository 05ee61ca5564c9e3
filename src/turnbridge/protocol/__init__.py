"""Engine protocol adapter and turn completion exports."""

from turnbridge.protocol.adapter import DEFAULT_ENGINE_HOST, AdapterFactory, ProtocolAdapter, Transport
from turnbridge.protocol.completion import (
    LONG_FORM_POLICY,
    REPLY_POLICY,
    CompletionDetector,
    CompletionPolicy,
    CompletionReason,
    TurnResult,
)
from turnbridge.protocol.frames import Frame, FrameAction, parse_frame
from turnbridge.protocol.signals import AdapterSignals, SignalKind
from turnbridge.protocol.turn import TurnBuffer

__all__ = [
    "DEFAULT_ENGINE_HOST",
    "LONG_FORM_POLICY",
    "REPLY_POLICY",
    "AdapterFactory",
    "AdapterSignals",
    "CompletionDetector",
    "CompletionPolicy",
    "CompletionReason",
    "Frame",
    "FrameAction",
    "ProtocolAdapter",
    "SignalKind",
    "Transport",
    "TurnBuffer",
    "TurnResult",
    "parse_frame",
]
