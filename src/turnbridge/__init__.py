"""turnbridge - synchronous HTTP calls over a streaming engine connection."""

from turnbridge.protocol import CompletionPolicy, ProtocolAdapter, SignalKind, TurnResult

__version__ = "0.1.0"

__all__ = ["CompletionPolicy", "ProtocolAdapter", "SignalKind", "TurnResult"]
