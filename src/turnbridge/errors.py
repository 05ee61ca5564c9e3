"""Application-level exception types for turnbridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base exception for turnbridge."""


class ConfigurationError(BridgeError):
    """Base exception for configuration and startup validation errors."""


class EngineNotConfiguredError(ConfigurationError):
    """Raised when worker id, flow id or engine API key is missing."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            "Missing environment variables. Please set WORKER_ID, FLOW_ID, and BRAINBASE_API_KEY."
        )
        self.missing = missing


class EngineConnectionError(BridgeError, ConnectionError):
    """Raised when the duplex transport to the engine cannot be established."""


class NotConnectedError(BridgeError):
    """Raised when an operation needs a live connection and there is none."""


class SendFailure(BridgeError):
    """Raised when the transport rejects an outbound frame."""


class ParseFailure(BridgeError):
    """Raised when an inbound payload cannot be decoded into a frame."""


class RemoteError(BridgeError):
    """Raised when the engine explicitly reports an error frame."""


class TurnInProgressError(BridgeError):
    """Raised when a send is attempted while the previous turn is still open."""


class SessionNotFoundError(BridgeError):
    """Raised when a session id is not registered."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Chat session '{session_id}' not found")
        self.session_id = session_id


class JobStoreUnavailable(BridgeError):
    """Raised when the job store is not configured or not reachable."""


class JobTransitionError(BridgeError):
    """Raised when a job is moved out of a terminal status."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(f"Job '{job_id}' cannot move from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target
