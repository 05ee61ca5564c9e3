"""Application runtime package."""

from turnbridge.app.bootstrap import build_job_store, build_runtime
from turnbridge.app.runtime import BridgeRuntime

__all__ = ["BridgeRuntime", "build_job_store", "build_runtime"]
