"""HTTP surface."""

from turnbridge.api.server import create_app

__all__ = ["create_app"]
