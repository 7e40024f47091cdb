"""REST API module for meterread."""

from meterread.api.server import create_app

__all__ = ["create_app"]
