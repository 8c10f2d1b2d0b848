"""HTTP API for the matching dashboard."""

from .app import create_app

__all__ = ["create_app"]
