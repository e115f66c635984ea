"""Web interface for the shop dashboard."""

from .app import create_app

__all__ = ["create_app"]
