"""Web surface of deploysafe: the ``/api/health`` endpoint."""

from .app import create_app

__all__ = ["create_app"]
