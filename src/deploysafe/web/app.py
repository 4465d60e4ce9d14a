"""
FastAPI application exposing the deploysafe health endpoint.
"""

from __future__ import annotations

from fastapi import FastAPI

from .. import __version__
from .routes import router


def create_app() -> FastAPI:
    app = FastAPI(title="deploysafe health", version=__version__)
    app.include_router(router)
    return app
