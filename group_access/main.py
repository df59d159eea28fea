"""FastAPI application factory for the health listener."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from fastapi import FastAPI

from group_access.api.routers import get_api_router

if TYPE_CHECKING:
    from group_access.runtime import Runtime


def create_app(runtime: Optional["Runtime"] = None) -> FastAPI:
    """Application factory."""

    app = FastAPI(
        title="Group Access Bot",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
    )
    app.state.runtime = runtime
    app.include_router(get_api_router())
    return app
