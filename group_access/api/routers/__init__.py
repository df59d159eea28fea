"""Router registrations."""

from fastapi import APIRouter

from group_access.api.routers import health


def get_api_router() -> APIRouter:
    router = APIRouter()
    router.include_router(health.router, tags=["health"])
    return router
