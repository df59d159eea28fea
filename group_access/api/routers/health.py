"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz", summary="Liveness probe")
def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Readiness probe")
def readiness_check(request: Request) -> dict[str, object]:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        return {"status": "starting", "snapshot": False, "grants": 0}
    snapshot = runtime.snapshot_cache.current_snapshot()
    return {
        "status": "ok" if snapshot is not None else "starting",
        "snapshot": snapshot is not None,
        "grants": len(runtime.grant_store),
    }
