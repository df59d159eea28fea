"""In-memory table of requests awaiting an approver decision."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from group_access.workflows.state import PendingRequest, RequestState

LOGGER = logging.getLogger("group_access.services.request_registry")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PendingRequestRegistry:
    """Request id to ``PendingRequest`` with a TTL and single-use resolution.

    ``claim`` hands a request to exactly one caller; replayed or late
    approve/deny actions find nothing and are rejected by the workflow.
    """

    def __init__(
        self,
        *,
        ttl_hours: int = 72,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ttl = timedelta(hours=ttl_hours)
        self._clock = clock
        self._requests: Dict[str, PendingRequest] = {}
        self._lock = threading.RLock()

    def register(self, request: PendingRequest) -> PendingRequest:
        """Store ``request``; its TTL starts now on this registry's clock."""

        now = self._clock()
        request = replace(request, created_at=now)
        with self._lock:
            self._purge_locked(now)
            self._requests[request.request_id] = request
        LOGGER.info(
            "request_registered",
            extra={"request_id": request.request_id, "requester_id": request.requester_id},
        )
        return request

    def get(self, request_id: str) -> Optional[PendingRequest]:
        with self._lock:
            request = self._requests.get(request_id)
            if request is not None and self._is_expired(request, self._clock()):
                del self._requests[request_id]
                return None
            return request

    def claim(self, request_id: str, state: RequestState) -> Optional[PendingRequest]:
        """Remove and return the request moved to ``state``; ``None`` if already gone."""

        with self._lock:
            request = self._requests.pop(request_id, None)
        if request is None:
            return None
        if self._is_expired(request, self._clock()):
            LOGGER.info("request_expired", extra={"request_id": request_id})
            return None
        LOGGER.info("request_resolved", extra={"request_id": request_id, "state": state.value})
        return request.transition(state)

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def _purge_locked(self, now: datetime) -> int:
        expired = [key for key, request in self._requests.items() if self._is_expired(request, now)]
        for key in expired:
            del self._requests[key]
        return len(expired)

    def _is_expired(self, request: PendingRequest, now: datetime) -> bool:
        return request.created_at + self._ttl <= now
