"""TTL-indexed store of memberships granted by the bot."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

LOGGER = logging.getLogger("group_access.services.grant_store")


@dataclass(frozen=True)
class GrantRecord:
    """A membership created by the bot and the moment it must be revoked."""

    membership_name: str
    member_key: str
    group_name: str
    ttl_hours: int
    enqueued_at: datetime

    @property
    def expires_at(self) -> datetime:
        return self.enqueued_at + timedelta(hours=self.ttl_hours)


RevocationJob = Callable[[GrantRecord], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GrantExpiryStore:
    """Map of membership name to ``GrantRecord`` with exactly-once expiry.

    Expired entries are removed under the lock before anything else happens,
    so each record is handed to the revocation pool once. The scheduler thread
    only enqueues; directory calls run on the pool.
    """

    def __init__(
        self,
        revoke: RevocationJob,
        *,
        tick_seconds: float = 1.0,
        executor: Optional[Executor] = None,
        max_workers: int = 4,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._revoke = revoke
        self._tick = tick_seconds
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="grant-revoker",
        )
        self._clock = clock
        self._records: Dict[str, GrantRecord] = {}
        self._deadlines: List[Tuple[datetime, int, GrantRecord]] = []
        self._sequence = itertools.count()
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def add(
        self,
        membership_name: str,
        *,
        member_key: str,
        group_name: str,
        ttl_hours: int,
    ) -> GrantRecord:
        if not membership_name:
            raise ValueError("membership_name must not be empty")
        if isinstance(ttl_hours, bool) or not isinstance(ttl_hours, int) or ttl_hours < 1:
            raise ValueError(f"ttl_hours must be an integer >= 1, got {ttl_hours!r}")

        record = GrantRecord(
            membership_name=membership_name,
            member_key=member_key,
            group_name=group_name,
            ttl_hours=ttl_hours,
            enqueued_at=self._clock(),
        )
        with self._lock:
            self._records[membership_name] = record
            heapq.heappush(self._deadlines, (record.expires_at, next(self._sequence), record))

        LOGGER.info(
            "grant_registered",
            extra={
                "membership": membership_name,
                "member_key": member_key,
                "group": group_name,
                "expires_at": record.expires_at.isoformat(),
            },
        )
        return record

    def get(self, membership_name: str) -> Optional[GrantRecord]:
        with self._lock:
            return self._records.get(membership_name)

    def active(self) -> List[GrantRecord]:
        with self._lock:
            return sorted(self._records.values(), key=lambda record: record.expires_at)

    def __contains__(self, membership_name: object) -> bool:
        with self._lock:
            return membership_name in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def expire_due(self, now: Optional[datetime] = None) -> List[GrantRecord]:
        """Evict every record whose TTL has elapsed and enqueue its revocation."""

        now = now or self._clock()
        expired: List[GrantRecord] = []
        with self._lock:
            while self._deadlines and self._deadlines[0][0] <= now:
                _, _, record = heapq.heappop(self._deadlines)
                # A re-added key leaves its old deadline behind in the heap.
                if self._records.get(record.membership_name) is not record:
                    continue
                del self._records[record.membership_name]
                expired.append(record)

        for record in expired:
            LOGGER.info(
                "grant_expired",
                extra={"membership": record.membership_name, "group": record.group_name},
            )
            future = self._executor.submit(self._revoke, record)
            future.add_done_callback(lambda done, record=record: self._on_revoked(record, done))
        return expired

    def _on_revoked(self, record: GrantRecord, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            LOGGER.error(
                "grant_revocation_crashed",
                extra={"membership": record.membership_name, "error": repr(exc)},
            )

    def run_forever(self) -> None:
        LOGGER.info("Starting grant expiry scheduler", extra={"tick_seconds": self._tick})
        while not self._stop.wait(self._tick):
            try:
                self.expire_due()
            except Exception:  # noqa: BLE001 - keep the scheduler alive
                LOGGER.exception("grant_expiry_tick_failed")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name="grant-expiry", daemon=True)
        self._thread.start()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the scheduler and let queued revocations finish."""

        self._stop.set()
        if self._thread is not None:
            self._thread.join(self._tick * 2 if wait else 0)
            self._thread = None
        self._executor.shutdown(wait=wait)
