"""Background-refreshed snapshot of directory groups and their members."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from group_access.schemas.directory import DecodeError, DirectorySnapshot, Group
from group_access.services.directory import DirectoryClient, DirectoryError

LOGGER = logging.getLogger("group_access.services.snapshot_cache")


class DirectorySnapshotCache:
    """Single-writer cache of every group and its memberships.

    A background thread rebuilds the whole snapshot on a fixed interval and
    swaps it in with one reference assignment. Readers never see a snapshot
    that mixes two refresh cycles. A failed cycle leaves the previous
    snapshot in place until the next successful one.
    """

    def __init__(
        self,
        directory: DirectoryClient,
        *,
        customer_id: str,
        interval_seconds: float = 60.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._directory = directory
        self._parent = f"customers/{customer_id}"
        self._interval = interval_seconds
        self._clock = clock
        self._snapshot: Optional[DirectorySnapshot] = None
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def current_snapshot(self) -> Optional[DirectorySnapshot]:
        with self._lock:
            return self._snapshot

    def eligible_groups(self, member_email: str) -> List[Tuple[str, str]]:
        """Return (group id, display name) for every group the member is not already in."""

        snapshot = self.current_snapshot()
        if snapshot is None:
            return []
        return [
            (group.name, group.display_name)
            for group in snapshot.groups
            if not group.has_member(member_email)
        ]

    def refresh(self) -> bool:
        """Rebuild the snapshot; return ``False`` when the cycle was aborted."""

        try:
            groups = []
            for group in self._directory.list_groups(self._parent):
                memberships = self._directory.list_memberships(group.name)
                groups.append(
                    Group(
                        name=group.name,
                        display_name=group.display_name,
                        memberships=tuple(memberships),
                    )
                )
        except (DirectoryError, DecodeError) as exc:
            LOGGER.error(
                "snapshot_refresh_failed",
                extra={"parent": self._parent, "error": str(exc)},
            )
            return False

        snapshot = DirectorySnapshot(groups=tuple(groups), captured_at=self._clock())
        with self._lock:
            self._snapshot = snapshot
        LOGGER.info(
            "snapshot_refreshed",
            extra={"parent": self._parent, "groups": len(snapshot.groups)},
        )
        return True

    def run_forever(self) -> None:
        LOGGER.info("Starting directory snapshot loop", extra={"interval": self._interval})
        while not self._stop.is_set():
            try:
                self.refresh()
            except Exception:  # noqa: BLE001 - keep the refresh thread alive
                LOGGER.exception("snapshot_refresh_crashed", extra={"parent": self._parent})
            self._stop.wait(self._interval)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run_forever,
            name="directory-snapshot",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
