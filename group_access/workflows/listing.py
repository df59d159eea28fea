"""Read-only ``list`` commands."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List

from group_access.services.chat import ChatTransport, TransportError
from group_access.services.grant_store import GrantExpiryStore
from group_access.services.snapshot_cache import DirectorySnapshotCache

LOGGER = logging.getLogger("group_access.workflows.listing")

USAGE = (
    "Usage:\n"
    "• `add member` request temporary membership in a group\n"
    "• `list group` show the groups in the directory\n"
    "• `list member` show temporary memberships and when they expire"
)


class DirectoryReporter:
    """Answers ``list group`` and ``list member`` with ephemeral summaries."""

    def __init__(
        self,
        *,
        transport: ChatTransport,
        snapshot_cache: DirectorySnapshotCache,
        grant_store: GrantExpiryStore,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._transport = transport
        self._snapshots = snapshot_cache
        self._grants = grant_store
        self._clock = clock

    def list_groups(self, channel_id: str, user_id: str) -> str:
        snapshot = self._snapshots.current_snapshot()
        if snapshot is None:
            text = "The group list is still loading, please try again in a minute."
        elif not snapshot.groups:
            text = "No groups were found in the directory."
        else:
            lines = [f"*Groups* (as of {snapshot.captured_at:%Y-%m-%d %H:%M} UTC)"]
            lines.extend(
                f"• `{group.display_name}` ({len(group.memberships)} members)" for group in snapshot.groups
            )
            text = "\n".join(lines)
        self._reply(channel_id, user_id, text)
        return text

    def list_grants(self, channel_id: str, user_id: str) -> str:
        grants = self._grants.active()
        if not grants:
            text = "There are no temporary memberships right now."
        else:
            now = self._clock()
            lines: List[str] = ["*Temporary memberships*"]
            for grant in grants:
                remaining = max(int((grant.expires_at - now).total_seconds() // 60), 0)
                lines.append(
                    f"• `{grant.member_key}` in `{grant.group_name}`, "
                    f"expires in {remaining // 60}h{remaining % 60:02d}m"
                )
            text = "\n".join(lines)
        self._reply(channel_id, user_id, text)
        return text

    def send_usage(self, channel_id: str, user_id: str) -> str:
        self._reply(channel_id, user_id, USAGE)
        return USAGE

    def _reply(self, channel_id: str, user_id: str, text: str) -> None:
        try:
            self._transport.post_ephemeral(channel_id, user_id, text=text)
        except TransportError as exc:
            LOGGER.error("listing_delivery_failed", extra={"channel_id": channel_id, "error": str(exc)})
