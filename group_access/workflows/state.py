"""Workflow states and the pending request record."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from group_access.schemas.membership_request import MembershipRequest, expiration_label


class RequestState(str, Enum):
    SELECTING_NOMINEE = "selecting_nominee"
    SELECTING_GROUP_AND_EXPIRATION = "selecting_group_and_expiration"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    DENIED = "denied"
    CANCELLED = "cancelled"
    INVALID = "invalid"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {RequestState.APPROVED, RequestState.DENIED, RequestState.CANCELLED, RequestState.INVALID}
)


@dataclass(frozen=True)
class PendingRequest:
    """A request travelling through the approval workflow."""

    request_id: str
    requester_id: str
    nominee_id: str
    nominee_email: str
    group_id: Optional[str] = None
    group_name: Optional[str] = None
    expiration_hours: Optional[int] = None
    state: RequestState = RequestState.SELECTING_NOMINEE
    channel_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_payload(
        cls,
        payload: MembershipRequest,
        *,
        channel_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "PendingRequest":
        return cls(
            request_id=payload.request_id,
            requester_id=payload.requester_id,
            nominee_id=payload.nominee_id,
            nominee_email=payload.nominee_email,
            group_id=payload.group_id,
            group_name=payload.group_name,
            expiration_hours=payload.expiration_hours,
            state=RequestState.AWAITING_APPROVAL,
            channel_id=channel_id,
            created_at=created_at or datetime.now(timezone.utc),
        )

    @property
    def expiration_label(self) -> str:
        return expiration_label(self.expiration_hours or 0)

    def matches(self, payload: MembershipRequest) -> bool:
        """True when ``payload`` describes the same nominee, group and expiration."""

        return (
            self.requester_id == payload.requester_id
            and self.nominee_id == payload.nominee_id
            and self.nominee_email == payload.nominee_email
            and self.group_id == payload.group_id
            and self.expiration_hours == payload.expiration_hours
        )

    def transition(self, state: RequestState) -> "PendingRequest":
        return replace(self, state=state)
