from __future__ import annotations

from datetime import timedelta

from conftest import FakeClock
from group_access.services.request_registry import PendingRequestRegistry
from group_access.workflows.state import PendingRequest, RequestState


def _pending(request_id: str, clock: FakeClock) -> PendingRequest:
    return PendingRequest(
        request_id=request_id,
        requester_id="U_REQUESTER",
        nominee_id="U_BOB",
        nominee_email="bob@x.com",
        group_id="groups/g2",
        group_name="G2",
        expiration_hours=6,
        state=RequestState.AWAITING_APPROVAL,
        created_at=clock.now,
    )


def test_claim_resolves_a_request_once(clock: FakeClock) -> None:
    registry = PendingRequestRegistry(ttl_hours=1, clock=clock)
    registry.register(_pending("req-1", clock))

    claimed = registry.claim("req-1", RequestState.APPROVED)

    assert claimed is not None
    assert claimed.state is RequestState.APPROVED
    assert claimed.state.is_terminal
    assert registry.claim("req-1", RequestState.DENIED) is None
    assert registry.get("req-1") is None


def test_expired_requests_cannot_be_claimed(clock: FakeClock) -> None:
    registry = PendingRequestRegistry(ttl_hours=1, clock=clock)
    registry.register(_pending("req-1", clock))
    registry.register(_pending("req-2", clock))

    clock.advance(hours=1)

    assert registry.get("req-2") is None
    assert registry.claim("req-1", RequestState.APPROVED) is None
    assert len(registry) == 0


def test_purge_drops_only_expired_requests(clock: FakeClock) -> None:
    registry = PendingRequestRegistry(ttl_hours=2, clock=clock)
    registry.register(_pending("old", clock))
    clock.advance(hours=1)
    registry.register(_pending("new", clock))
    clock.now += timedelta(hours=1, minutes=30)

    assert registry.purge_expired() == 1
    assert registry.get("new") is not None
