from __future__ import annotations

import json

import pytest

from group_access.schemas.directory import DecodeError
from group_access.schemas.membership_request import MembershipRequest


def _request(**overrides) -> MembershipRequest:  # noqa: ANN003
    fields = {
        "request_id": "req-1",
        "nominee_email": "bob@x.com",
        "nominee_id": "U_BOB",
        "group_id": "groups/g2",
        "group_name": "G2",
        "expiration_hours": 6,
        "requester_id": "U_REQUESTER",
    }
    fields.update(overrides)
    return MembershipRequest(**fields)


def test_payload_round_trip_preserves_every_field() -> None:
    original = _request()

    decoded = MembershipRequest.decode(original.encode())

    assert decoded == original
    assert decoded.expiration_label == "6h"


def test_payload_uses_button_wire_format() -> None:
    data = json.loads(_request(expiration_hours=12).encode())

    assert data == {
        "requestID": "req-1",
        "addingUserEmail": "bob@x.com",
        "addingUserID": "U_BOB",
        "groupID": "groups/g2",
        "groupName": "G2",
        "expiration": "12",
        "requestedUserID": "U_REQUESTER",
    }


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "not json",
        "[1, 2]",
        '{"requestID": "req-1"}',
    ],
)
def test_malformed_payloads_raise_decode_error(raw: str) -> None:
    with pytest.raises(DecodeError):
        MembershipRequest.decode(raw)


def test_unsupported_expiration_is_rejected() -> None:
    data = json.loads(_request().encode())
    data["expiration"] = "5"

    with pytest.raises(DecodeError) as exc_info:
        MembershipRequest.decode(json.dumps(data))

    assert "expiration" in str(exc_info.value)
