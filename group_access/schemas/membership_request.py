"""Self-contained approval payload carried by the Allow/Deny buttons."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator

from group_access.schemas.directory import DecodeError

# (hours, label) pairs offered by the expiration select.
EXPIRATION_CHOICES = ((1, "1h"), (6, "6h"), (12, "12h"), (24, "24h"))
ALLOWED_EXPIRATIONS = frozenset(hours for hours, _ in EXPIRATION_CHOICES)


class MembershipRequest(BaseModel):
    """A request to add a nominee to a group for a number of hours."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    request_id: str = Field(..., min_length=1, alias="requestID")
    nominee_email: str = Field(..., min_length=3, alias="addingUserEmail")
    nominee_id: str = Field(..., min_length=1, alias="addingUserID")
    group_id: str = Field(..., min_length=1, alias="groupID")
    group_name: str = Field(..., alias="groupName")
    expiration_hours: int = Field(..., alias="expiration")
    requester_id: str = Field(..., min_length=1, alias="requestedUserID")

    @field_validator("expiration_hours", mode="before")
    @classmethod
    def _parse_expiration(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().isdigit():
            return int(value)
        return value

    @field_validator("expiration_hours")
    @classmethod
    def _check_expiration(cls, value: int) -> int:
        if value not in ALLOWED_EXPIRATIONS:
            raise ValueError(f"expiration must be one of {sorted(ALLOWED_EXPIRATIONS)}")
        return value

    @field_serializer("expiration_hours")
    def _serialize_expiration(self, value: int) -> str:
        return str(value)

    @property
    def expiration_label(self) -> str:
        return expiration_label(self.expiration_hours)

    def encode(self) -> str:
        """Serialize into the opaque button value."""

        return self.model_dump_json(by_alias=True)

    @classmethod
    def decode(cls, raw: str | None) -> "MembershipRequest":
        """Parse a button value, raising ``DecodeError`` on malformed input."""

        if not raw:
            raise DecodeError("Empty request payload")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"Request payload is not JSON: {exc.msg}") from exc
        if not isinstance(data, dict):
            raise DecodeError("Request payload must be a JSON object")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            error = exc.errors()[0]
            location = ".".join(str(part) for part in error["loc"])
            raise DecodeError(f"Invalid request payload ({location}): {error['msg']}") from exc


def expiration_label(hours: int) -> str:
    for value, label in EXPIRATION_CHOICES:
        if value == hours:
            return label
    return f"{hours}h"
