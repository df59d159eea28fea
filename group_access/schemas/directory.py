"""Directory records as captured from the Cloud Identity API."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


class DecodeError(ValueError):
    """Raised when a payload cannot be interpreted as the expected record."""


class Membership(BaseModel):
    """A single membership of a group, keyed by the member's email."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    member_key: str = Field(..., alias="memberKey")
    roles: Tuple[str, ...] = Field(default_factory=tuple)

    @model_validator(mode="before")
    @classmethod
    def _flatten_api_shape(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        values = dict(data)
        key = values.get("memberKey") or values.get("preferredMemberKey")
        if isinstance(key, dict):
            values["memberKey"] = key.get("id")
        roles = values.get("roles")
        if roles is not None:
            values["roles"] = tuple(
                role.get("name") if isinstance(role, dict) else role for role in roles
            )
        return values

    @classmethod
    def from_api(cls, payload: Any) -> "Membership":
        """Decode a directory membership resource or raise ``DecodeError``."""

        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise DecodeError(f"Invalid membership payload: {exc.errors()[0]['msg']}") from exc

    def is_keyed_by(self, email: str) -> bool:
        return self.member_key.casefold() == email.casefold()


class Group(BaseModel):
    """A group and the memberships observed during one refresh cycle."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    display_name: str = Field(default="", alias="displayName")
    memberships: Tuple[Membership, ...] = Field(default_factory=tuple)

    @model_validator(mode="before")
    @classmethod
    def _default_display_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not (data.get("displayName") or data.get("display_name")):
            return {**data, "displayName": data.get("name")}
        return data

    @classmethod
    def from_api(cls, payload: Any) -> "Group":
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise DecodeError(f"Invalid group payload: {exc.errors()[0]['msg']}") from exc

    def has_member(self, email: str) -> bool:
        return any(membership.is_keyed_by(email) for membership in self.memberships)


class DirectorySnapshot(BaseModel):
    """Every group of the organization at one point in time."""

    model_config = ConfigDict(frozen=True)

    groups: Tuple[Group, ...] = Field(default_factory=tuple)
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Operation(BaseModel):
    """A long-running directory operation as returned by create/delete calls."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    done: bool = False
    response: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def error_message(self) -> Optional[str]:
        if not self.error:
            return None
        return str(self.error.get("message") or self.error)

    @classmethod
    def from_api(cls, payload: Any) -> "Operation":
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise DecodeError(f"Invalid operation payload: {exc.errors()[0]['msg']}") from exc
