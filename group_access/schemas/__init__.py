"""Pydantic schemas for directory records and approval payloads."""

from .directory import DecodeError, DirectorySnapshot, Group, Membership, Operation  # noqa: F401
from .membership_request import EXPIRATION_CHOICES, MembershipRequest  # noqa: F401
