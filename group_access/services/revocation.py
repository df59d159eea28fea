"""Revocation job run when a granted membership expires."""

from __future__ import annotations

import logging

from group_access.services.directory import DirectoryClient, DirectoryError
from group_access.services.grant_store import GrantRecord
from group_access.services.operations import OperationPoller

LOGGER = logging.getLogger("group_access.services.revocation")


class MembershipRevoker:
    """Delete an expired membership from the directory; never retries."""

    def __init__(self, directory: DirectoryClient, poller: OperationPoller) -> None:
        self._directory = directory
        self._poller = poller

    def __call__(self, record: GrantRecord) -> None:
        try:
            operation = self._directory.delete_membership(record.membership_name)
            self._poller.wait(operation)
        except DirectoryError as exc:
            LOGGER.error(
                "grant_revocation_failed",
                extra={
                    "membership": record.membership_name,
                    "member_key": record.member_key,
                    "group": record.group_name,
                    "error": str(exc),
                },
            )
            return

        LOGGER.info(
            "grant_revoked",
            extra={
                "membership": record.membership_name,
                "member_key": record.member_key,
                "group": record.group_name,
            },
        )
