"""Wait for long-running directory operations with bounded backoff."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict

from group_access.schemas.directory import DecodeError, Membership, Operation
from group_access.services.directory import (
    DirectoryClient,
    DirectoryError,
    OperationError,
    OperationTimeoutError,
)

LOGGER = logging.getLogger("group_access.services.operations")


class OperationPoller:
    """Poll a directory operation until it completes, fails, or its deadline passes."""

    def __init__(
        self,
        directory: DirectoryClient,
        *,
        initial_interval: float = 0.5,
        max_interval: float = 8.0,
        multiplier: float = 2.0,
        timeout: float = 300.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._directory = directory
        self._initial_interval = initial_interval
        self._max_interval = max(max_interval, initial_interval)
        self._multiplier = multiplier
        self._timeout = timeout
        self._sleep = sleep
        self._clock = clock

    def wait(self, operation: Operation) -> Dict[str, Any]:
        """Block until ``operation`` is done and return its response payload."""

        deadline = self._clock() + self._timeout
        interval = self._initial_interval
        attempts = 0
        while not operation.done:
            if not operation.name:
                raise DirectoryError("Pending operation has no name to poll")
            remaining = deadline - self._clock()
            if remaining <= 0:
                LOGGER.warning(
                    "operation_timed_out",
                    extra={"operation": operation.name, "attempts": attempts, "timeout": self._timeout},
                )
                raise OperationTimeoutError(
                    f"Operation {operation.name} did not finish within {self._timeout:g}s"
                )
            self._sleep(min(interval, remaining))
            interval = min(interval * self._multiplier, self._max_interval)
            attempts += 1
            operation = self._directory.get_operation(operation.name)

        if operation.error:
            raise OperationError(operation.error_message or "Operation failed")

        LOGGER.debug("operation_completed", extra={"operation": operation.name, "attempts": attempts})
        return dict(operation.response or {})

    def wait_for_membership(self, operation: Operation) -> Membership:
        """Wait for a create operation and decode the resulting membership."""

        response = self.wait(operation)
        if not response:
            raise DecodeError("Operation finished without a membership in its response")
        return Membership.from_api(response)
