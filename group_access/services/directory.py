"""Cloud Identity directory client."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence

import google.auth
import httpx
from google.auth.transport.requests import Request as GoogleAuthRequest

from group_access.schemas.directory import DecodeError, Group, Membership, Operation

logger = logging.getLogger("group_access.services.directory")

CLOUD_IDENTITY_SCOPES = ("https://www.googleapis.com/auth/cloud-identity.groups",)


class DirectoryError(Exception):
    """Base exception for directory API failures."""


class OperationError(DirectoryError):
    """Raised when a long-running operation completes with an error."""


class OperationTimeoutError(DirectoryError):
    """Raised when a long-running operation does not finish before its deadline."""


class DirectoryClient(Protocol):
    """Contract for the identity directory consumed by the bot."""

    def list_groups(self, parent: str) -> List[Group]:
        ...

    def list_memberships(self, group_name: str) -> List[Membership]:
        ...

    def create_membership(self, group_name: str, member_key: str, roles: Sequence[str]) -> Operation:
        ...

    def delete_membership(self, membership_name: str) -> Operation:
        ...

    def get_operation(self, operation_name: str) -> Operation:
        ...

    def close(self) -> None:
        ...


class GoogleCredentialsAuth(httpx.Auth):
    """Attach an OAuth bearer token from google-auth credentials, refreshing as needed."""

    def __init__(self, credentials: Any) -> None:
        self._credentials = credentials
        self._lock = threading.Lock()

    def auth_flow(self, request: httpx.Request) -> Iterator[httpx.Request]:
        with self._lock:
            if not self._credentials.valid:
                self._credentials.refresh(GoogleAuthRequest())
            token = self._credentials.token
        request.headers["Authorization"] = f"Bearer {token}"
        yield request


class CloudIdentityDirectoryClient(DirectoryClient):
    """Client for the Cloud Identity v1beta1 REST API."""

    def __init__(
        self,
        *,
        base_url: str,
        credentials: Any = None,
        timeout: float = 30.0,
        page_size: int = 200,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if credentials is None:
            credentials, _ = google.auth.default(scopes=list(CLOUD_IDENTITY_SCOPES))
        self._page_size = page_size
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=GoogleCredentialsAuth(credentials),
            timeout=timeout,
            transport=transport,
        )

    def list_groups(self, parent: str) -> List[Group]:
        return [
            Group.from_api(item)
            for item in self._paginate("/groups", "groups", params={"parent": parent})
        ]

    def list_memberships(self, group_name: str) -> List[Membership]:
        return [
            Membership.from_api(item)
            for item in self._paginate(f"/{group_name}/memberships", "memberships")
        ]

    def create_membership(self, group_name: str, member_key: str, roles: Sequence[str]) -> Operation:
        body = {
            "preferredMemberKey": {"id": member_key},
            "roles": [{"name": role} for role in roles],
        }
        payload = self._request("POST", f"/{group_name}/memberships", json=body)
        logger.info(
            "directory_membership_create_requested",
            extra={"group": group_name, "member_key": member_key},
        )
        return self._operation(payload)

    def delete_membership(self, membership_name: str) -> Operation:
        payload = self._request("DELETE", f"/{membership_name}")
        logger.info("directory_membership_delete_requested", extra={"membership": membership_name})
        return self._operation(payload)

    def get_operation(self, operation_name: str) -> Operation:
        return self._operation(self._request("GET", f"/{operation_name}"))

    def close(self) -> None:
        self._client.close()

    def _paginate(
        self,
        path: str,
        items_key: str,
        params: Optional[Dict[str, str]] = None,
    ) -> Iterator[Dict[str, Any]]:
        query: Dict[str, Any] = dict(params or {})
        query["pageSize"] = self._page_size
        while True:
            payload = self._request("GET", path, params=query)
            yield from payload.get(items_key, [])
            token = payload.get("nextPageToken")
            if not token:
                return
            query["pageToken"] = token

    def _operation(self, payload: Dict[str, Any]) -> Operation:
        try:
            return Operation.from_api(payload)
        except DecodeError as exc:
            raise DirectoryError(str(exc)) from exc

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _error_message(exc.response)
            logger.error(
                "directory_http_error",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": exc.response.status_code,
                    "detail": detail,
                },
            )
            raise DirectoryError(f"{method} {path} failed with {exc.response.status_code}: {detail}") from exc
        except httpx.RequestError as exc:
            logger.error(
                "directory_request_error",
                extra={"method": method, "path": path, "error": str(exc)},
            )
            raise DirectoryError(f"Failed to reach the directory API: {exc}") from exc

        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise DirectoryError(f"{method} {path} returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise DirectoryError(f"{method} {path} returned an unexpected body")
        return payload


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return str(payload["error"].get("message") or payload["error"])
    return response.text
