"""Slack messaging used by the approval workflow."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Protocol, Sequence

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError
from slack_sdk.webhook import WebhookClient

LOGGER = logging.getLogger("group_access.services.chat")

Blocks = Sequence[Dict[str, Any]]


class TransportError(Exception):
    """Raised when a Slack call fails."""


@dataclass(frozen=True)
class SlackUser:
    id: str
    email: str
    name: str = ""


class ChatTransport(Protocol):
    """Contract for outbound chat operations."""

    def post_message(
        self,
        channel: str,
        *,
        text: str,
        blocks: Optional[Blocks] = None,
        attachments: Optional[Blocks] = None,
    ) -> Optional[str]:
        ...

    def post_ephemeral(
        self,
        channel: str,
        user: str,
        *,
        text: str,
        blocks: Optional[Blocks] = None,
        attachments: Optional[Blocks] = None,
    ) -> None:
        ...

    def replace_original(
        self,
        response_url: str,
        *,
        text: str,
        blocks: Optional[Blocks] = None,
        attachments: Optional[Blocks] = None,
    ) -> None:
        ...

    def delete_original(self, response_url: str) -> None:
        ...

    def get_user(self, user_id: str) -> SlackUser:
        ...

    def list_usergroup_members(self, usergroup_id: str) -> FrozenSet[str]:
        ...


def attachment(text: str, color: str) -> List[Dict[str, Any]]:
    """Single colored attachment, the format used for every notice."""

    return [{"text": text, "color": color, "fallback": text}]


class SlackChatTransport(ChatTransport):
    """Chat transport backed by ``slack_sdk``."""

    def __init__(
        self,
        client: WebClient,
        *,
        webhook_factory: Callable[[str], WebhookClient] = WebhookClient,
    ) -> None:
        self._client = client
        self._webhook_factory = webhook_factory

    def post_message(
        self,
        channel: str,
        *,
        text: str,
        blocks: Optional[Blocks] = None,
        attachments: Optional[Blocks] = None,
    ) -> Optional[str]:
        try:
            response = self._client.chat_postMessage(
                channel=channel,
                text=text,
                blocks=list(blocks) if blocks else None,
                attachments=list(attachments) if attachments else None,
            )
        except SlackApiError as exc:
            raise TransportError(_slack_error("chat.postMessage", exc)) from exc
        return response.get("ts")

    def post_ephemeral(
        self,
        channel: str,
        user: str,
        *,
        text: str,
        blocks: Optional[Blocks] = None,
        attachments: Optional[Blocks] = None,
    ) -> None:
        try:
            self._client.chat_postEphemeral(
                channel=channel,
                user=user,
                text=text,
                blocks=list(blocks) if blocks else None,
                attachments=list(attachments) if attachments else None,
            )
        except SlackApiError as exc:
            raise TransportError(_slack_error("chat.postEphemeral", exc)) from exc

    def replace_original(
        self,
        response_url: str,
        *,
        text: str,
        blocks: Optional[Blocks] = None,
        attachments: Optional[Blocks] = None,
    ) -> None:
        response = self._webhook_factory(response_url).send(
            text=text,
            blocks=list(blocks) if blocks else [],
            attachments=list(attachments) if attachments else None,
            replace_original=True,
        )
        if response.status_code != 200:
            raise TransportError(f"replace_original failed with {response.status_code}: {response.body}")

    def delete_original(self, response_url: str) -> None:
        response = self._webhook_factory(response_url).send(delete_original=True)
        if response.status_code != 200:
            raise TransportError(f"delete_original failed with {response.status_code}: {response.body}")

    def get_user(self, user_id: str) -> SlackUser:
        try:
            response = self._client.users_info(user=user_id)
        except SlackApiError as exc:
            raise TransportError(_slack_error("users.info", exc)) from exc
        user = response.get("user") or {}
        profile = user.get("profile") or {}
        email = profile.get("email")
        if not email:
            raise TransportError(f"Slack user {user_id} has no email address")
        return SlackUser(id=user.get("id", user_id), email=email, name=user.get("real_name", ""))

    def list_usergroup_members(self, usergroup_id: str) -> FrozenSet[str]:
        try:
            response = self._client.usergroups_users_list(usergroup=usergroup_id)
        except SlackApiError as exc:
            raise TransportError(_slack_error("usergroups.users.list", exc)) from exc
        return frozenset(response.get("users") or [])


def _slack_error(method: str, exc: SlackApiError) -> str:
    error_code = exc.response.get("error") if getattr(exc, "response", None) else str(exc)
    LOGGER.warning("slack_api_error", extra={"method": method, "error": error_code})
    return f"{method} failed: {error_code}"
