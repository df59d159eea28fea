"""Approval workflow for temporary group membership."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional, Tuple
from uuid import uuid4

from group_access.events_engine.schemas import ActionContext
from group_access.schemas.directory import DecodeError
from group_access.schemas.membership_request import ALLOWED_EXPIRATIONS, MembershipRequest
from group_access.services.chat import ChatTransport, TransportError, attachment
from group_access.services.directory import DirectoryClient, DirectoryError
from group_access.services.grant_store import GrantExpiryStore
from group_access.services.operations import OperationPoller
from group_access.services.request_registry import PendingRequestRegistry
from group_access.services.snapshot_cache import DirectorySnapshotCache
from group_access.workflows import blocks
from group_access.workflows.state import PendingRequest, RequestState

LOGGER = logging.getLogger("group_access.workflows.approval")

MEMBER_ROLE = "MEMBER"
SELECTION_WARNING = "Must be selected before submission :warning:"
GENERIC_FAILURE = "Something went wrong while reading this request. Please start a new one :x:"


class SelectionError(ValueError):
    """Raised when a required selection is missing from a submitted step."""


class ApprovalWorkflow:
    """Carries a request from nominee selection through the approver decision.

    Nothing about a request is kept between the requester's steps; the
    nominee rides on the submit button and the full request on the approval
    buttons. Once posted for approval the request is also registered so that
    only the first decision on it takes effect.
    """

    def __init__(
        self,
        *,
        transport: ChatTransport,
        snapshot_cache: DirectorySnapshotCache,
        grant_store: GrantExpiryStore,
        registry: PendingRequestRegistry,
        directory: DirectoryClient,
        poller: OperationPoller,
        approver_group_id: str,
        id_factory: Callable[[], str] = lambda: uuid4().hex,
    ) -> None:
        self._transport = transport
        self._snapshots = snapshot_cache
        self._grants = grant_store
        self._registry = registry
        self._directory = directory
        self._poller = poller
        self._approver_group_id = approver_group_id
        self._id_factory = id_factory

    def start(self, channel_id: str, requester_id: str) -> RequestState:
        """Prompt the requester to pick the user to add."""

        self._send(
            "nominee_prompt",
            self._transport.post_ephemeral,
            channel_id,
            requester_id,
            text="Select a user to add to a group",
            blocks=blocks.nominee_selection_blocks(requester_id),
        )
        return RequestState.SELECTING_NOMINEE

    def submit_nominee(self, ctx: ActionContext) -> RequestState:
        try:
            nominee_id = _require(ctx.selected_user(blocks.ADD_USER_BLOCK_ID, blocks.SELECT_USER_ACTION_ID))
        except SelectionError:
            self._send(
                "nominee_prompt",
                self._transport.replace_original,
                ctx.response_url,
                text=SELECTION_WARNING,
                blocks=blocks.nominee_selection_blocks(ctx.actor_id),
                attachments=attachment(SELECTION_WARNING, blocks.DANGER_COLOR),
            )
            return RequestState.SELECTING_NOMINEE

        try:
            nominee = self._transport.get_user(nominee_id)
        except TransportError as exc:
            LOGGER.error("nominee_lookup_failed", extra={"nominee_id": nominee_id, "error": str(exc)})
            self._notify_actor(ctx, f"Could not look up <@{nominee_id}>: {exc} :x:")
            return RequestState.SELECTING_NOMINEE

        self._render_group_prompt(ctx, nominee.id, nominee.email)
        return RequestState.SELECTING_GROUP_AND_EXPIRATION

    def submit_group_and_expiration(self, ctx: ActionContext) -> RequestState:
        try:
            nominee_id, nominee_email = _decode_nominee(ctx.value)
        except DecodeError as exc:
            LOGGER.warning("nominee_payload_invalid", extra={"actor_id": ctx.actor_id, "error": str(exc)})
            self._notify_actor(ctx, GENERIC_FAILURE)
            return RequestState.INVALID

        group = ctx.selected_option(blocks.ADD_USER_BLOCK_ID, blocks.SELECT_GROUP_ACTION_ID)
        expiration = ctx.selected_option(blocks.ADD_USER_BLOCK_ID, blocks.SELECT_EXPIRATION_ACTION_ID)
        try:
            group_id, group_name = _require(group)
            expiration_value, _ = _require(expiration)
            expiration_hours = _parse_expiration(expiration_value)
        except SelectionError:
            self._render_group_prompt(
                ctx,
                nominee_id,
                nominee_email,
                warning=SELECTION_WARNING,
                selected_group=group[0] if group else None,
                selected_expiration=expiration[0] if expiration else None,
            )
            return RequestState.SELECTING_GROUP_AND_EXPIRATION

        request = MembershipRequest(
            request_id=self._id_factory(),
            nominee_email=nominee_email,
            nominee_id=nominee_id,
            group_id=group_id,
            group_name=group_name,
            expiration_hours=expiration_hours,
            requester_id=ctx.actor_id,
        )
        self._registry.register(PendingRequest.from_payload(request, channel_id=ctx.channel_id))

        try:
            self._transport.post_message(
                ctx.channel_id,
                text=blocks.approval_request_text(request, self._approver_group_id),
                blocks=blocks.approval_blocks(request, self._approver_group_id),
            )
        except TransportError as exc:
            LOGGER.error(
                "approval_prompt_failed",
                extra={"request_id": request.request_id, "error": str(exc)},
            )
            self._registry.claim(request.request_id, RequestState.CANCELLED)
            self._notify_actor(ctx, f"Your request could not be posted for approval: {exc} :x:")
            return RequestState.CANCELLED

        sent = (
            "Your request has been successfully sent. "
            f"It is awaiting approval from <!subteam^{self._approver_group_id}> :white_check_mark:"
        )
        self._send(
            "request_sent_notice",
            self._transport.replace_original,
            ctx.response_url,
            text=sent,
            attachments=attachment(sent, blocks.GOOD_COLOR),
        )
        LOGGER.info(
            "request_submitted",
            extra={
                "request_id": request.request_id,
                "requester_id": request.requester_id,
                "nominee": request.nominee_email,
                "group": request.group_id,
                "expiration_hours": request.expiration_hours,
            },
        )
        return RequestState.AWAITING_APPROVAL

    def approve(self, ctx: ActionContext) -> Optional[RequestState]:
        request = self._resolve(ctx, RequestState.APPROVED)
        if not isinstance(request, PendingRequest):
            return request

        self._send("approval_prompt_cleanup", self._transport.delete_original, ctx.response_url)

        try:
            operation = self._directory.create_membership(
                request.group_id, request.nominee_email, [MEMBER_ROLE]
            )
            membership = self._poller.wait_for_membership(operation)
        except (DirectoryError, DecodeError) as exc:
            LOGGER.error(
                "membership_create_failed",
                extra={"request_id": request.request_id, "group": request.group_id, "error": str(exc)},
            )
            message = (
                f"Request of <@{request.requester_id}> has been approved by <@{ctx.actor_id}>, "
                f"but it failed with an error.\n{exc}."
            )
            self._announce(ctx.channel_id, message, blocks.DANGER_COLOR)
            return RequestState.APPROVED

        self._grants.add(
            membership.name,
            member_key=request.nominee_email,
            group_name=request.group_name,
            ttl_hours=request.expiration_hours,
        )
        LOGGER.info(
            "request_approved",
            extra={
                "request_id": request.request_id,
                "approver_id": ctx.actor_id,
                "membership": membership.name,
            },
        )
        message = (
            f"Request of <@{request.requester_id}> has been approved by <@{ctx.actor_id}> "
            f"and processed successfully.\n<@{request.nominee_id}> has joined the "
            f"`{request.group_name}` group for `{request.expiration_label}`."
        )
        self._announce(ctx.channel_id, message, blocks.GOOD_COLOR)
        return RequestState.APPROVED

    def deny(self, ctx: ActionContext) -> Optional[RequestState]:
        request = self._resolve(ctx, RequestState.DENIED)
        if not isinstance(request, PendingRequest):
            return request

        self._send("approval_prompt_cleanup", self._transport.delete_original, ctx.response_url)
        LOGGER.info(
            "request_denied",
            extra={"request_id": request.request_id, "approver_id": ctx.actor_id},
        )
        message = (
            f"Request of <@{request.requester_id}> is denied by <@{ctx.actor_id}>.\n"
            f"<@{request.nominee_id}> did not join `{request.group_name}` group."
        )
        self._announce(ctx.channel_id, message, blocks.DANGER_COLOR)
        return RequestState.DENIED

    def cancel(self, ctx: ActionContext) -> Optional[RequestState]:
        if not ctx.value:
            # Cancelled from one of the requester's own ephemeral prompts.
            self._replace_with_notice(ctx, "Successfully cancelled :white_check_mark:", blocks.GOOD_COLOR)
            return RequestState.CANCELLED

        try:
            request = MembershipRequest.decode(ctx.value)
        except DecodeError as exc:
            return self._reject_payload(ctx, exc)

        if ctx.actor_id != request.requester_id:
            self._notify_actor(ctx, f"Only <@{request.requester_id}> can cancel this request.")
            return None
        claimed = self._registry.claim(request.request_id, RequestState.CANCELLED)
        if claimed is None:
            self._notify_actor(ctx, "This request has already been handled or has expired.")
            return None

        LOGGER.info("request_cancelled", extra={"request_id": claimed.request_id})
        self._replace_with_notice(
            ctx,
            f"Request of <@{claimed.requester_id}> to add <@{claimed.nominee_id}> to "
            f"`{claimed.group_name}` was cancelled :white_check_mark:",
            blocks.GOOD_COLOR,
        )
        return RequestState.CANCELLED

    def _resolve(self, ctx: ActionContext, state: RequestState) -> Any:
        """Decode, authorize, and claim an approval action.

        Returns the claimed ``PendingRequest`` when the caller should proceed,
        otherwise the state to report (``INVALID``) or ``None`` when nothing
        changed. The registered record, not the button payload, is what gets
        acted on.
        """

        try:
            request = MembershipRequest.decode(ctx.value)
        except DecodeError as exc:
            return self._reject_payload(ctx, exc)

        if not self._is_approver(ctx):
            return None

        claimed = self._registry.claim(request.request_id, state)
        if claimed is None:
            LOGGER.warning(
                "request_already_resolved",
                extra={"request_id": request.request_id, "actor_id": ctx.actor_id, "state": state.value},
            )
            self._notify_actor(ctx, "This request has already been handled or has expired.")
            return None
        if not claimed.matches(request):
            LOGGER.warning(
                "request_payload_mismatch",
                extra={"request_id": request.request_id, "actor_id": ctx.actor_id},
            )
        return claimed

    def _is_approver(self, ctx: ActionContext) -> bool:
        try:
            approvers = self._transport.list_usergroup_members(self._approver_group_id)
        except TransportError as exc:
            LOGGER.error("approver_lookup_failed", extra={"actor_id": ctx.actor_id, "error": str(exc)})
            self._notify_actor(ctx, "Could not verify approver membership, please try again.")
            return False
        if ctx.actor_id not in approvers:
            LOGGER.warning("approval_unauthorized", extra={"actor_id": ctx.actor_id})
            self._notify_actor(
                ctx,
                f"Only members of <!subteam^{self._approver_group_id}> can approve or deny this request.",
            )
            return False
        return True

    def _reject_payload(self, ctx: ActionContext, exc: DecodeError) -> RequestState:
        LOGGER.warning(
            "request_payload_invalid",
            extra={"actor_id": ctx.actor_id, "action_id": ctx.action_id, "error": str(exc)},
        )
        self._notify_actor(ctx, GENERIC_FAILURE)
        return RequestState.INVALID

    def _render_group_prompt(
        self,
        ctx: ActionContext,
        nominee_id: str,
        nominee_email: str,
        *,
        warning: Optional[str] = None,
        selected_group: Optional[str] = None,
        selected_expiration: Optional[str] = None,
    ) -> None:
        groups = self._snapshots.eligible_groups(nominee_email)
        self._send(
            "group_prompt",
            self._transport.replace_original,
            ctx.response_url,
            text=warning or "Select a group and an expiration",
            blocks=blocks.group_and_expiration_blocks(
                nominee_id,
                nominee_email,
                groups,
                selected_group=selected_group,
                selected_expiration=selected_expiration,
            ),
            attachments=attachment(warning, blocks.DANGER_COLOR) if warning else None,
        )

    def _replace_with_notice(self, ctx: ActionContext, text: str, color: str) -> None:
        self._send(
            "notice",
            self._transport.replace_original,
            ctx.response_url,
            text=text,
            attachments=attachment(text, color),
        )

    def _notify_actor(self, ctx: ActionContext, text: str) -> None:
        self._send(
            "actor_notice",
            self._transport.post_ephemeral,
            ctx.channel_id,
            ctx.actor_id,
            text=text,
            attachments=attachment(text, blocks.DANGER_COLOR),
        )

    def _announce(self, channel_id: str, text: str, color: str) -> None:
        self._send(
            "announcement",
            self._transport.post_message,
            channel_id,
            text=text,
            attachments=attachment(text, color),
        )

    def _send(self, purpose: str, method: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        try:
            method(*args, **kwargs)
        except TransportError as exc:
            LOGGER.error("chat_delivery_failed", extra={"purpose": purpose, "error": str(exc)})


def _require(value: Any) -> Any:
    if not value:
        raise SelectionError("missing selection")
    return value


def _parse_expiration(value: str) -> int:
    try:
        hours = int(value)
    except ValueError as exc:
        raise SelectionError(f"invalid expiration {value!r}") from exc
    if hours not in ALLOWED_EXPIRATIONS:
        raise SelectionError(f"invalid expiration {value!r}")
    return hours


def _decode_nominee(raw: str) -> Tuple[str, str]:
    try:
        data = json.loads(raw) if raw else None
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Nominee payload is not JSON: {exc.msg}") from exc
    if not isinstance(data, dict) or not data.get("id") or not data.get("email"):
        raise DecodeError("Nominee payload must carry an id and an email")
    return str(data["id"]), str(data["email"])
