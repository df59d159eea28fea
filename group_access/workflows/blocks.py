"""Block Kit payloads for each workflow step."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from group_access.schemas.membership_request import EXPIRATION_CHOICES, MembershipRequest

ADD_USER_BLOCK_ID = "add-user"
SELECT_USER_ACTION_ID = "select-user"
SUBMIT_SELECTING_USER_ACTION_ID = "submit-selecting-user"
SELECT_GROUP_ACTION_ID = "select-group"
SELECT_EXPIRATION_ACTION_ID = "select-expiration"
SUBMIT_ADDING_USER_ACTION_ID = "submit-adding-user"
ALLOW_ADDING_USER_ACTION_ID = "accept-adding-user"
DENY_ADDING_USER_ACTION_ID = "deny-adding-user"
CANCEL_ACTION_ID = "cancel"

GOOD_COLOR = "good"
DANGER_COLOR = "danger"

# Slack rejects static selects with more than 100 options.
MAX_SELECT_OPTIONS = 100

Block = Dict[str, Any]


def _plain(text: str) -> Dict[str, Any]:
    return {"type": "plain_text", "text": text, "emoji": True}


def _option(value: str, label: str) -> Dict[str, Any]:
    return {"text": _plain(label[:75]), "value": value}


def _button(action_id: str, label: str, *, value: str = "", style: Optional[str] = None) -> Block:
    button: Block = {"type": "button", "action_id": action_id, "text": _plain(label)}
    if value:
        button["value"] = value
    if style:
        button["style"] = style
    return button


def _cancel_button(value: str = "") -> Block:
    return _button(CANCEL_ACTION_ID, "cancel", value=value, style="danger")


def nominee_selection_blocks(requester_id: str) -> List[Block]:
    return [
        {
            "type": "actions",
            "block_id": ADD_USER_BLOCK_ID,
            "elements": [
                {
                    "type": "users_select",
                    "action_id": SELECT_USER_ACTION_ID,
                    "placeholder": _plain("Select a user"),
                    "initial_user": requester_id,
                },
                _button(SUBMIT_SELECTING_USER_ACTION_ID, "submit", style="primary"),
                _cancel_button(),
            ],
        }
    ]


def nominee_value(nominee_id: str, nominee_email: str) -> str:
    return json.dumps({"id": nominee_id, "email": nominee_email}, separators=(",", ":"))


def _static_select(
    action_id: str,
    placeholder: str,
    options: List[Dict[str, Any]],
    selected: Optional[str] = None,
) -> Block:
    element: Block = {
        "type": "static_select",
        "action_id": action_id,
        "placeholder": _plain(placeholder),
        "options": options,
    }
    # Slack rejects an initial_option that is not one of the options.
    initial = next((option for option in options if option["value"] == selected), None)
    if initial is not None:
        element["initial_option"] = initial
    return element


def group_and_expiration_blocks(
    nominee_id: str,
    nominee_email: str,
    groups: Sequence[Tuple[str, str]],
    *,
    selected_group: Optional[str] = None,
    selected_expiration: Optional[str] = None,
) -> List[Block]:
    """Group and expiration pickers; previously chosen values stay selected."""

    elements: List[Block] = []
    if groups:
        elements.append(
            _static_select(
                SELECT_GROUP_ACTION_ID,
                "Select a group",
                [_option(value, label) for value, label in groups[:MAX_SELECT_OPTIONS]],
                selected_group,
            )
        )
    elements.append(
        _static_select(
            SELECT_EXPIRATION_ACTION_ID,
            "Select an expiration",
            [_option(str(hours), label) for hours, label in EXPIRATION_CHOICES],
            selected_expiration,
        )
    )
    elements.append(
        _button(
            SUBMIT_ADDING_USER_ACTION_ID,
            "submit",
            value=nominee_value(nominee_id, nominee_email),
            style="primary",
        )
    )
    elements.append(_cancel_button())

    blocks: List[Block] = [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"Adding <@{nominee_id}> (`{nominee_email}`)."},
        },
        {"type": "actions", "block_id": ADD_USER_BLOCK_ID, "elements": elements},
    ]
    if not groups:
        blocks.insert(
            1,
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": "No groups are available for this user right now."}
                ],
            },
        )
    return blocks


def approval_request_text(request: MembershipRequest, approver_group_id: str) -> str:
    return (
        f"Requested from <@{request.requester_id}>.\n"
        f"<!subteam^{approver_group_id}> allows <@{request.nominee_id}> to join the "
        f"`{request.group_name}` group with an expiration time of `{request.expiration_label}`?"
    )


def approval_blocks(request: MembershipRequest, approver_group_id: str) -> List[Block]:
    value = request.encode()
    return [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": approval_request_text(request, approver_group_id)},
        },
        {
            "type": "actions",
            "block_id": ADD_USER_BLOCK_ID,
            "elements": [
                _button(ALLOW_ADDING_USER_ACTION_ID, "Allow", value=value, style="primary"),
                _button(DENY_ADDING_USER_ACTION_ID, "Deny", value=value, style="danger"),
                _cancel_button(value=value),
            ],
        },
    ]
