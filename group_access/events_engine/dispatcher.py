"""Route Slack events to workflow transitions."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, Optional

from slack_bolt import Ack, App

from group_access.events_engine.schemas import ActionContext, MentionEvent
from group_access.workflows import blocks
from group_access.workflows.approval import ApprovalWorkflow
from group_access.workflows.listing import DirectoryReporter
from group_access.workflows.state import RequestState

LOGGER = logging.getLogger("group_access.events_engine.dispatcher")

# Select menus fire block_actions on change; only the submit buttons carry a transition.
_SELECT_ACTION_IDS = (
    blocks.SELECT_USER_ACTION_ID,
    blocks.SELECT_GROUP_ACTION_ID,
    blocks.SELECT_EXPIRATION_ACTION_ID,
)


def _action_pattern(action_ids: Any) -> "re.Pattern[str]":
    return re.compile("^(" + "|".join(re.escape(action_id) for action_id in action_ids) + ")$")


class EventDispatcher:
    """Maps mentions and block actions onto the approval workflow.

    Holds no state of its own; every request's context travels in the
    Slack payload.
    """

    def __init__(self, *, workflow: ApprovalWorkflow, reporter: DirectoryReporter) -> None:
        self._workflow = workflow
        self._reporter = reporter
        self._action_routes: Dict[str, Callable[[ActionContext], Optional[RequestState]]] = {
            blocks.SUBMIT_SELECTING_USER_ACTION_ID: workflow.submit_nominee,
            blocks.SUBMIT_ADDING_USER_ACTION_ID: workflow.submit_group_and_expiration,
            blocks.ALLOW_ADDING_USER_ACTION_ID: workflow.approve,
            blocks.DENY_ADDING_USER_ACTION_ID: workflow.deny,
            blocks.CANCEL_ACTION_ID: workflow.cancel,
        }

    def handle_mention(self, event: Dict[str, Any]) -> Optional[str]:
        """Run the command in an ``app_mention``; return its name or ``None`` if ignored."""

        mention = MentionEvent.from_event(event)
        tokens = [token.lower() for token in mention.tokens]
        if len(tokens) < 2:
            LOGGER.debug("mention_ignored", extra={"user_id": mention.user_id, "text": mention.text})
            return None

        command = f"{tokens[0]} {tokens[1]}"
        LOGGER.info(
            "mention_received",
            extra={"command": command, "user_id": mention.user_id, "channel_id": mention.channel_id},
        )
        if command == "add member":
            self._workflow.start(mention.channel_id, mention.user_id)
        elif command in ("list group", "list groups"):
            self._reporter.list_groups(mention.channel_id, mention.user_id)
        elif command in ("list member", "list members"):
            self._reporter.list_grants(mention.channel_id, mention.user_id)
        else:
            self._reporter.send_usage(mention.channel_id, mention.user_id)
            return "usage"
        return command

    def handle_action(self, body: Dict[str, Any]) -> Optional[RequestState]:
        """Apply the transition for the last action in a ``block_actions`` payload."""

        ctx = ActionContext.from_body(body)
        route = self._action_routes.get(ctx.action_id)
        if route is None:
            LOGGER.debug("action_ignored", extra={"action_id": ctx.action_id})
            return None

        state = route(ctx)
        LOGGER.info(
            "action_handled",
            extra={
                "action_id": ctx.action_id,
                "actor_id": ctx.actor_id,
                "state": state.value if state else None,
            },
        )
        return state

    def register(self, app: App) -> None:
        """Attach listeners to a Bolt app; every listener acks before doing work."""

        @app.event("app_mention")
        def on_app_mention(event: Dict[str, Any]) -> None:
            self.handle_mention(event)

        @app.action(_action_pattern(self._action_routes))
        def on_block_action(ack: Ack, body: Dict[str, Any]) -> None:
            ack()
            self.handle_action(body)

        @app.action(_action_pattern(_SELECT_ACTION_IDS))
        def on_select(ack: Ack) -> None:
            ack()
