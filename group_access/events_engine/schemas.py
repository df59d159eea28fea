"""Normalized views of inbound Slack events."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class MentionEvent:
    """An ``app_mention`` reduced to its routing fields."""

    channel_id: str
    user_id: str
    text: str

    @property
    def tokens(self) -> List[str]:
        # The first token is the bot mention itself.
        return self.text.strip().split()[1:]

    @classmethod
    def from_event(cls, event: Dict[str, Any]) -> "MentionEvent":
        return cls(
            channel_id=event.get("channel", ""),
            user_id=event.get("user", ""),
            text=event.get("text", "") or "",
        )


@dataclass(frozen=True)
class ActionContext:
    """The acting user, the triggering element, and the submitted input state."""

    action_id: str
    actor_id: str
    channel_id: str
    response_url: str = ""
    value: str = ""
    state_values: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_body(cls, body: Dict[str, Any]) -> "ActionContext":
        """Build a context from a ``block_actions`` payload; the last action wins."""

        actions = body.get("actions") or [{}]
        action = actions[-1]
        channel = body.get("channel") or {}
        container = body.get("container") or {}
        return cls(
            action_id=action.get("action_id", ""),
            actor_id=(body.get("user") or {}).get("id", ""),
            channel_id=channel.get("id") or container.get("channel_id", ""),
            response_url=body.get("response_url", ""),
            value=action.get("value", "") or "",
            state_values=(body.get("state") or {}).get("values") or {},
        )

    def _element(self, block_id: str, action_id: str) -> Dict[str, Any]:
        return (self.state_values.get(block_id) or {}).get(action_id) or {}

    def selected_user(self, block_id: str, action_id: str) -> Optional[str]:
        return self._element(block_id, action_id).get("selected_user") or None

    def selected_option(self, block_id: str, action_id: str) -> Optional[Tuple[str, str]]:
        """Return (value, label) of a static select, or ``None`` if nothing is chosen."""

        option = self._element(block_id, action_id).get("selected_option") or {}
        value = option.get("value")
        if not value:
            return None
        label = (option.get("text") or {}).get("text") or value
        return value, label
