"""Events Engine package translating Slack events into workflow transitions."""

from .schemas import ActionContext, MentionEvent  # noqa: F401
