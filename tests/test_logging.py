from __future__ import annotations

import json
import logging

import pytest

from group_access.core.config import AppSettings
from group_access.core.logging import JsonFormatter, configure_logging


def _record(**extra) -> logging.LogRecord:  # noqa: ANN003
    record = logging.LogRecord(
        name="group_access.services.grant_store",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="grant_expired",
        args=(),
        exc_info=None,
    )
    record.__dict__.update(extra)
    return record


def test_json_formatter_promotes_correlation_fields() -> None:
    formatter = JsonFormatter("group-access-bot")

    entry = json.loads(
        formatter.format(_record(request_id="req-1", membership="groups/g2/memberships/m1", group="G2"))
    )

    assert entry["event"] == "grant_expired"
    assert entry["service"] == "group-access-bot"
    assert entry["logger"] == "group_access.services.grant_store"
    assert entry["request_id"] == "req-1"
    assert entry["membership"] == "groups/g2/memberships/m1"
    assert entry["extra"] == {"group": "G2"}
    assert entry["timestamp"].endswith("Z")


def test_json_formatter_omits_empty_extra() -> None:
    entry = json.loads(JsonFormatter("svc").format(_record()))

    assert "extra" not in entry
    assert "exception" not in entry


@pytest.fixture()
def restore_logging():  # noqa: ANN201
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    for name in ("httpx", "uvicorn.access", "slack_bolt"):
        logging.getLogger(name).setLevel(logging.NOTSET)


def test_configure_logging_routes_library_loggers(restore_logging) -> None:  # noqa: ANN001
    settings = AppSettings(
        _env_file=None,
        slack_app_token="xapp-test",
        slack_bot_token="xoxb-test",
        org_customer_id="C0test",
        approver_group_id="S0APPROVERS",
        log_level="debug",
    )
    logging.getLogger("slack_bolt").addHandler(logging.NullHandler())

    configure_logging(settings)

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert isinstance(root.handlers[0].formatter, JsonFormatter)
    assert logging.getLogger("slack_bolt").handlers == []
    assert logging.getLogger("slack_bolt").propagate is True
    assert logging.getLogger("httpx").level == logging.WARNING
