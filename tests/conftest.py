import os
import sys
from concurrent.futures import Executor, Future
from datetime import datetime, timedelta, timezone
from itertools import count
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

os.environ.setdefault("SLACK_APP_TOKEN", "xapp-test")
os.environ.setdefault("SLACK_BOT_TOKEN", "xoxb-test")
os.environ.setdefault("ORG_CUSTOMER_ID", "C0test")
os.environ.setdefault("APPROVER_GROUP_ID", "S0APPROVERS")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from group_access.core.config import get_settings  # noqa: E402

get_settings.cache_clear()

from group_access.events_engine.dispatcher import EventDispatcher  # noqa: E402
from group_access.schemas.directory import Group, Membership, Operation  # noqa: E402
from group_access.services.chat import SlackUser, TransportError  # noqa: E402
from group_access.services.grant_store import GrantExpiryStore  # noqa: E402
from group_access.services.operations import OperationPoller  # noqa: E402
from group_access.services.request_registry import PendingRequestRegistry  # noqa: E402
from group_access.services.revocation import MembershipRevoker  # noqa: E402
from group_access.services.snapshot_cache import DirectorySnapshotCache  # noqa: E402
from group_access.workflows.approval import ApprovalWorkflow  # noqa: E402
from group_access.workflows.listing import DirectoryReporter  # noqa: E402

REQUESTER = "U_REQUESTER"
APPROVER = "U_APPROVER"
NOMINEE = "U_BOB"
NOMINEE_EMAIL = "bob@x.com"
CHANNEL = "C_ACCESS"
APPROVER_GROUP = "S0APPROVERS"


class FakeClock:
    """Settable wall clock for TTL tests."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeTimer:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def clock(self) -> float:
        return self.now


class InlineExecutor(Executor):
    """Runs submitted jobs on the calling thread."""

    def submit(self, fn, /, *args, **kwargs):  # noqa: ANN001, ANN201
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:  # noqa: BLE001
            future.set_exception(exc)
        return future


class FakeDirectory:
    def __init__(self) -> None:
        self.groups: List[Group] = []
        self.memberships: Dict[str, List[Membership]] = {}
        self.parents: List[str] = []
        self.created: List[tuple] = []
        self.deleted: List[str] = []
        self.polled: List[str] = []
        self.operations: Dict[str, List[Operation]] = {}
        self.list_error: Optional[Exception] = None
        self.membership_errors: Dict[str, Exception] = {}
        self.create_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self._ids = count(1)
        self.closed = False

    def add_group(self, name: str, display_name: str, members: List[str]) -> Group:
        group = Group(name=name, display_name=display_name)
        self.groups.append(group)
        self.memberships[name] = [
            Membership(name=f"{name}/memberships/{index}", member_key=email, roles=("MEMBER",))
            for index, email in enumerate(members)
        ]
        return group

    def list_groups(self, parent: str) -> List[Group]:
        self.parents.append(parent)
        if self.list_error:
            raise self.list_error
        return list(self.groups)

    def list_memberships(self, group_name: str) -> List[Membership]:
        if group_name in self.membership_errors:
            raise self.membership_errors[group_name]
        return list(self.memberships.get(group_name, []))

    def create_membership(self, group_name: str, member_key: str, roles) -> Operation:  # noqa: ANN001
        self.created.append((group_name, member_key, list(roles)))
        if self.create_error:
            raise self.create_error
        name = f"{group_name}/memberships/new-{next(self._ids)}"
        return Operation(
            done=True,
            response={
                "@type": "type.googleapis.com/google.apps.cloudidentity.groups.v1beta1.Membership",
                "name": name,
                "preferredMemberKey": {"id": member_key},
                "roles": [{"name": role} for role in roles],
            },
        )

    def delete_membership(self, membership_name: str) -> Operation:
        self.deleted.append(membership_name)
        if self.delete_error:
            raise self.delete_error
        return Operation(done=True, response={})

    def get_operation(self, operation_name: str) -> Operation:
        self.polled.append(operation_name)
        sequence = self.operations[operation_name]
        return sequence.pop(0) if len(sequence) > 1 else sequence[0]

    def close(self) -> None:
        self.closed = True


class FakeTransport:
    def __init__(self) -> None:
        self.messages: List[Dict[str, Any]] = []
        self.ephemerals: List[Dict[str, Any]] = []
        self.replaced: List[Dict[str, Any]] = []
        self.deleted: List[str] = []
        self.users: Dict[str, SlackUser] = {}
        self.approvers = frozenset({APPROVER})
        self.fail_post_message = False

    def post_message(self, channel, *, text, blocks=None, attachments=None):  # noqa: ANN001, ANN201
        if self.fail_post_message:
            raise TransportError("chat.postMessage failed: channel_not_found")
        self.messages.append({"channel": channel, "text": text, "blocks": blocks, "attachments": attachments})
        return f"{len(self.messages)}.000"

    def post_ephemeral(self, channel, user, *, text, blocks=None, attachments=None):  # noqa: ANN001, ANN201
        self.ephemerals.append(
            {"channel": channel, "user": user, "text": text, "blocks": blocks, "attachments": attachments}
        )

    def replace_original(self, response_url, *, text, blocks=None, attachments=None):  # noqa: ANN001, ANN201
        self.replaced.append({"url": response_url, "text": text, "blocks": blocks, "attachments": attachments})

    def delete_original(self, response_url):  # noqa: ANN001, ANN201
        self.deleted.append(response_url)

    def get_user(self, user_id):  # noqa: ANN001, ANN201
        try:
            return self.users[user_id]
        except KeyError:
            raise TransportError("users.info failed: user_not_found") from None

    def list_usergroup_members(self, usergroup_id):  # noqa: ANN001, ANN201
        return self.approvers


def action_body(
    action_id: str,
    *,
    user: str = REQUESTER,
    value: str = "",
    state: Optional[Dict[str, Dict[str, Any]]] = None,
    channel: str = CHANNEL,
) -> Dict[str, Any]:
    """A trimmed ``block_actions`` payload as delivered by Socket Mode."""

    action: Dict[str, Any] = {"action_id": action_id, "block_id": "add-user", "type": "button"}
    if value:
        action["value"] = value
    return {
        "type": "block_actions",
        "user": {"id": user},
        "channel": {"id": channel},
        "container": {"type": "message", "channel_id": channel, "is_ephemeral": True},
        "response_url": f"https://hooks.slack.test/actions/{action_id}",
        "state": {"values": state or {}},
        "actions": [action],
    }


def option_state(value: str, label: str) -> Dict[str, Any]:
    return {"type": "static_select", "selected_option": {"value": value, "text": {"type": "plain_text", "text": label}}}


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def directory() -> FakeDirectory:
    fake = FakeDirectory()
    fake.add_group("groups/g1", "G1", ["alice@x.com"])
    fake.add_group("groups/g2", "G2", [])
    return fake


@pytest.fixture()
def transport() -> FakeTransport:
    fake = FakeTransport()
    fake.users[NOMINEE] = SlackUser(id=NOMINEE, email=NOMINEE_EMAIL, name="Bob")
    return fake


@pytest.fixture()
def poller(directory: FakeDirectory) -> OperationPoller:
    timer = FakeTimer()
    return OperationPoller(directory, timeout=30, sleep=timer.sleep, clock=timer.clock)


@pytest.fixture()
def snapshot_cache(directory: FakeDirectory, clock: FakeClock) -> DirectorySnapshotCache:
    cache = DirectorySnapshotCache(directory, customer_id="C0test", clock=clock)
    assert cache.refresh()
    return cache


@pytest.fixture()
def grant_store(directory: FakeDirectory, poller: OperationPoller, clock: FakeClock) -> GrantExpiryStore:
    return GrantExpiryStore(MembershipRevoker(directory, poller), executor=InlineExecutor(), clock=clock)


@pytest.fixture()
def registry(clock: FakeClock) -> PendingRequestRegistry:
    return PendingRequestRegistry(ttl_hours=72, clock=clock)


@pytest.fixture()
def workflow(
    transport: FakeTransport,
    snapshot_cache: DirectorySnapshotCache,
    grant_store: GrantExpiryStore,
    registry: PendingRequestRegistry,
    directory: FakeDirectory,
    poller: OperationPoller,
) -> ApprovalWorkflow:
    ids = count(1)
    return ApprovalWorkflow(
        transport=transport,
        snapshot_cache=snapshot_cache,
        grant_store=grant_store,
        registry=registry,
        directory=directory,
        poller=poller,
        approver_group_id=APPROVER_GROUP,
        id_factory=lambda: f"req-{next(ids)}",
    )


@pytest.fixture()
def reporter(
    transport: FakeTransport,
    snapshot_cache: DirectorySnapshotCache,
    grant_store: GrantExpiryStore,
    clock: FakeClock,
) -> DirectoryReporter:
    return DirectoryReporter(
        transport=transport,
        snapshot_cache=snapshot_cache,
        grant_store=grant_store,
        clock=clock,
    )


@pytest.fixture()
def dispatcher(workflow: ApprovalWorkflow, reporter: DirectoryReporter) -> EventDispatcher:
    return EventDispatcher(workflow=workflow, reporter=reporter)
