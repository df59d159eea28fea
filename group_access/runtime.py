"""Construct the bot's long-lived collaborators and wire them together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from slack_bolt import App
from slack_sdk import WebClient

from group_access.core.config import AppSettings
from group_access.events_engine.dispatcher import EventDispatcher
from group_access.services.chat import ChatTransport, SlackChatTransport
from group_access.services.directory import CloudIdentityDirectoryClient, DirectoryClient
from group_access.services.grant_store import GrantExpiryStore
from group_access.services.operations import OperationPoller
from group_access.services.request_registry import PendingRequestRegistry
from group_access.services.revocation import MembershipRevoker
from group_access.services.snapshot_cache import DirectorySnapshotCache
from group_access.workflows.approval import ApprovalWorkflow
from group_access.workflows.listing import DirectoryReporter

LOGGER = logging.getLogger("group_access.runtime")


@dataclass
class Runtime:
    """Every shared client and cache, passed explicitly to the handlers that use them."""

    settings: AppSettings
    directory: DirectoryClient
    transport: ChatTransport
    poller: OperationPoller
    snapshot_cache: DirectorySnapshotCache
    grant_store: GrantExpiryStore
    registry: PendingRequestRegistry
    workflow: ApprovalWorkflow
    reporter: DirectoryReporter
    dispatcher: EventDispatcher

    def start(self) -> None:
        self.snapshot_cache.start()
        self.grant_store.start()
        LOGGER.info("runtime_started")

    def stop(self) -> None:
        self.snapshot_cache.stop(timeout=5)
        self.grant_store.shutdown(wait=True)
        # Revocations drained above; no directory calls remain.
        self.directory.close()
        LOGGER.info("runtime_stopped", extra={"grants_dropped": len(self.grant_store)})


def build_runtime(
    settings: AppSettings,
    *,
    directory: Optional[DirectoryClient] = None,
    transport: Optional[ChatTransport] = None,
) -> Runtime:
    directory = directory or CloudIdentityDirectoryClient(base_url=settings.directory_api_url)
    transport = transport or SlackChatTransport(WebClient(token=settings.slack_bot_token))

    poller = OperationPoller(
        directory,
        initial_interval=settings.operation_initial_interval,
        max_interval=settings.operation_max_interval,
        multiplier=settings.operation_backoff_multiplier,
        timeout=settings.operation_timeout_seconds,
    )
    snapshot_cache = DirectorySnapshotCache(
        directory,
        customer_id=settings.org_customer_id,
        interval_seconds=settings.snapshot_refresh_seconds,
    )
    grant_store = GrantExpiryStore(
        MembershipRevoker(directory, poller),
        tick_seconds=settings.grant_tick_seconds,
        max_workers=settings.revocation_workers,
    )
    registry = PendingRequestRegistry(ttl_hours=settings.request_ttl_hours)
    workflow = ApprovalWorkflow(
        transport=transport,
        snapshot_cache=snapshot_cache,
        grant_store=grant_store,
        registry=registry,
        directory=directory,
        poller=poller,
        approver_group_id=settings.approver_group_id,
    )
    reporter = DirectoryReporter(
        transport=transport,
        snapshot_cache=snapshot_cache,
        grant_store=grant_store,
    )
    dispatcher = EventDispatcher(workflow=workflow, reporter=reporter)

    return Runtime(
        settings=settings,
        directory=directory,
        transport=transport,
        poller=poller,
        snapshot_cache=snapshot_cache,
        grant_store=grant_store,
        registry=registry,
        workflow=workflow,
        reporter=reporter,
        dispatcher=dispatcher,
    )


def build_bolt_app(settings: AppSettings, dispatcher: EventDispatcher) -> App:
    """Create the Bolt app used over Socket Mode and attach the dispatcher."""

    app = App(token=settings.slack_bot_token)
    dispatcher.register(app)
    return app
