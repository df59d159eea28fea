from __future__ import annotations

import threading
import time

from conftest import FakeClock, FakeDirectory
from group_access.services.directory import DirectoryError
from group_access.services.snapshot_cache import DirectorySnapshotCache


def test_eligible_groups_excludes_groups_with_the_member(snapshot_cache: DirectorySnapshotCache) -> None:
    assert snapshot_cache.eligible_groups("alice@x.com") == [("groups/g2", "G2")]
    assert snapshot_cache.eligible_groups("ALICE@x.com") == [("groups/g2", "G2")]
    assert snapshot_cache.eligible_groups("carol@x.com") == [("groups/g1", "G1"), ("groups/g2", "G2")]


def test_eligible_groups_is_empty_before_first_refresh(directory: FakeDirectory) -> None:
    cache = DirectorySnapshotCache(directory, customer_id="C0test")

    assert cache.current_snapshot() is None
    assert cache.eligible_groups("alice@x.com") == []


def test_refresh_lists_groups_under_customer(directory: FakeDirectory, clock: FakeClock) -> None:
    cache = DirectorySnapshotCache(directory, customer_id="C0test", clock=clock)

    assert cache.refresh() is True

    snapshot = cache.current_snapshot()
    assert directory.parents == ["customers/C0test"]
    assert [group.name for group in snapshot.groups] == ["groups/g1", "groups/g2"]
    assert snapshot.groups[0].memberships[0].member_key == "alice@x.com"
    assert snapshot.captured_at == clock.now


def test_failed_refresh_keeps_previous_snapshot(
    snapshot_cache: DirectorySnapshotCache,
    directory: FakeDirectory,
) -> None:
    previous = snapshot_cache.current_snapshot()
    directory.add_group("groups/g3", "G3", [])
    directory.membership_errors["groups/g3"] = DirectoryError("quota exceeded")

    assert snapshot_cache.refresh() is False
    assert snapshot_cache.current_snapshot() is previous

    directory.list_error = DirectoryError("unavailable")
    assert snapshot_cache.refresh() is False
    assert snapshot_cache.current_snapshot() is previous


def test_readers_never_see_a_half_built_snapshot(
    snapshot_cache: DirectorySnapshotCache,
    directory: FakeDirectory,
) -> None:
    previous = snapshot_cache.current_snapshot()
    directory.add_group("groups/g3", "G3", ["dave@x.com"])
    reached = threading.Event()
    release = threading.Event()
    list_memberships = directory.list_memberships

    def slow_list_memberships(group_name: str):  # noqa: ANN202
        if group_name == "groups/g3":
            reached.set()
            release.wait(5)
        return list_memberships(group_name)

    directory.list_memberships = slow_list_memberships  # type: ignore[method-assign]
    worker = threading.Thread(target=snapshot_cache.refresh)
    worker.start()
    assert reached.wait(5)

    assert snapshot_cache.current_snapshot() is previous
    assert len(snapshot_cache.current_snapshot().groups) == 2

    release.set()
    worker.join(5)
    assert [group.name for group in snapshot_cache.current_snapshot().groups] == [
        "groups/g1",
        "groups/g2",
        "groups/g3",
    ]


def test_background_loop_publishes_snapshot(directory: FakeDirectory) -> None:
    cache = DirectorySnapshotCache(directory, customer_id="C0test", interval_seconds=60)
    cache.start()
    try:
        deadline = time.monotonic() + 5
        while cache.current_snapshot() is None and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        cache.stop(timeout=5)

    assert cache.current_snapshot() is not None
    assert directory.parents == ["customers/C0test"]
