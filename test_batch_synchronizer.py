#!/usr/bin/env python3
"""
Test suite for batch synchronization and per-path locking.

The coordinator and fork sync are mocked so these tests only exercise the
driver: ordering, de-duplication, cancellation, failure isolation and the
upstream gating.
"""

import threading
from unittest.mock import Mock

from coursesync.batch import BatchReport, BatchSynchronizer
from coursesync.git_sync.coordinator import CloneUpdateCoordinator
from coursesync.git_sync.error_types import GitErrorKind, RepositoryBusyError
from coursesync.git_sync.locks import PathLockRegistry
from coursesync.git_sync.repository_info import ForkSyncResult, LocalRepository, SyncOutcome, create_sync_attempt
from coursesync.interaction import RecordingInteraction
from sync_test_support import ScriptedRunner, create_test_config

ORIGIN = "https://gitlab.example.org/students/{}.git"
UPSTREAM = "https://gitlab.example.org/course/student-template.git"


def make_repos(tmp_path, *names, upstream=None):
    return [LocalRepository(tmp_path / name, ORIGIN.format(name), upstream_url=upstream) for name in names]


def make_synchronizer(outcome=SyncOutcome.UNCHANGED, fork_result=None):
    coordinator = Mock()
    coordinator.ensure_up_to_date.side_effect = lambda repo, credentials=None: create_sync_attempt(
        repo, outcome, "Already up to date"
    )
    fork_sync = Mock()
    fork_sync.sync_with_upstream.return_value = fork_result or ForkSyncResult(updated=False)
    return BatchSynchronizer(coordinator, fork_sync), coordinator, fork_sync


def test_repositories_processed_in_order_and_deduplicated(tmp_path):
    """Test that every unique path is synchronized exactly once, in order."""
    sync, coordinator, _ = make_synchronizer()
    alice, bob = make_repos(tmp_path, "alice", "bob")
    duplicate = LocalRepository(tmp_path / "alice" / ".." / "alice", ORIGIN.format("alice"))

    report = sync.sync_all([alice, bob, duplicate])

    assert [a.repository.path for a in report.attempts] == [alice.path, bob.path]
    assert coordinator.ensure_up_to_date.call_count == 2
    assert not report.cancelled


def test_cancellation_between_repositories(tmp_path):
    sync, coordinator, _ = make_synchronizer()
    repos = make_repos(tmp_path, "a", "b", "c")
    cancel = threading.Event()

    def cancel_after_first(repo, credentials=None):
        cancel.set()
        return create_sync_attempt(repo, SyncOutcome.UPDATED)

    coordinator.ensure_up_to_date.side_effect = cancel_after_first

    report = sync.sync_all(repos, cancel_event=cancel)

    # The in-flight repository completes; nothing after it starts
    assert len(report.attempts) == 1
    assert report.attempts[0].outcome == SyncOutcome.UPDATED
    assert report.cancelled


def test_unexpected_error_is_isolated(tmp_path):
    """Test that one crashing repository does not stop the batch."""
    sync, coordinator, _ = make_synchronizer()
    broken, healthy = make_repos(tmp_path, "broken", "healthy")

    def ensure(repo, credentials=None):
        if repo.path == broken.path:
            raise RuntimeError("disk on fire")
        return create_sync_attempt(repo, SyncOutcome.CLONED)

    coordinator.ensure_up_to_date.side_effect = ensure

    report = sync.sync_all([broken, healthy])

    assert [a.outcome for a in report.attempts] == [SyncOutcome.FAILED, SyncOutcome.CLONED]
    assert report.attempts[0].error_kind == GitErrorKind.UNKNOWN
    assert "disk on fire" in report.attempts[0].message


def test_fork_sync_runs_only_after_success_with_upstream(tmp_path):
    fork_result = ForkSyncResult(updated=True, message="Merged 2 commit(s) from upstream/main")
    sync, _, fork_sync = make_synchronizer(fork_result=fork_result)
    (with_upstream,) = make_repos(tmp_path, "forked", upstream=UPSTREAM)
    (without_upstream,) = make_repos(tmp_path, "plain")

    report = sync.sync_all([with_upstream, without_upstream])

    fork_sync.sync_with_upstream.assert_called_once_with(with_upstream, None)
    first, second = report.attempts
    assert first.upstream_updated is True
    assert first.message == "Already up to date; Merged 2 commit(s) from upstream/main"
    assert second.upstream_updated is None


def test_fork_sync_skipped_when_update_failed(tmp_path):
    for outcome in (SyncOutcome.FAILED, SyncOutcome.SKIPPED_DIRTY):
        sync, _, fork_sync = make_synchronizer(outcome=outcome)
        sync.sync_all(make_repos(tmp_path, "forked", upstream=UPSTREAM))
        fork_sync.sync_with_upstream.assert_not_called()


def test_report_counts_every_outcome(tmp_path):
    sync, _, _ = make_synchronizer(outcome=SyncOutcome.UPDATED)
    report = sync.sync_all(make_repos(tmp_path, "a", "b"))

    counts = report.counts
    assert set(counts) == {o.value for o in SyncOutcome}
    assert counts["updated"] == 2
    assert counts["skipped-dirty"] == 0

    data = report.to_dict()
    assert data["counts"] == counts
    assert data["attempts"][0]["origin_url"] == ORIGIN.format("a")
    assert BatchReport().counts["failed"] == 0


def test_progress_messages(tmp_path):
    sync, _, _ = make_synchronizer()
    messages = []

    sync.sync_all(make_repos(tmp_path, "a", "b"), on_progress=messages.append)

    assert messages == ["Synchronizing a (1/2)...", "Synchronizing b (2/2)..."]


def test_create_shares_components(tmp_path):
    """Test that the factory wires one probe, lock registry and command layer."""
    sync = BatchSynchronizer.create(create_test_config(tmp_path), RecordingInteraction(), runner=ScriptedRunner())

    assert sync.coordinator.locks is sync.fork_sync.locks
    assert sync.coordinator.probe is sync.fork_sync.probe
    assert sync.coordinator.operations is sync.fork_sync.operations


# PathLockRegistry

def test_lock_is_reentrant_on_one_thread(tmp_path):
    locks = PathLockRegistry()
    with locks.hold(tmp_path):
        with locks.hold(tmp_path / "."):
            pass
    assert locks.lock_for(tmp_path) is locks.lock_for(str(tmp_path))


def test_lock_refuses_second_thread(tmp_path):
    locks = PathLockRegistry()
    errors = []

    def contend():
        try:
            with locks.hold(tmp_path):
                pass
        except RepositoryBusyError as e:
            errors.append(e)

    with locks.hold(tmp_path):
        worker = threading.Thread(target=contend)
        worker.start()
        worker.join()

    assert len(errors) == 1
    assert errors[0].kind == GitErrorKind.CONFIGURATION

    # Released again afterwards
    worker = threading.Thread(target=contend)
    worker.start()
    worker.join()
    assert len(errors) == 1


def test_coordinator_reports_busy_repository(tmp_path):
    runner = ScriptedRunner()
    coordinator = CloneUpdateCoordinator(create_test_config(tmp_path), runner, RecordingInteraction())
    repo = LocalRepository(tmp_path / "repo", ORIGIN.format("repo"))
    result = []

    def run_elsewhere():
        result.append(coordinator.ensure_up_to_date(repo))

    with coordinator.locks.hold(repo.path):
        worker = threading.Thread(target=run_elsewhere)
        worker.start()
        worker.join()

    attempt = result[0]
    assert attempt.outcome == SyncOutcome.FAILED
    assert "already being synchronized" in attempt.message
    assert runner.calls == []
