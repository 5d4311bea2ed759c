#!/usr/bin/env python3
"""
Test suite for backup-and-reclone recovery.

The cloner is replaced by plain functions so the tests can control whether
the fresh clone succeeds, and verify that the working directory is either
replaced completely or left untouched.
"""

from pathlib import Path
from unittest.mock import patch

from coursesync.git_sync.error_types import GitErrorKind
from coursesync.git_sync.recovery import HistoryRewriteRecovery
from coursesync.git_sync.repository_info import LocalRepository, SyncOutcome
from coursesync.interaction import RecordingInteraction
from sync_test_support import create_test_config, git_error

ORIGIN = "https://gitlab.example.org/course/student.git"


def make_old_checkout(path: Path) -> Path:
    (path / ".git").mkdir(parents=True)
    (path / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (path / "solution.py").write_text("print('my work')\n")
    (path / "notes").mkdir()
    (path / "notes" / "todo.md").write_text("- finish exercise 2\n")
    return path


def successful_cloner(repo, target, credentials):
    (target / ".git").mkdir(parents=True)
    (target / "README.md").write_text("# rewritten template\n")
    return 1


def failing_cloner(repo, target, credentials):
    target.mkdir(parents=True)
    (target / "partial").write_text("half a clone")
    raise git_error(["clone"], "fatal: unable to access: Could not resolve host: gitlab.example.org")


def test_recovery_replaces_checkout_and_keeps_backup(tmp_path):
    """Test the successful path: backup without .git, fresh checkout in place."""
    config = create_test_config(tmp_path)
    repo_path = make_old_checkout(tmp_path / "workspace" / "students" / "student")
    interaction = RecordingInteraction(confirm_answer=True)
    recovery = HistoryRewriteRecovery(config, interaction, successful_cloner)
    repo = LocalRepository(repo_path, ORIGIN)

    attempt = recovery.recover(repo, None, git_error(["pull"], "fatal: Not possible to fast-forward, aborting."))

    assert attempt.outcome == SyncOutcome.RECOVERED
    assert (repo_path / "README.md").exists()
    assert not (repo_path / "solution.py").exists()

    backup = attempt.backup_path
    assert backup is not None and backup.parent == config.backups_root
    assert (backup / "solution.py").read_text() == "print('my work')\n"
    assert (backup / "notes" / "todo.md").exists()
    assert not (backup / ".git").exists()

    # No staging or retired directories are left next to the checkout
    assert sorted(p.name for p in repo_path.parent.iterdir()) == ["student"]

    assert interaction.messages_of("warning")
    assert str(backup) in interaction.confirmations[0]
    assert interaction.revealed == [backup]


def test_backup_is_not_revealed_when_declined(tmp_path):
    config = create_test_config(tmp_path)
    repo_path = make_old_checkout(tmp_path / "repo")
    interaction = RecordingInteraction(confirm_answer=False)
    recovery = HistoryRewriteRecovery(config, interaction, successful_cloner)

    attempt = recovery.recover(LocalRepository(repo_path, ORIGIN), None)

    assert attempt.outcome == SyncOutcome.RECOVERED
    assert interaction.revealed == []


def test_failed_reclone_leaves_checkout_untouched(tmp_path):
    """Test that a failed re-clone never leaves a half-deleted directory."""
    config = create_test_config(tmp_path)
    repo_path = make_old_checkout(tmp_path / "repo")
    interaction = RecordingInteraction()
    recovery = HistoryRewriteRecovery(config, interaction, failing_cloner)

    attempt = recovery.recover(LocalRepository(repo_path, ORIGIN), None)

    assert attempt.outcome == SyncOutcome.FAILED
    assert attempt.error_kind == GitErrorKind.NETWORK
    assert (repo_path / "solution.py").exists()
    assert (repo_path / ".git" / "HEAD").exists()
    assert sorted(p.name for p in repo_path.parent.iterdir() if p.name != "workspace") == ["repo"]

    errors = interaction.messages_of("error")
    assert errors and str(attempt.backup_path) in errors[0]


def test_backup_failure_does_not_block_recovery(tmp_path):
    config = create_test_config(tmp_path)
    repo_path = make_old_checkout(tmp_path / "repo")
    interaction = RecordingInteraction(confirm_answer=True)
    recovery = HistoryRewriteRecovery(config, interaction, successful_cloner)

    with patch("coursesync.git_sync.recovery.create_repository_backup", side_effect=OSError("disk full")):
        attempt = recovery.recover(LocalRepository(repo_path, ORIGIN), None)

    assert attempt.outcome == SyncOutcome.RECOVERED
    assert attempt.backup_path is None
    assert (repo_path / "README.md").exists()
    assert any("No backup could be created" in message for message in interaction.messages_of("info"))
    assert interaction.revealed == []


def test_failed_reclone_without_backup_says_so(tmp_path):
    config = create_test_config(tmp_path)
    repo_path = make_old_checkout(tmp_path / "repo")
    interaction = RecordingInteraction()
    recovery = HistoryRewriteRecovery(config, interaction, failing_cloner)

    with patch("coursesync.git_sync.recovery.create_repository_backup", side_effect=OSError("disk full")):
        attempt = recovery.recover(LocalRepository(repo_path, ORIGIN), None)

    assert attempt.outcome == SyncOutcome.FAILED
    assert "No backup was created" in interaction.messages_of("error")[0]
    assert (repo_path / "solution.py").exists()
