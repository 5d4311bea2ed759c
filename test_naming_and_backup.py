#!/usr/bin/env python3
"""
Test suite for checkout naming and working-tree backups.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

from coursesync.git_sync.backup import create_repository_backup
from coursesync.git_sync.naming import (
    backup_path_for,
    backup_timestamp,
    build_student_repo_root,
    build_upstream_template_url,
    derive_repository_directory_name,
    slugify,
)

WHEN = datetime(2024, 3, 5, 14, 7, 9, 123000, tzinfo=timezone.utc)


def test_slugify():
    assert slugify("Programming 1 / Exercise.git") == "programming-1-exercise"
    assert slugify("  already-slug_ok ") == "already-slug_ok"
    assert slugify("Ünïcode") == "n-code"
    assert slugify("///") is None
    assert slugify("") is None
    assert slugify(None) is None


def test_directory_name_precedence():
    """Test that full_path wins over path, which wins over the remote URL."""
    assert derive_repository_directory_name(
        full_path="courses/prog1/students/Alice.Smith",
        path="ignored",
        remote_url="https://host/ignored.git",
    ) == "alice-smith"
    assert derive_repository_directory_name(path="Team 7") == "team-7"
    assert derive_repository_directory_name(remote_url="https://host/group/Student-Repo.git") == "student-repo"
    assert derive_repository_directory_name(remote_url="git@host:group/solutions.git") == "solutions"


def test_directory_name_fallback():
    assert derive_repository_directory_name(course_id="Prog 1", member_id="42") == "prog-1-42"
    assert derive_repository_directory_name(course_id="prog1", submission_group_id="G9") == "prog1-g9"
    assert derive_repository_directory_name() == "course-member"
    # A URL without a usable segment falls through to the ids
    assert derive_repository_directory_name(remote_url="https://host/", course_id="c", member_id="m") == "c-m"


def test_roots_and_template_url(tmp_path):
    assert build_student_repo_root(tmp_path, "alice") == tmp_path / "students" / "alice"
    assert build_upstream_template_url(
        "https://gitlab.example.org/", "/courses/prog1/"
    ) == "https://gitlab.example.org/courses/prog1/student-template.git"


def test_backup_timestamp_is_filename_safe():
    assert backup_timestamp(WHEN) == "2024-03-05T14-07-09-123Z"
    # Naive datetimes are taken as UTC
    assert backup_timestamp(WHEN.replace(tzinfo=None)) == "2024-03-05T14-07-09-123Z"
    assert ":" not in backup_timestamp()


def test_backup_path_collisions(tmp_path):
    """Test that backups taken in the same millisecond never overwrite each other."""
    first = backup_path_for(tmp_path, "Alice Repo", WHEN)
    assert first == tmp_path / "alice-repo_2024-03-05T14-07-09-123Z"

    first.mkdir()
    second = backup_path_for(tmp_path, "Alice Repo", WHEN)
    assert second.name == "alice-repo_2024-03-05T14-07-09-123Z_2"

    second.mkdir()
    assert backup_path_for(tmp_path, "Alice Repo", WHEN).name.endswith("_3")


def test_backup_copies_working_tree_without_git(tmp_path):
    print("Testing repository backup")
    print("-" * 40)

    repo = tmp_path / "alice"
    (repo / ".git" / "objects").mkdir(parents=True)
    (repo / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (repo / "src").mkdir()
    (repo / "src" / "main.py").write_text("print('hi')\n")
    (repo / "untracked.txt").write_text("scratch\n")

    backup = create_repository_backup(repo, tmp_path / "backups", when=WHEN)

    assert backup == tmp_path / "backups" / "alice_2024-03-05T14-07-09-123Z"
    assert (backup / "src" / "main.py").read_text() == "print('hi')\n"
    assert (backup / "untracked.txt").exists()
    assert not (backup / ".git").exists()
    # The source is left alone
    assert (repo / ".git" / "HEAD").exists()
    print("  ✓ Working tree copied, .git excluded")


@pytest.mark.skipif(sys.platform == "win32", reason="symlinks need extra privileges on Windows")
def test_backup_keeps_symlinks_as_links(tmp_path):
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "data.txt").write_text("data")
    os.symlink("data.txt", repo / "link.txt")

    backup = create_repository_backup(repo, tmp_path / "backups", repo_name="Repo")

    assert (backup / "link.txt").is_symlink()
    assert os.readlink(backup / "link.txt") == "data.txt"
    assert backup.name.startswith("repo_")


def test_backup_of_missing_directory(tmp_path):
    assert create_repository_backup(tmp_path / "missing", tmp_path / "backups") is None
    assert not (tmp_path / "backups").exists()


def test_backup_names_do_not_collide(tmp_path):
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "a.txt").write_text("a")

    first = create_repository_backup(repo, tmp_path / "backups", when=WHEN)
    second = create_repository_backup(repo, tmp_path / "backups", when=WHEN)

    assert first != second
    assert Path(second).name.endswith("_2")
