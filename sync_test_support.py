"""
Shared helpers for the coursesync test suite.

Provides a scripted CommandRunner for unit tests and small wrappers around
the real git binary for building local bare "remotes".
"""

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from coursesync.config import Config
from coursesync.git_sync.error_types import GitOperationError
from coursesync.git_sync.runner import CommandResult

GIT_AVAILABLE = shutil.which("git") is not None

# Identity used for every commit and stash the tests create
IDENTITY_ENV = {
    "GIT_AUTHOR_NAME": "Test Student",
    "GIT_AUTHOR_EMAIL": "student@example.com",
    "GIT_COMMITTER_NAME": "Test Student",
    "GIT_COMMITTER_EMAIL": "student@example.com",
}


def create_test_config(temp_dir: Path, **overrides) -> Config:
    """Create a test configuration rooted in a temporary directory."""
    values = dict(
        workspace_root=temp_dir / "workspace",
        git_retry_attempts=1,
        git_retry_delay=0.0,
        git_timeout=60.0,
    )
    values.update(overrides)
    return Config(**values)


def git_error(args: Sequence[str], stderr: str, status: int = 128) -> GitOperationError:
    return GitOperationError(["git", *args], status, stderr)


@dataclass
class _Rule:
    prefix: Tuple[str, ...]
    stdout: str = ""
    error: Optional[Exception] = None
    action: Optional[Callable[[List[str], Path], Optional[CommandResult]]] = None
    times: Optional[int] = None


class ScriptedRunner:
    """
    CommandRunner fake answering git commands from registered rules.

    Rules are matched by argument prefix in registration order; a rule with
    ``times`` stops matching once used up. Unmatched commands succeed with
    empty output. Every call is recorded in ``calls``.
    """

    def __init__(self):
        self.rules: List[_Rule] = []
        self.calls: List[List[str]] = []

    def on(
        self,
        *prefix: str,
        stdout: str = "",
        error: Optional[Exception] = None,
        action: Optional[Callable[[List[str], Path], Optional[CommandResult]]] = None,
        times: Optional[int] = None
    ) -> "ScriptedRunner":
        self.rules.append(_Rule(tuple(prefix), stdout, error, action, times))
        return self

    def run(self, args, cwd, timeout=None) -> CommandResult:
        args = list(args)
        self.calls.append(args)
        for rule in self.rules:
            if tuple(args[:len(rule.prefix)]) != rule.prefix:
                continue
            if rule.times is not None:
                if rule.times <= 0:
                    continue
                rule.times -= 1
            if rule.error is not None:
                raise rule.error
            if rule.action is not None:
                result = rule.action(args, Path(cwd))
                if result is not None:
                    return result
            return CommandResult(stdout=rule.stdout, stderr="", status=0)
        return CommandResult(stdout="", stderr="", status=0)

    def called(self, *prefix: str) -> bool:
        return any(tuple(call[:len(prefix)]) == prefix for call in self.calls)

    def calls_to(self, *prefix: str) -> List[List[str]]:
        return [call for call in self.calls if tuple(call[:len(prefix)]) == prefix]


def make_checkout_dir(path: Path) -> Path:
    """Create a directory that looks like a checkout to filesystem checks."""
    (path / ".git").mkdir(parents=True, exist_ok=True)
    return path


# Real git helpers

def git(cwd: Union[str, Path], *args: str, check: bool = True) -> subprocess.CompletedProcess:
    env = dict(os.environ)
    env.update(IDENTITY_ENV)
    env["GIT_TERMINAL_PROMPT"] = "0"
    return subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        env=env,
        check=check,
        capture_output=True,
        text=True
    )


def create_bare_remote(base: Path, name: str, files: Optional[dict] = None) -> Path:
    """
    Create a bare repository with one commit on ``main``.

    Returns:
        Path of the bare repository, usable as a clone URL
    """
    remote = base / f"{name}.git"
    remote.mkdir(parents=True)
    git(remote, "init", "--bare")
    git(remote, "symbolic-ref", "HEAD", "refs/heads/main")

    work = base / f"{name}-seed"
    git(base, "clone", str(remote), str(work))
    git(work, "symbolic-ref", "HEAD", "refs/heads/main")
    for relative, content in (files or {"README.md": f"# {name}\n"}).items():
        target = work / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    git(work, "add", ".")
    git(work, "commit", "-m", "Initial commit")
    git(work, "push", "origin", "HEAD:main")
    shutil.rmtree(work)
    return remote


def clone_work_copy(remote: Path, target: Path) -> Path:
    git(target.parent, "clone", str(remote), str(target))
    return target


def add_commits(work: Path, count: int, prefix: str = "change") -> None:
    """Create ``count`` commits in ``work``, each adding one file."""
    for i in range(count):
        (work / f"{prefix}_{i}.txt").write_text(f"{prefix} {i}\n")
        git(work, "add", ".")
        git(work, "commit", "-m", f"{prefix} {i}")


def head_of(path: Path, ref: str = "HEAD") -> str:
    return git(path, "rev-parse", ref).stdout.strip()
