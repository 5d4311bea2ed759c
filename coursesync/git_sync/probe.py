"""Read-only inspection of working directories."""

import logging
from pathlib import Path
from typing import List, Optional, Union

from .error_types import GitOperationError
from .repository_info import RepositoryState
from .runner import CommandRunner

PathLike = Union[str, Path]

# Porcelain XY codes that mark an unmerged path besides any code containing "U"
_BOTH_SIDES_CODES = ("AA", "DD")


def _is_unmerged(line: str) -> bool:
    code = line[:2]
    return "U" in code or code in _BOTH_SIDES_CODES


class RepositoryProbe:
    """
    Answers questions about a checkout without mutating it.

    Every method takes the working directory so that one probe can serve a
    whole batch. The git metadata checks (``exists``, ``merge_in_progress``)
    look at the filesystem; everything else asks git through the runner.
    """

    def __init__(self, runner: CommandRunner):
        self.runner = runner
        self.logger = logging.getLogger('coursesync.git_sync.probe')

    def _git(self, path: PathLike, *args: str) -> str:
        return self.runner.run(list(args), cwd=path).stdout

    def _git_dir(self, path: PathLike) -> Path:
        marker = Path(path) / ".git"
        if marker.is_file():
            # Linked worktrees and submodules point at their real metadata directory
            content = marker.read_text(encoding="utf-8", errors="replace").strip()
            if content.startswith("gitdir:"):
                target = Path(content[len("gitdir:"):].strip())
                return target if target.is_absolute() else (Path(path) / target).resolve()
        return marker

    def exists(self, path: PathLike) -> bool:
        """True if ``path`` is a directory containing a checkout marker."""
        path = Path(path)
        return path.is_dir() and (path / ".git").exists()

    def is_empty_directory(self, path: PathLike) -> bool:
        path = Path(path)
        return path.is_dir() and not any(path.iterdir())

    def status_entries(self, path: PathLike) -> List[str]:
        """Lines of ``git status --porcelain``, untracked files included."""
        output = self._git(path, "status", "--porcelain", "--untracked-files=normal")
        return [line for line in output.splitlines() if line.strip()]

    def is_clean(self, path: PathLike) -> bool:
        return not self.status_entries(path)

    def has_conflicts(self, path: PathLike) -> bool:
        """True when the index holds unmerged paths (UU, AA, DD and friends)."""
        return any(_is_unmerged(line) for line in self.status_entries(path))

    def merge_in_progress(self, path: PathLike) -> bool:
        return (self._git_dir(path) / "MERGE_HEAD").exists()

    def state(self, path: PathLike) -> RepositoryState:
        """Derive the RepositoryState of ``path`` in one pass."""
        path = Path(path)
        if not path.is_dir():
            return RepositoryState.ABSENT
        if not self.exists(path):
            return RepositoryState.NOT_A_CHECKOUT

        entries = self.status_entries(path)
        if any(_is_unmerged(line) for line in entries):
            return RepositoryState.CONFLICTED
        if self.merge_in_progress(path):
            return RepositoryState.MERGING
        if entries:
            return RepositoryState.DIRTY
        return RepositoryState.CLEAN

    def current_branch(self, path: PathLike) -> Optional[str]:
        """Name of the checked out branch, or None for a detached HEAD."""
        try:
            branch = self._git(path, "symbolic-ref", "--short", "-q", "HEAD").strip()
        except GitOperationError as e:
            if e.status == 1:
                return None
            raise
        return branch or None

    def head_commit(self, path: PathLike) -> Optional[str]:
        """Commit id of HEAD, or None when the branch has no commits yet."""
        try:
            return self._git(path, "rev-parse", "--verify", "-q", "HEAD").strip() or None
        except GitOperationError as e:
            if e.status == 1:
                return None
            raise

    def remote_names(self, path: PathLike) -> List[str]:
        return [name.strip() for name in self._git(path, "remote").splitlines() if name.strip()]

    def has_ref(self, path: PathLike, ref: str) -> bool:
        try:
            self._git(path, "rev-parse", "--verify", "-q", ref)
            return True
        except GitOperationError:
            return False

    def upstream_default_branch(self, path: PathLike, remote: str = "upstream") -> Optional[str]:
        """
        Resolve the default branch of ``remote``.

        Asks the remote for its symbolic HEAD first. When that fails, probes
        the local tracking refs ``<remote>/main`` and then ``<remote>/master``.

        Returns:
            Branch name, or None when nothing could be resolved
        """
        try:
            output = self._git(path, "ls-remote", "--symref", remote, "HEAD")
            for line in output.splitlines():
                if line.startswith("ref: refs/heads/"):
                    branch = line[len("ref: refs/heads/"):].split("\t")[0].strip()
                    if branch:
                        self.logger.debug(f"Remote {remote} reports default branch {branch}")
                        return branch
        except GitOperationError as e:
            self.logger.debug(f"Could not query HEAD of {remote}, falling back to tracking refs: {e.kind.value}")

        for candidate in ("main", "master"):
            if self.has_ref(path, f"refs/remotes/{remote}/{candidate}"):
                return candidate

        return None

    def behind_count(self, path: PathLike, branch: str, remote: str = "upstream") -> int:
        """Number of commits on ``remote/branch`` that HEAD does not contain."""
        output = self._git(path, "rev-list", "--count", f"HEAD..{remote}/{branch}").strip()
        try:
            return int(output)
        except ValueError:
            self.logger.warning(f"Unexpected rev-list output for {remote}/{branch}: {output!r}")
            return 0

    def stash_reference(self, path: PathLike, message: str) -> Optional[str]:
        """Find the stash entry whose subject contains ``message`` and return its ``stash@{n}`` name."""
        output = self._git(path, "stash", "list", "--pretty=format:%gd::%gs")
        for line in output.splitlines():
            reference, _, subject = line.partition("::")
            if message in subject:
                return reference.strip()
        return None
