"""Error types and classification for repository synchronization."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple


class GitErrorKind(Enum):
    """Closed set of failure kinds the engine distinguishes."""
    AUTHENTICATION = "authentication"
    NETWORK = "network"
    HISTORY_DIVERGED = "history_diverged"
    MERGE_CONFLICT = "merge_conflict"
    DIRTY_TREE = "dirty_tree"
    CONFIGURATION = "configuration"
    NOT_A_REPOSITORY = "not_a_repository"
    UNKNOWN = "unknown"


@dataclass
class ErrorResolution:
    """How a failure kind is presented to the user and whether it may be retried."""
    kind: GitErrorKind
    user_message: str
    technical_message: str
    resolution_steps: List[str]
    retryable: bool = False


# Checked in order: divergence text often also contains "rejected" or "hint:" lines
# that would otherwise match broader patterns further down.
_PATTERNS: Tuple[Tuple[GitErrorKind, Tuple[str, ...]], ...] = (
    (GitErrorKind.HISTORY_DIVERGED, (
        r"not possible to fast-forward",
        r"refusing to merge unrelated histories",
        r"fatal: unrelated histories",
        r"diverging branches can't be fast-forwarded",
        r"have diverged",
    )),
    (GitErrorKind.MERGE_CONFLICT, (
        r"automatic merge failed",
        r"merge conflict",
        r"unmerged paths",
        r"you have not concluded your merge",
        r"conflict \(",
    )),
    (GitErrorKind.DIRTY_TREE, (
        r"local changes to the following files would be overwritten",
        r"untracked working tree files would be overwritten",
        r"please commit your changes or stash them",
    )),
    (GitErrorKind.AUTHENTICATION, (
        r"authentication failed",
        r"access denied",
        r"http basic",
        r"invalid username or password",
        r"could not read (username|password)",
        r"terminal prompts disabled",
        r"permission denied \(publickey",
        r"\b40[13]\b",
    )),
    (GitErrorKind.NOT_A_REPOSITORY, (
        r"not a git repository",
    )),
    (GitErrorKind.CONFIGURATION, (
        r"no such remote",
        r"does not appear to be a git repository",
        r"repository .*not found",
        r"couldn't find remote ref",
        r"no tracking information",
        r"permission denied",
        r"is not supported on",
    )),
    (GitErrorKind.NETWORK, (
        r"timeout",
        r"timed out",
        r"did not complete in",
        r"could not resolve host",
        r"connection refused",
        r"connection reset",
        r"network is unreachable",
        r"no route to host",
        r"temporary failure in name resolution",
        r"failed to connect",
        r"early eof",
        r"the remote end hung up unexpectedly",
    )),
)

_COMPILED = tuple(
    (kind, tuple(re.compile(pattern) for pattern in patterns))
    for kind, patterns in _PATTERNS
)

# Exit status of a process killed by the runner's timeout watchdog (SIGKILL)
_KILLED_STATUSES = (-9, 137)


def classify_git_error(status: Optional[int], stderr: str = "", stdout: str = "") -> GitErrorKind:
    """
    Map a failed git invocation to a GitErrorKind.

    Args:
        status: Process exit status, if known
        stderr: Captured standard error
        stdout: Captured standard output

    Returns:
        The first matching kind, NETWORK for a killed process, otherwise UNKNOWN
    """
    combined = f"{stderr}\n{stdout}".lower()

    for kind, patterns in _COMPILED:
        if any(pattern.search(combined) for pattern in patterns):
            return kind

    if status in _KILLED_STATUSES:
        return GitErrorKind.NETWORK

    return GitErrorKind.UNKNOWN


class GitOperationError(Exception):
    """A git subcommand exited non-zero, timed out, or could not be started."""

    def __init__(
        self,
        command: Sequence[str],
        status: Optional[int],
        stderr: str = "",
        stdout: str = "",
        kind: Optional[GitErrorKind] = None
    ):
        self.command = list(command)
        self.status = status
        self.stderr = stderr or ""
        self.stdout = stdout or ""
        self.kind = kind or classify_git_error(status, self.stderr, self.stdout)
        detail = self.stderr.strip() or self.stdout.strip() or "no output"
        super().__init__(
            f"'{' '.join(self.command)}' failed with status {status} ({self.kind.value}): {detail}"
        )

    @property
    def is_history_rewrite(self) -> bool:
        return self.kind == GitErrorKind.HISTORY_DIVERGED

    @property
    def is_authentication_failure(self) -> bool:
        return self.kind == GitErrorKind.AUTHENTICATION

    @property
    def is_transient(self) -> bool:
        return self.kind == GitErrorKind.NETWORK


class ConfigurationError(Exception):
    """Repository metadata needed for an operation is missing or unresolvable."""

    kind = GitErrorKind.CONFIGURATION


class RepositoryBusyError(Exception):
    """Another synchronization run currently owns the repository path."""

    kind = GitErrorKind.CONFIGURATION
