"""Repository, attempt and fork-sync data structures."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .error_types import GitErrorKind
from .urls import redact_url


class RepositoryState(Enum):
    """State of a working directory as seen by the probe."""
    ABSENT = "absent"                   # Directory does not exist
    NOT_A_CHECKOUT = "not_a_checkout"   # Directory exists without a .git marker
    CLEAN = "clean"                     # Valid checkout, nothing to commit
    DIRTY = "dirty"                     # Uncommitted or untracked changes
    CONFLICTED = "conflicted"           # Unmerged paths in the index
    MERGING = "merging"                 # MERGE_HEAD present without unmerged paths

    @property
    def is_checkout(self) -> bool:
        return self not in (RepositoryState.ABSENT, RepositoryState.NOT_A_CHECKOUT)


class SyncOutcome(Enum):
    """Result of one ensure-up-to-date run."""
    CLONED = "cloned"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    RECOVERED = "recovered"
    SKIPPED_DIRTY = "skipped-dirty"
    FAILED = "failed"

    @property
    def succeeded(self) -> bool:
        return self not in (SyncOutcome.FAILED, SyncOutcome.SKIPPED_DIRTY)


@dataclass
class LocalRepository:
    """A directory on disk that holds, or will hold, one checkout."""
    path: Path
    origin_url: str
    upstream_url: Optional[str] = None
    name: Optional[str] = None
    default_branch: Optional[str] = None  # discovered from upstream, never configured

    def __post_init__(self):
        self.path = Path(self.path).expanduser().resolve()

    @property
    def display_name(self) -> str:
        return self.name or self.path.name


@dataclass
class SyncAttempt:
    """Record of one coordinator invocation against one repository. Never persisted."""
    repository: LocalRepository
    outcome: SyncOutcome
    message: str = ""
    backup_path: Optional[Path] = None
    error_kind: Optional[GitErrorKind] = None
    upstream_updated: Optional[bool] = None
    attempts: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": str(self.repository.path),
            "name": self.repository.display_name,
            "origin_url": redact_url(self.repository.origin_url),
            "outcome": self.outcome.value,
            "message": self.message,
            "backup_path": str(self.backup_path) if self.backup_path else None,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "upstream_updated": self.upstream_updated,
            "attempts": self.attempts,
        }


def create_sync_attempt(
    repository: LocalRepository,
    outcome: SyncOutcome,
    message: str = "",
    backup_path: Optional[Path] = None,
    error_kind: Optional[GitErrorKind] = None,
    attempts: int = 1
) -> SyncAttempt:
    """Build a SyncAttempt, filling ``error_kind`` for failures when it is missing."""
    if outcome == SyncOutcome.FAILED and error_kind is None:
        error_kind = GitErrorKind.UNKNOWN
    return SyncAttempt(
        repository=repository,
        outcome=outcome,
        message=message,
        backup_path=backup_path,
        error_kind=error_kind,
        attempts=attempts
    )


@dataclass
class StashHandle:
    """A stash created by fork sync; must end up restored or reported."""
    reference: str  # e.g. "stash@{0}"
    message: str
    restored: bool = False
    reported: bool = False

    @property
    def settled(self) -> bool:
        return self.restored or self.reported


@dataclass
class RemoteAddition:
    """Whether fork sync added the upstream remote itself."""
    name: str
    added_by_us: bool
    removed: bool = False


@dataclass
class ForkSyncResult:
    """Outcome of one fork-sync run."""
    updated: bool
    message: str = ""
    behind_count: int = 0
    branch: Optional[str] = None
    pushed: Optional[bool] = None
    stash: Optional[StashHandle] = None
    remote: Optional[RemoteAddition] = None
    error_kind: Optional[GitErrorKind] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated": self.updated,
            "message": self.message,
            "behind_count": self.behind_count,
            "branch": self.branch,
            "pushed": self.pushed,
            "stash_restored": self.stash.restored if self.stash else None,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "warnings": list(self.warnings),
        }
