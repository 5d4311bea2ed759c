"""Repository synchronization engine for coursesync."""

from .coordinator import CloneUpdateCoordinator
from .error_types import (
    ConfigurationError,
    GitErrorKind,
    GitOperationError,
    RepositoryBusyError,
    classify_git_error,
)
from .fork_sync import ForkSyncCoordinator
from .locks import PathLockRegistry
from .probe import RepositoryProbe
from .recovery import HistoryRewriteRecovery
from .repository_info import (
    ForkSyncResult,
    LocalRepository,
    RepositoryState,
    SyncAttempt,
    SyncOutcome,
)
from .runner import CommandResult, CommandRunner, GitRunner
from .urls import build_authenticated_url, extract_origin, redact_url, strip_credentials

__all__ = [
    'CloneUpdateCoordinator',
    'ForkSyncCoordinator',
    'HistoryRewriteRecovery',
    'RepositoryProbe',
    'PathLockRegistry',
    'GitRunner',
    'CommandRunner',
    'CommandResult',
    'LocalRepository',
    'RepositoryState',
    'SyncAttempt',
    'SyncOutcome',
    'ForkSyncResult',
    'GitErrorKind',
    'GitOperationError',
    'ConfigurationError',
    'RepositoryBusyError',
    'classify_git_error',
    'build_authenticated_url',
    'redact_url',
    'strip_credentials',
    'extract_origin',
]
