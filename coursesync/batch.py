"""Sequential synchronization of many repositories with per-repository isolation."""

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import Config
from .credentials import TokenSupplier
from .interaction import UserInteraction
from .git_sync.coordinator import CloneUpdateCoordinator
from .git_sync.error_types import GitErrorKind
from .git_sync.fork_sync import ForkSyncCoordinator
from .git_sync.locks import PathLockRegistry
from .git_sync.operations import GitOperations
from .git_sync.performance_logger import PerformanceLogger
from .git_sync.probe import RepositoryProbe
from .git_sync.repository_info import LocalRepository, SyncAttempt, SyncOutcome, create_sync_attempt
from .git_sync.runner import CommandRunner, GitRunner


@dataclass
class BatchReport:
    """Attempts of one batch run in processing order."""
    attempts: List[SyncAttempt] = field(default_factory=list)
    cancelled: bool = False

    @property
    def counts(self) -> Dict[str, int]:
        counter = Counter(attempt.outcome.value for attempt in self.attempts)
        return {outcome.value: counter.get(outcome.value, 0) for outcome in SyncOutcome}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "counts": self.counts,
            "cancelled": self.cancelled,
        }


class BatchSynchronizer:
    """
    Drives the coordinator and fork sync over a list of repositories.

    Repositories are processed one after another. Cancellation is checked only
    between repositories, so an in-flight clone or merge always completes.
    """

    def __init__(
        self,
        coordinator: CloneUpdateCoordinator,
        fork_sync: ForkSyncCoordinator,
        credentials: Optional[TokenSupplier] = None
    ):
        self.coordinator = coordinator
        self.fork_sync = fork_sync
        self.credentials = credentials
        self.logger = logging.getLogger('coursesync.batch')

    @classmethod
    def create(
        cls,
        config: Config,
        interaction: UserInteraction,
        credentials: Optional[TokenSupplier] = None,
        runner: Optional[CommandRunner] = None
    ) -> "BatchSynchronizer":
        """Wire up one engine whose components share runner, probe, locks and timings."""
        runner = runner or GitRunner(config)
        probe = RepositoryProbe(runner)
        locks = PathLockRegistry()
        operations = GitOperations(config, runner, PerformanceLogger())

        coordinator = CloneUpdateCoordinator(
            config, runner, interaction, probe=probe, locks=locks, operations=operations
        )
        fork_sync = ForkSyncCoordinator(
            config, runner, interaction, probe=probe, locks=locks, operations=operations
        )
        return cls(coordinator, fork_sync, credentials)

    def sync_one(self, repo: LocalRepository) -> SyncAttempt:
        """Ensure ``repo`` is up to date, then merge its upstream when it has one."""
        attempt = self.coordinator.ensure_up_to_date(repo, self.credentials)

        if repo.upstream_url and attempt.outcome.succeeded:
            fork_result = self.fork_sync.sync_with_upstream(repo, self.credentials)
            attempt.upstream_updated = fork_result.updated
            if fork_result.message:
                attempt.message = f"{attempt.message}; {fork_result.message}" if attempt.message else fork_result.message

        return attempt

    def sync_all(
        self,
        repositories: Iterable[LocalRepository],
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[str], None]] = None
    ) -> BatchReport:
        """
        Synchronize every repository once.

        Args:
            repositories: Repositories to process; duplicates by path are skipped
            cancel_event: Set to stop before the next repository
            on_progress: Receives a short progress message per repository

        Returns:
            BatchReport with one attempt per processed repository
        """
        unique: List[LocalRepository] = []
        seen = set()
        for repo in repositories:
            if repo.path in seen:
                self.logger.debug(f"Skipping duplicate entry for {repo.path}")
                continue
            seen.add(repo.path)
            unique.append(repo)

        report = BatchReport()
        total = len(unique)
        self.logger.info(f"🔄 Synchronizing {total} repositor{'y' if total == 1 else 'ies'}")

        for index, repo in enumerate(unique, 1):
            if cancel_event is not None and cancel_event.is_set():
                self.logger.info(f"Batch cancelled after {index - 1} of {total} repositories")
                report.cancelled = True
                break

            if on_progress:
                on_progress(f"Synchronizing {repo.display_name} ({index}/{total})...")

            try:
                attempt = self.sync_one(repo)
            except Exception as e:
                # One broken repository must not stop the rest of the batch
                self.logger.error(f"Unexpected error while synchronizing {repo.path}: {e}", exc_info=True)
                attempt = create_sync_attempt(repo, SyncOutcome.FAILED, str(e), error_kind=GitErrorKind.UNKNOWN)

            self.logger.info(f"{repo.display_name}: {attempt.outcome.value}")
            report.attempts.append(attempt)

        self.logger.info(f"Batch finished: {report.counts}")
        return report
