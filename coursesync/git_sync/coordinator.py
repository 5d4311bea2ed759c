"""Clone-or-update entry point for one repository."""

import logging
from pathlib import Path
from typing import Optional, Union

from ..config import Config
from ..credentials import TokenSupplier
from ..interaction import UserInteraction
from .error_strategies import describe_failure
from .error_types import ConfigurationError, GitErrorKind, GitOperationError, RepositoryBusyError
from .locks import PathLockRegistry
from .operations import GitOperations
from .probe import RepositoryProbe
from .recovery import HistoryRewriteRecovery
from .repository_info import LocalRepository, RepositoryState, SyncAttempt, SyncOutcome, create_sync_attempt
from .runner import CommandRunner
from .urls import redact_url


class CloneUpdateCoordinator:
    """
    Makes sure a repository directory holds an up-to-date checkout.

    ``ensure_up_to_date`` clones absent repositories, fast-forwards existing
    ones and hands rewritten histories to HistoryRewriteRecovery. It never
    raises for a per-repository failure; the SyncAttempt says what happened.
    """

    def __init__(
        self,
        config: Config,
        runner: CommandRunner,
        interaction: UserInteraction,
        probe: Optional[RepositoryProbe] = None,
        locks: Optional[PathLockRegistry] = None,
        operations: Optional[GitOperations] = None,
        recovery: Optional[HistoryRewriteRecovery] = None
    ):
        self.config = config
        self.interaction = interaction
        self.operations = operations or GitOperations(config, runner)
        self.probe = probe or RepositoryProbe(runner)
        self.locks = locks or PathLockRegistry()
        self.recovery = recovery or HistoryRewriteRecovery(config, interaction, self.clone_into)
        self.logger = logging.getLogger('coursesync.git_sync.coordinator')

    def ensure_up_to_date(self, repo: LocalRepository, credentials: Optional[TokenSupplier] = None) -> SyncAttempt:
        """
        Clone or update ``repo``.

        Args:
            repo: Repository to synchronize
            credentials: Token supplier for the origin host

        Returns:
            SyncAttempt with outcome cloned, updated, unchanged, recovered,
            skipped-dirty or failed
        """
        try:
            with self.locks.hold(repo.path):
                return self._ensure(repo, credentials)
        except RepositoryBusyError as e:
            return create_sync_attempt(repo, SyncOutcome.FAILED, str(e), error_kind=e.kind)

    def _ensure(self, repo: LocalRepository, credentials: Optional[TokenSupplier]) -> SyncAttempt:
        if not repo.origin_url:
            return self._failed(repo, ConfigurationError(f"No origin URL configured for {repo.path}"), "clone")

        try:
            state = self.probe.state(repo.path)
        except GitOperationError as e:
            return self._failed(repo, e, "status")

        self.logger.debug(f"{repo.display_name} is {state.value}")

        if state == RepositoryState.ABSENT:
            return self._clone(repo, credentials)

        if state == RepositoryState.NOT_A_CHECKOUT:
            if self.probe.is_empty_directory(repo.path):
                return self._clone(repo, credentials)
            error = ConfigurationError(
                f"{repo.path} exists but is not a git checkout; move it away so it can be cloned"
            )
            return self._failed(repo, error, "clone", notify=True)

        if state in (RepositoryState.CONFLICTED, RepositoryState.MERGING):
            message = (
                f"{repo.display_name} has an unfinished merge or unresolved conflicts. "
                "Resolve them manually; the repository was not updated."
            )
            self.logger.warning(message)
            self.interaction.warn(message)
            return create_sync_attempt(repo, SyncOutcome.SKIPPED_DIRTY, message, error_kind=GitErrorKind.MERGE_CONFLICT)

        return self._update(repo, credentials)

    def clone_into(self, repo: LocalRepository, target: Path, credentials: Optional[TokenSupplier]) -> int:
        """
        Clone ``repo.origin_url`` into ``target``, refreshing the credential once on rejection.

        Returns:
            Number of clone attempts

        Raises:
            GitOperationError: When the clone failed for good
        """
        target = Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)

        url = self.operations.authenticated_url(repo.origin_url, credentials)
        self.logger.info(f"📥 Cloning {redact_url(url)} into {target}")

        try:
            _, attempts = self.operations.run_with_retry(target.parent, self._clone_args(url, target), "clone")
            return attempts
        except GitOperationError as e:
            if not e.is_authentication_failure:
                raise
            fresh_url = self.operations.refresh_authenticated_url(repo.origin_url, credentials)
            if fresh_url is None:
                raise

        _, attempts = self.operations.run_with_retry(target.parent, self._clone_args(fresh_url, target), "clone")
        return attempts + 1

    def _clone_args(self, url: str, target: Path):
        args = ["clone"]
        if self.config.shallow_clone:
            args.extend(["--depth", "1"])
        args.extend([url, str(target)])
        return args

    def _clone(self, repo: LocalRepository, credentials: Optional[TokenSupplier]) -> SyncAttempt:
        try:
            attempts = self.clone_into(repo, repo.path, credentials)
        except (GitOperationError, OSError) as e:
            return self._failed(repo, e, "clone", notify=True)

        self.logger.info(f"✅ Cloned {repo.display_name}")
        return create_sync_attempt(repo, SyncOutcome.CLONED, f"Cloned into {repo.path}", attempts=attempts)

    def _update(self, repo: LocalRepository, credentials: Optional[TokenSupplier]) -> SyncAttempt:
        path = repo.path

        try:
            _, attempts = self.operations.run_remote(
                path, ["fetch", "--all"], "fetch", "origin", repo.origin_url, credentials
            )
            branch = self.probe.current_branch(path)
            if branch is None:
                self.logger.info(f"{repo.display_name} has a detached HEAD, skipping pull")
                return create_sync_attempt(
                    repo, SyncOutcome.UNCHANGED, "Detached HEAD; pull skipped", attempts=attempts
                )
            before = self.probe.head_commit(path)
        except GitOperationError as e:
            return self._failed(repo, e, "fetch")

        try:
            _, pull_attempts = self.operations.run_with_retry(path, ["pull", "--ff-only"], "pull")
        except GitOperationError as e:
            if e.is_history_rewrite:
                return self.recovery.recover(repo, credentials, e)
            if e.kind == GitErrorKind.DIRTY_TREE:
                message = f"Local changes in {repo.display_name} block the update; commit or stash them and sync again."
                self.logger.warning(message)
                self.interaction.warn(message)
                return create_sync_attempt(repo, SyncOutcome.SKIPPED_DIRTY, message, error_kind=e.kind)
            return self._failed(repo, e, "pull")

        attempts += pull_attempts - 1
        after = self.probe.head_commit(path)
        if before != after:
            self.logger.info(f"⬆️ Fast-forwarded {repo.display_name} on {branch}")
            return create_sync_attempt(repo, SyncOutcome.UPDATED, f"Fast-forwarded {branch}", attempts=attempts)

        return create_sync_attempt(repo, SyncOutcome.UNCHANGED, "Already up to date", attempts=attempts)

    def _failed(
        self,
        repo: LocalRepository,
        error: Union[GitOperationError, ConfigurationError, OSError],
        operation: str,
        notify: bool = False
    ) -> SyncAttempt:
        kind = getattr(error, "kind", GitErrorKind.UNKNOWN)
        detail = error.stderr if isinstance(error, GitOperationError) else str(error)
        message = describe_failure(kind, detail, repo.display_name)

        if kind == GitErrorKind.UNKNOWN:
            self.logger.error(f"{operation} of {repo.display_name} failed: {error}")
            notify = True
        else:
            self.logger.warning(f"{operation} of {repo.display_name} failed ({kind.value}): {error}")

        if notify:
            self.interaction.error(message)
        return create_sync_attempt(repo, SyncOutcome.FAILED, message, error_kind=kind)
