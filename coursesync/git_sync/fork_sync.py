"""Merging upstream template changes into a student's fork."""

import logging
import time
from pathlib import Path
from typing import Optional

from ..config import Config
from ..credentials import TokenSupplier
from ..interaction import UserInteraction
from .error_strategies import describe_failure
from .error_types import ConfigurationError, GitErrorKind, GitOperationError, RepositoryBusyError
from .locks import PathLockRegistry
from .operations import GitOperations
from .probe import RepositoryProbe
from .repository_info import ForkSyncResult, LocalRepository, RemoteAddition, RepositoryState, StashHandle
from .runner import CommandRunner
from .urls import redact_url

UPSTREAM_REMOTE = "upstream"
ACCEPT_LABEL = "Yes, Update"
DECLINE_LABEL = "Skip"


class ForkSyncCoordinator:
    """
    Brings upstream template commits into a fork without losing local work.

    A run goes through these steps:

    1. Abort an unfinished merge left behind by an earlier run.
    2. Stop if the index has unresolved conflicts.
    3. Stash uncommitted and untracked changes.
    4. Add the ``upstream`` remote (or refresh its URL) and fetch it.
    5. Resolve upstream's default branch.
    6. Count the commits HEAD is missing.
    7. Ask the user to confirm.
    8. Merge and push to ``origin``.

    Cleanup always runs afterwards: the stash is popped and the ``upstream``
    remote is removed when this run added it.
    """

    def __init__(
        self,
        config: Config,
        runner: CommandRunner,
        interaction: UserInteraction,
        probe: Optional[RepositoryProbe] = None,
        locks: Optional[PathLockRegistry] = None,
        operations: Optional[GitOperations] = None
    ):
        self.config = config
        self.interaction = interaction
        self.operations = operations or GitOperations(config, runner)
        self.probe = probe or RepositoryProbe(runner)
        self.locks = locks or PathLockRegistry()
        self.logger = logging.getLogger('coursesync.git_sync.fork_sync')

    def sync_with_upstream(self, repo: LocalRepository, credentials: Optional[TokenSupplier] = None) -> ForkSyncResult:
        """
        Merge ``repo.upstream_url``'s default branch into the checkout after confirmation.

        Returns:
            ForkSyncResult; ``updated`` is True only when a merge happened
        """
        if not repo.upstream_url:
            return ForkSyncResult(updated=False, message="No upstream repository configured")

        try:
            with self.locks.hold(repo.path):
                return self._sync(repo, credentials)
        except RepositoryBusyError as e:
            return ForkSyncResult(updated=False, message=str(e), error_kind=e.kind)

    def _sync(self, repo: LocalRepository, credentials: Optional[TokenSupplier]) -> ForkSyncResult:
        path = repo.path
        result = ForkSyncResult(updated=False)

        try:
            if self.probe.merge_in_progress(path):
                self.logger.warning(f"Unfinished merge in {repo.display_name}, aborting it before continuing")
                self._abort_merge(path)
            state = self.probe.state(path)
        except GitOperationError as e:
            return self._report_failure(repo, result, e)

        if state in (RepositoryState.CONFLICTED, RepositoryState.MERGING):
            result.message = "Your repository has unresolved merge conflicts. Resolve them manually and try again."
            result.error_kind = GitErrorKind.MERGE_CONFLICT
            self.logger.warning(f"{repo.display_name}: {result.message}")
            self.interaction.warn(result.message)
            return result

        if state == RepositoryState.DIRTY:
            result.stash = self._stash(path)
            if result.stash is None or result.stash.reported:
                result.message = "Local changes could not be stashed; upstream sync skipped"
                result.error_kind = GitErrorKind.DIRTY_TREE
                return result

        failure: Optional[Exception] = None
        try:
            result.remote = self._ensure_upstream_remote(path, repo, credentials)
            self.operations.run_remote(
                path, ["fetch", UPSTREAM_REMOTE], "fetch upstream", UPSTREAM_REMOTE, repo.upstream_url, credentials
            )
            self._merge_if_behind(repo, credentials, result)
        except (GitOperationError, ConfigurationError) as e:
            failure = e
            result.updated = False
            if self.probe.merge_in_progress(path):
                self._abort_merge(path)
        except Exception as e:
            self.logger.error(f"Unexpected error during upstream sync of {repo.display_name}: {e}", exc_info=True)
            failure = e
            result.updated = False
            if self.probe.merge_in_progress(path):
                self._abort_merge(path)
        finally:
            self._cleanup(path, result)

        if failure is not None:
            return self._report_failure(repo, result, failure)
        return result

    def _merge_if_behind(
        self,
        repo: LocalRepository,
        credentials: Optional[TokenSupplier],
        result: ForkSyncResult
    ) -> None:
        path = repo.path

        branch = self.probe.upstream_default_branch(path, UPSTREAM_REMOTE)
        if not branch:
            raise ConfigurationError("Unable to detect the upstream default branch. Contact your lecturer.")
        repo.default_branch = branch
        result.branch = branch

        result.behind_count = self.probe.behind_count(path, branch, UPSTREAM_REMOTE)
        self.logger.info(f"{repo.display_name} is {result.behind_count} commit(s) behind upstream/{branch}")
        if result.behind_count <= 0:
            result.message = f"Already up to date with upstream/{branch}"
            return

        if self.probe.current_branch(path) is None:
            result.message = "Detached HEAD; upstream merge skipped"
            self.interaction.warn(f"{repo.display_name} is not on a branch, so upstream changes were not merged.")
            return

        question = f"Your repository fork is {result.behind_count} commit(s) behind upstream/{branch}. Update now?"
        if not self.interaction.confirm(question, ACCEPT_LABEL, DECLINE_LABEL):
            result.message = "Upstream update skipped"
            return

        self.operations.run(path, ["merge", "--no-edit", f"{UPSTREAM_REMOTE}/{branch}"], "merge")
        result.updated = True
        result.message = f"Merged {result.behind_count} commit(s) from upstream/{branch}"
        self.logger.info(f"🔀 {repo.display_name}: {result.message}")

        result.pushed = self._push(repo, credentials, result)

    def _push(self, repo: LocalRepository, credentials: Optional[TokenSupplier], result: ForkSyncResult) -> bool:
        try:
            self.operations.run_remote(repo.path, ["push", "origin", "HEAD"], "push", "origin", repo.origin_url, credentials)
        except GitOperationError as e:
            # The merge stays; only the user's remote is behind now
            self.logger.error(f"Push of {repo.display_name} to origin failed: {e}")
            result.warnings.append(f"The upstream changes were merged locally but could not be pushed: {e.kind.value}")
            return False
        self.logger.info(f"⬆️ Pushed {repo.display_name} to origin")
        return True

    def _stash(self, path: Path) -> Optional[StashHandle]:
        message = f"{self.config.stash_marker}-{int(time.time() * 1000)}"
        try:
            self.operations.run(path, ["stash", "push", "--include-untracked", "--message", message], "stash")
            reference = self.probe.stash_reference(path, message)
        except GitOperationError as e:
            self.logger.error(f"Failed to stash local changes in {path}: {e}")
            self.interaction.warn(
                "Could not stash local changes before syncing repositories. "
                "Please resolve your changes manually and try again."
            )
            return None

        if reference is None:
            self.logger.error(f"Stash '{message}' was created in {path} but could not be located")
            self.interaction.warn(
                f"Your local changes were stashed as '{message}' but the stash entry could not be found again. "
                'Run "git stash list" and "git stash pop" manually to recover your work.'
            )
            return StashHandle(reference="", message=message, reported=True)

        self.logger.info(f"Stashed local changes in {path} as {reference}")
        return StashHandle(reference=reference, message=message)

    def _ensure_upstream_remote(
        self,
        path: Path,
        repo: LocalRepository,
        credentials: Optional[TokenSupplier]
    ) -> RemoteAddition:
        url = self.operations.authenticated_url(repo.upstream_url, credentials)
        existed = UPSTREAM_REMOTE in self.probe.remote_names(path)

        if existed:
            self.operations.run(path, ["remote", "set-url", UPSTREAM_REMOTE, url])
        else:
            self.operations.run(path, ["remote", "add", UPSTREAM_REMOTE, url])
        self.logger.debug(f"{'Updated' if existed else 'Added'} remote {UPSTREAM_REMOTE} -> {redact_url(url)}")
        return RemoteAddition(name=UPSTREAM_REMOTE, added_by_us=not existed)

    def _cleanup(self, path: Path, result: ForkSyncResult) -> None:
        stash = result.stash
        if stash is not None and not stash.settled:
            try:
                self.operations.run(path, ["stash", "pop", stash.reference])
                stash.restored = True
                self.logger.info(f"Restored stashed changes from {stash.reference}")
            except GitOperationError as e:
                stash.reported = True
                self.logger.error(f"Failed to restore stashed changes from {stash.reference}: {e}")
                warning = (
                    "Automatic restoration of stashed changes failed. "
                    f'Please run "git stash pop {stash.reference}" manually to recover your work.'
                )
                result.warnings.append(warning)
                self.interaction.warn(warning)

        remote = result.remote
        if remote is not None and remote.added_by_us:
            try:
                self.operations.run(path, ["remote", "remove", remote.name])
                remote.removed = True
            except GitOperationError as e:
                self.logger.warning(f"Could not remove the {remote.name} remote from {path}: {e}")
                result.warnings.append(f"The temporary '{remote.name}' remote could not be removed")

    def _abort_merge(self, path: Path) -> None:
        try:
            self.operations.run(path, ["merge", "--abort"])
        except GitOperationError as e:
            # Nothing left to protect when there is no merge to abort
            self.logger.debug(f"git merge --abort in {path} failed: {e}")

    def _report_failure(
        self,
        repo: LocalRepository,
        result: ForkSyncResult,
        error: Exception
    ) -> ForkSyncResult:
        if not isinstance(error, (GitOperationError, ConfigurationError)):
            result.error_kind = GitErrorKind.UNKNOWN
            result.message = describe_failure(GitErrorKind.UNKNOWN, str(error), repo.display_name)
            self.interaction.error(result.message)
            return result

        result.error_kind = error.kind
        if isinstance(error, ConfigurationError):
            result.message = str(error)
            self.logger.warning(f"{repo.display_name}: {result.message}")
            self.interaction.warn(result.message)
        elif error.kind == GitErrorKind.MERGE_CONFLICT:
            result.message = (
                f"Merging upstream changes into {repo.display_name} produced conflicts. "
                "The merge was aborted and your repository was left as it was."
            )
            self.logger.warning(f"{result.message} ({error})")
            self.interaction.warn(result.message)
        else:
            result.message = describe_failure(error.kind, error.stderr, repo.display_name)
            self.logger.error(f"Upstream sync of {repo.display_name} failed: {error}")
            self.interaction.error(result.message)
        return result
