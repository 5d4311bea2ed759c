"""Backup-and-reclone recovery after the remote history was rewritten."""

import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Callable, Optional

from ..config import Config
from ..credentials import TokenSupplier
from ..interaction import UserInteraction
from .backup import create_repository_backup
from .error_types import GitErrorKind, GitOperationError
from .repository_info import LocalRepository, SyncAttempt, SyncOutcome, create_sync_attempt

# (repository, target directory, credentials) -> number of attempts the clone took
Cloner = Callable[[LocalRepository, Path, Optional[TokenSupplier]], int]

OPEN_BACKUP_LABEL = "Open Backup Folder"


def _sibling(path: Path, label: str) -> Path:
    return path.with_name(f".{path.name}.{label}-{uuid.uuid4().hex[:8]}")


class HistoryRewriteRecovery:
    """
    Replaces a checkout whose remote history no longer contains the local one.

    The fresh clone is made next to the old checkout and swapped in only when
    it succeeded, so ``repo.path`` is always either the old checkout or a
    complete new one.
    """

    def __init__(self, config: Config, interaction: UserInteraction, cloner: Cloner):
        self.config = config
        self.interaction = interaction
        self.cloner = cloner
        self.logger = logging.getLogger('coursesync.git_sync.recovery')

    def recover(
        self,
        repo: LocalRepository,
        credentials: Optional[TokenSupplier],
        cause: Optional[GitOperationError] = None
    ) -> SyncAttempt:
        name = repo.display_name
        self.logger.warning(f"History of {name} was rewritten remotely: {cause}")
        self.interaction.warn(
            f"The remote history of {name} changed unexpectedly. "
            "Your files are being backed up and the repository is recreated."
        )

        backup_path = self._backup(repo)
        staging = _sibling(repo.path, "reclone")

        try:
            attempts = self.cloner(repo, staging, credentials)
        except GitOperationError as e:
            shutil.rmtree(staging, ignore_errors=True)
            self.logger.error(f"Re-clone of {name} failed, leaving the existing checkout untouched: {e}")
            if backup_path:
                message = (
                    f"Recreating {name} after the remote history changed failed. "
                    f"Your files were backed up to {backup_path}."
                )
            else:
                message = (
                    f"Recreating {name} after the remote history changed failed. "
                    "No backup was created; the existing folder was left as it was."
                )
            self.interaction.error(message)
            return create_sync_attempt(repo, SyncOutcome.FAILED, message, backup_path, e.kind)

        try:
            self._swap_in(staging, repo.path)
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            message = f"Could not replace {repo.path} with the fresh clone: {e}"
            self.logger.error(message)
            self.interaction.error(message)
            return create_sync_attempt(repo, SyncOutcome.FAILED, message, backup_path, GitErrorKind.UNKNOWN)

        self._notify_recovered(backup_path)
        self.logger.info(f"♻️ Recreated {name} from the rewritten remote")
        return create_sync_attempt(
            repo,
            SyncOutcome.RECOVERED,
            "Repository recreated after the remote history changed",
            backup_path,
            attempts=attempts + 1
        )

    def _backup(self, repo: LocalRepository) -> Optional[Path]:
        try:
            return create_repository_backup(repo.path, self.config.backups_root, repo.display_name)
        except OSError as e:
            # Recovery continues without a backup
            self.logger.error(f"Backup of {repo.path} failed: {e}")
            return None

    def _swap_in(self, staging: Path, target: Path) -> None:
        retired = _sibling(target, "retired")
        os.replace(target, retired)
        try:
            os.replace(staging, target)
        except OSError:
            os.replace(retired, target)
            raise

        shutil.rmtree(retired, ignore_errors=True)
        if retired.exists():
            self.logger.warning(f"Old checkout could not be fully removed and remains at {retired}")

    def _notify_recovered(self, backup_path: Optional[Path]) -> None:
        if backup_path is None:
            self.interaction.inform(
                "The repository was reset because the remote history changed. "
                "No backup could be created. This event is unusual; if it happens repeatedly, "
                "please inform the course coordination team."
            )
            return

        message = (
            "The repository was reset because the remote history changed. "
            f"A backup without Git metadata is available at {backup_path}. "
            "This event is unusual; if it happens repeatedly, please inform the course coordination team."
        )
        if self.interaction.confirm(message, OPEN_BACKUP_LABEL, "Close"):
            self.interaction.reveal(backup_path)
