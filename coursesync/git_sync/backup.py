"""Working-tree backups taken before a checkout is destroyed."""

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from .naming import backup_path_for

logger = logging.getLogger('coursesync.git_sync.backup')


def create_repository_backup(
    repo_path: Union[str, Path],
    backups_root: Union[str, Path],
    repo_name: Optional[str] = None,
    when: Optional[datetime] = None
) -> Optional[Path]:
    """
    Copy the working tree of ``repo_path`` without its ``.git`` metadata.

    Regular files keep their metadata and symlinks are copied as links. The
    backup is never removed by the engine; the user decides what to do with it.

    Args:
        repo_path: Checkout to back up
        backups_root: Directory holding all backups
        repo_name: Name used in the backup directory, defaults to the folder name
        when: Timestamp for the backup name, defaults to now

    Returns:
        Path of the new backup, or None if ``repo_path`` is not a directory

    Raises:
        OSError: If copying fails; a partial backup is left for inspection
    """
    repo_path = Path(repo_path)
    if not repo_path.is_dir():
        logger.debug(f"Nothing to back up at {repo_path}")
        return None

    backups_root = Path(backups_root)
    backups_root.mkdir(parents=True, exist_ok=True)
    target = backup_path_for(backups_root, repo_name or repo_path.name, when)

    shutil.copytree(repo_path, target, symlinks=True, ignore=shutil.ignore_patterns(".git"))

    logger.info(f"💾 Backed up {repo_path} to {target}")
    return target
