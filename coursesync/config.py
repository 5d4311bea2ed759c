"""Configuration management for coursesync."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .platform import get_platform_specific_defaults, normalize_path, resolve_git_binary, supports_process_timeout

load_dotenv()  # Load .env file if it exists


VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class Config:
    """Configuration for the repository synchronization engine with validation and defaults."""

    # Storage
    workspace_root: Path = field(default_factory=lambda: Path.home() / ".computor" / "workspace")
    backup_dir_name: str = ".backups"

    # Git process handling
    git_timeout: float = 300.0
    git_retry_attempts: int = 3
    git_retry_delay: float = 1.0
    shallow_clone: bool = False

    # Authentication and fork sync
    auth_username: str = "oauth2"
    stash_marker: str = "computor-auto-sync"

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.workspace_root = normalize_path(self.workspace_root)

        self.log_level = self.log_level.upper()
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}. Must be one of {VALID_LOG_LEVELS}")

        if self.git_retry_attempts < 1:
            raise ValueError("git_retry_attempts must be at least 1")

        if self.git_retry_delay < 0:
            raise ValueError("git_retry_delay must be non-negative")

        if self.git_timeout < 0:
            raise ValueError("git_timeout must be non-negative (0 disables the timeout)")

        if not self.stash_marker or any(ch.isspace() for ch in self.stash_marker):
            raise ValueError("stash_marker must be a non-empty string without whitespace")

        if not self.auth_username:
            raise ValueError("auth_username must not be empty")

        if not self.backup_dir_name or "/" in self.backup_dir_name or "\\" in self.backup_dir_name:
            raise ValueError("backup_dir_name must be a single directory name")

    @property
    def backups_root(self) -> Path:
        """Directory where working-tree backups are placed."""
        return self.workspace_root / self.backup_dir_name

    @property
    def effective_timeout(self) -> Optional[float]:
        """Per-command timeout in seconds, or None when disabled."""
        return self.git_timeout or None


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_configuration() -> Config:
    """Load configuration from environment variables with platform-specific defaults."""
    try:
        platform_defaults = get_platform_specific_defaults()

        return Config(
            workspace_root=Path(os.getenv("COURSESYNC_WORKSPACE", str(platform_defaults['workspace_root']))),
            backup_dir_name=os.getenv("COURSESYNC_BACKUP_DIR", ".backups"),
            git_timeout=float(os.getenv("COURSESYNC_GIT_TIMEOUT", str(platform_defaults['git_timeout']))),
            git_retry_attempts=int(os.getenv("COURSESYNC_GIT_RETRY_ATTEMPTS", str(platform_defaults['git_retry_attempts']))),
            git_retry_delay=float(os.getenv("COURSESYNC_GIT_RETRY_DELAY", str(platform_defaults['git_retry_delay']))),
            shallow_clone=_env_flag("COURSESYNC_SHALLOW_CLONE"),
            auth_username=os.getenv("COURSESYNC_AUTH_USERNAME", "oauth2"),
            stash_marker=os.getenv("COURSESYNC_STASH_MARKER", "computor-auto-sync"),
            log_level=os.getenv("COURSESYNC_LOG_LEVEL", platform_defaults['log_level']),
        )
    except (ValueError, TypeError) as e:
        raise ValueError(f"Configuration error: {e}")


def validate_configuration(config: Config) -> List[str]:
    """Validate the runtime environment for a configuration and return errors or warnings."""
    from .git_sync.runner import validate_git_environment

    errors = []

    try:
        config.workspace_root.mkdir(parents=True, exist_ok=True)
        test_file = config.workspace_root / ".coursesync_write_test"
        test_file.write_text("test")
        test_file.unlink()
    except PermissionError:
        errors.append(f"ERROR: No write permission for workspace directory: {config.workspace_root}")
    except OSError as e:
        errors.append(f"ERROR: Cannot access workspace directory {config.workspace_root}: {e}")

    if resolve_git_binary() is None:
        errors.append("ERROR: Git is required but was not found. Install Git and ensure it is on your PATH.")
    else:
        errors.extend(f"WARNING: {problem}" for problem in validate_git_environment())

    if config.git_timeout == 0:
        errors.append("WARNING: git_timeout is disabled; a hung network operation will block indefinitely")
    elif not supports_process_timeout():
        errors.append("WARNING: git_timeout is not enforced on Windows; a hung network operation will block indefinitely")

    logging.getLogger('coursesync.config').debug(f"Configuration validated with {len(errors)} finding(s)")
    return errors
