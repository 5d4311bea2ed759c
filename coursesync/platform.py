"""Cross-platform helpers for coursesync."""

import os
import platform
import shutil
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


class PlatformType(Enum):
    """Supported platform types."""
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    UNKNOWN = "unknown"


class PlatformInfo:
    """Platform information and utilities."""

    def __init__(self):
        self._platform_type = self._detect_platform()

    def _detect_platform(self) -> PlatformType:
        system = platform.system().lower()

        if system == "windows":
            return PlatformType.WINDOWS
        elif system == "darwin":
            return PlatformType.MACOS
        elif system == "linux":
            return PlatformType.LINUX
        else:
            return PlatformType.UNKNOWN

    @property
    def is_windows(self) -> bool:
        return self._platform_type == PlatformType.WINDOWS

    @property
    def is_macos(self) -> bool:
        return self._platform_type == PlatformType.MACOS

    @property
    def is_linux(self) -> bool:
        return self._platform_type == PlatformType.LINUX


# Global platform info instance
_platform_info: Optional[PlatformInfo] = None


def get_platform_info() -> PlatformInfo:
    """Get the global platform info instance."""
    global _platform_info
    if _platform_info is None:
        _platform_info = PlatformInfo()
    return _platform_info


def supports_process_timeout() -> bool:
    """Whether GitPython can kill a git process after a timeout on this interpreter."""
    return sys.platform != "win32"


def normalize_path(path: Union[str, Path]) -> Path:
    """
    Normalize a path for the current platform.

    Args:
        path: Path to normalize

    Returns:
        Absolute Path with ``~`` expanded
    """
    if isinstance(path, str):
        path = Path(path)

    return path.expanduser().resolve()


def get_platform_specific_defaults() -> Dict[str, Any]:
    """
    Get platform-specific configuration defaults.

    Returns:
        Dictionary of platform-specific defaults
    """
    platform_info = get_platform_info()

    defaults = {
        'workspace_root': Path.home() / ".computor" / "workspace",
        'log_level': "INFO",
        'git_retry_attempts': 3,
        'git_retry_delay': 1.0,
        'git_timeout': 300.0,
    }

    if platform_info.is_windows:
        # Antivirus scanners and file handle release make Windows git slower
        defaults.update({
            'git_retry_attempts': 5,
            'git_retry_delay': 1.5,
        })
    elif platform_info.is_macos:
        defaults.update({
            'git_retry_delay': 0.8,
        })
    elif platform_info.is_linux:
        defaults.update({
            'git_retry_delay': 0.5,
        })

    return defaults


def get_git_executable() -> str:
    """
    Get the Git executable name for the current platform.

    ``COURSESYNC_GIT_EXECUTABLE`` overrides the default lookup.
    """
    configured = os.getenv("COURSESYNC_GIT_EXECUTABLE", "").strip()
    if configured:
        return str(Path(configured).expanduser())

    if get_platform_info().is_windows:
        return "git.exe"
    return "git"


def resolve_git_binary() -> Optional[str]:
    """Return the full path of the git binary, or None when it is not installed."""
    executable = get_git_executable()
    if os.path.isabs(executable):
        return executable if os.access(executable, os.X_OK) else None

    found = shutil.which(executable)
    if found:
        return found

    # Common install locations that are not always on PATH for GUI-launched processes
    for candidate in ("/usr/bin/git", "/usr/local/bin/git", "/opt/homebrew/bin/git"):
        if os.access(candidate, os.X_OK):
            return candidate
    return None


def get_file_manager_command(path: Path) -> List[str]:
    """
    Get the command that reveals ``path`` in the platform's file manager.

    Args:
        path: File or directory to reveal

    Returns:
        Command as an argument list
    """
    platform_info = get_platform_info()

    if platform_info.is_windows:
        return ["explorer", f"/select,{path}"]
    if platform_info.is_macos:
        return ["open", "-R", str(path)]
    # xdg-open cannot select a file, so open the containing folder for files
    target = path if path.is_dir() else path.parent
    return ["xdg-open", str(target)]
