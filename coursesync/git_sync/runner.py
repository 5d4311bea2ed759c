"""Process boundary: every git invocation of the engine goes through here."""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Union

from git import cmd
from git.exc import GitCommandError, GitCommandNotFound

from ..config import Config
from ..platform import get_git_executable, supports_process_timeout
from .error_types import GitErrorKind, GitOperationError
from .urls import redact_url

# No credential helper, askpass program or terminal may be asked for input
NON_INTERACTIVE_ENV: Dict[str, str] = {
    "GIT_TERMINAL_PROMPT": "0",
    "GCM_INTERACTIVE": "never",
    "GIT_ASKPASS": "",
}

_WRAPPED_STREAM = re.compile(r"^\s*std(?:err|out): '(.*)'\s*$", re.DOTALL)


@dataclass
class CommandResult:
    """Captured output of a finished git command."""
    stdout: str
    stderr: str
    status: int = 0


class CommandRunner(Protocol):
    """Anything that can run a git subcommand in a working directory."""

    def run(self, args: Sequence[str], cwd: Union[str, Path], timeout: Optional[float] = None) -> CommandResult:
        ...


def _to_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _unwrap_stream(value) -> str:
    """GitCommandError stores streams as ``"\\n  stderr: '...'"``; return the raw text."""
    text = _to_text(value)
    match = _WRAPPED_STREAM.match(text)
    return match.group(1) if match else text.strip()


def redact_command(args: Sequence[str]) -> List[str]:
    """Redact credentials from every argument that looks like a URL."""
    return [redact_url(arg) if "://" in arg else arg for arg in args]


class GitRunner:
    """Run git through GitPython with a sanitized, non-interactive environment."""

    def __init__(self, config: Optional[Config] = None, extra_env: Optional[Dict[str, str]] = None):
        self.config = config
        self.env = dict(NON_INTERACTIVE_ENV)
        if extra_env:
            self.env.update(extra_env)
        self.logger = logging.getLogger('coursesync.git_sync.runner')
        self._timeout_notice_logged = False

    def _default_timeout(self) -> Optional[float]:
        if self.config is None:
            return None
        return self.config.effective_timeout

    def run(self, args: Sequence[str], cwd: Union[str, Path], timeout: Optional[float] = None) -> CommandResult:
        """
        Run ``git <args>`` in ``cwd``.

        Args:
            args: Subcommand and its arguments, without the git executable
            cwd: Working directory for the process
            timeout: Seconds before the process is killed; defaults to the configured timeout

        Returns:
            CommandResult with captured stdout and stderr

        Raises:
            GitOperationError: On non-zero exit, timeout, or a missing git binary
        """
        effective_timeout = timeout if timeout is not None else self._default_timeout()
        if effective_timeout is not None and not supports_process_timeout():
            if not self._timeout_notice_logged:
                self.logger.debug("Process timeouts are unavailable on Windows; git runs without a watchdog")
                self._timeout_notice_logged = True
            effective_timeout = None
        command = [get_git_executable(), *args]
        display = redact_command(["git", *args])

        self.logger.debug(f"Running {' '.join(display)} in {cwd}")

        try:
            status, stdout, stderr = cmd.Git(str(cwd)).execute(
                command,
                with_extended_output=True,
                env=self.env,
                kill_after_timeout=effective_timeout,
            )
        except GitCommandNotFound as e:
            raise GitOperationError(
                display, None, stderr=f"git executable not found: {e}", kind=GitErrorKind.CONFIGURATION
            ) from e
        except GitCommandError as e:
            status = e.status if isinstance(e.status, int) else None
            stderr_text = _unwrap_stream(e.stderr)
            reason = "" if status is not None or e.status is None else str(e.status)
            if reason and reason not in stderr_text:
                # GitPython reports refusals and Popen failures in status, not stderr
                stderr_text = f"{stderr_text}\n{reason}".strip()
            error = GitOperationError(display, status, stderr_text, _unwrap_stream(e.stdout))
            self.logger.debug(f"{' '.join(display)} failed: {error.kind.value} (status {status})")
            raise error from e

        return CommandResult(stdout=_to_text(stdout), stderr=_to_text(stderr), status=status)


def git_version(runner: Optional[CommandRunner] = None) -> Optional[str]:
    """Return the installed git version string, or None when git cannot be run."""
    runner = runner or GitRunner()
    try:
        result = runner.run(["--version"], cwd=Path.cwd(), timeout=30)
    except GitOperationError:
        return None
    return result.stdout.strip().replace("git version ", "", 1) or None


def validate_git_environment(runner: Optional[CommandRunner] = None) -> List[str]:
    """
    Check that git is usable for synchronization.

    Returns:
        List of human readable problems; empty when everything is fine
    """
    runner = runner or GitRunner()
    problems = []

    version = git_version(runner)
    if version is None:
        problems.append("git could not be executed")
        return problems

    for key in ("user.name", "user.email"):
        try:
            value = runner.run(["config", "--global", key], cwd=Path.cwd(), timeout=30).stdout.strip()
        except GitOperationError:
            value = ""
        if not value:
            problems.append(f"git {key} is not configured; merge commits created during fork sync need it")

    return problems
