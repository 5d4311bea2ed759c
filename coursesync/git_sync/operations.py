"""Git command execution with retry and credential refresh."""

import logging
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from ..config import Config
from ..credentials import TokenSupplier
from .error_types import GitOperationError
from .performance_logger import PerformanceLogger
from .runner import CommandResult, CommandRunner
from .urls import build_authenticated_url, extract_origin, redact_url


class GitOperations:
    """
    Shared command layer of the coordinator, fork sync and recovery.

    Network failures are retried with exponential backoff
    (``git_retry_delay * 2 ** (attempt - 1)``). Authentication failures are
    never retried blindly: the caller gets one forced credential refresh.
    """

    def __init__(
        self,
        config: Config,
        runner: CommandRunner,
        performance: Optional[PerformanceLogger] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.config = config
        self.runner = runner
        self.performance = performance or PerformanceLogger()
        self.sleep = sleep
        self.logger = logging.getLogger('coursesync.git_sync.operations')

    def run(self, cwd: Union[str, Path], args: Sequence[str], operation: Optional[str] = None) -> CommandResult:
        """Run one git command, timing it when ``operation`` is given."""
        if operation is None:
            return self.runner.run(list(args), cwd=cwd)
        with self.performance.time_operation(operation):
            return self.runner.run(list(args), cwd=cwd)

    def run_with_retry(self, cwd: Union[str, Path], args: Sequence[str], operation: str) -> Tuple[CommandResult, int]:
        """
        Run a network-bound git command, retrying transient failures.

        Returns:
            The result and the number of attempts it took

        Raises:
            GitOperationError: The last error, or the first non-transient one
        """
        max_attempts = self.config.git_retry_attempts
        base_delay = self.config.git_retry_delay

        for attempt in range(1, max_attempts + 1):
            try:
                return self.run(cwd, args, operation), attempt
            except GitOperationError as e:
                if not e.is_transient or attempt == max_attempts:
                    if e.is_transient:
                        self.logger.error(f"{operation} failed after {attempt} attempt(s): {e}")
                    raise
                delay = base_delay * (2 ** (attempt - 1))
                self.logger.warning(f"{operation} failed (attempt {attempt}/{max_attempts}), retrying in {delay:.1f}s")
                self.sleep(delay)

        raise AssertionError("unreachable")  # loop always returns or raises

    def authenticated_url(self, url: str, credentials: Optional[TokenSupplier]) -> str:
        """Embed the credential the supplier has for the URL's origin, if any."""
        origin = extract_origin(url)
        if credentials is None or origin is None:
            return url
        token = credentials.resolve_token(origin)
        return build_authenticated_url(url, token, self.config.auth_username)

    def refresh_authenticated_url(self, url: str, credentials: Optional[TokenSupplier]) -> Optional[str]:
        """
        Drop the cached credential for the URL's origin and ask for a fresh one.

        Returns:
            The URL with the new credential, or None when no fresh credential is available
        """
        origin = extract_origin(url)
        if credentials is None or origin is None:
            return None

        self.logger.warning(f"🔑 Authentication failed for {origin}, requesting a fresh credential")
        credentials.invalidate(origin)
        token = credentials.resolve_token(origin)
        if not token:
            self.logger.error(f"No credential available for {origin}")
            return None
        return build_authenticated_url(url, token, self.config.auth_username)

    def run_remote(
        self,
        cwd: Union[str, Path],
        args: List[str],
        operation: str,
        remote: str,
        url: str,
        credentials: Optional[TokenSupplier]
    ) -> Tuple[CommandResult, int]:
        """
        Run a command that talks to ``remote``, refreshing its credential once on rejection.

        After a refresh the remote's URL is rewritten with the new credential
        before the single retry.
        """
        try:
            return self.run_with_retry(cwd, args, operation)
        except GitOperationError as e:
            if not e.is_authentication_failure:
                raise
            fresh_url = self.refresh_authenticated_url(url, credentials)
            if fresh_url is None:
                raise

        self.logger.info(f"Retrying {operation} against {redact_url(fresh_url)}")
        self.run(cwd, ["remote", "set-url", remote, fresh_url])
        result, attempts = self.run_with_retry(cwd, args, operation)
        return result, attempts + 1
