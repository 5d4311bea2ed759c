"""
Credential suppliers for authenticated git remotes.

The engine never stores tokens. It asks a supplier for the token of a host
origin (``https://gitlab.example.org``), embeds it into the remote URL, and
tells the supplier to invalidate it when the remote rejects it.
"""

import logging
import os
import re
import threading
from typing import Callable, Dict, Optional, Protocol


class TokenSupplier(Protocol):
    """External credential store as seen by the engine."""

    def resolve_token(self, origin: str) -> Optional[str]:
        ...

    def invalidate(self, origin: str) -> None:
        ...


class CachedTokenSupplier:
    """
    Per-origin token cache shared by all repositories of one batch run.

    ``fetch(origin, force_refresh)`` is the real store (keyring, prompt, API).
    After ``invalidate`` the next ``resolve_token`` calls it with
    ``force_refresh=True`` so a stale token is never handed out again.
    """

    def __init__(self, fetch: Callable[[str, bool], Optional[str]]):
        self._fetch = fetch
        self._tokens: Dict[str, str] = {}
        self._invalidated = set()
        self._lock = threading.Lock()
        self.logger = logging.getLogger('coursesync.credentials')

    def resolve_token(self, origin: str) -> Optional[str]:
        with self._lock:
            if origin in self._tokens:
                return self._tokens[origin]
            force_refresh = origin in self._invalidated

        token = self._fetch(origin, force_refresh)

        with self._lock:
            if token:
                self._tokens[origin] = token
                self._invalidated.discard(origin)
        self.logger.debug(f"Resolved credential for {origin} (refresh={force_refresh}, found={bool(token)})")
        return token

    def invalidate(self, origin: str) -> None:
        with self._lock:
            self._tokens.pop(origin, None)
            self._invalidated.add(origin)
        self.logger.info(f"Invalidated cached credential for {origin}")


def token_environment_variable(origin: str) -> str:
    """``https://gitlab.example.org`` -> ``COURSESYNC_TOKEN_GITLAB_EXAMPLE_ORG``."""
    host = re.sub(r"^[a-z]+://", "", origin.lower())
    return "COURSESYNC_TOKEN_" + re.sub(r"[^A-Z0-9]", "_", host.upper())


class EnvironmentTokenSupplier:
    """Reads tokens from ``COURSESYNC_TOKEN_<HOST>`` or the generic ``COURSESYNC_TOKEN``."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self._environ = environ if environ is not None else os.environ
        self._invalidated = set()
        self.logger = logging.getLogger('coursesync.credentials')

    def resolve_token(self, origin: str) -> Optional[str]:
        if origin in self._invalidated:
            # The environment cannot produce a different token within this process
            return None
        return self._environ.get(token_environment_variable(origin)) or self._environ.get("COURSESYNC_TOKEN") or None

    def invalidate(self, origin: str) -> None:
        self._invalidated.add(origin)
        self.logger.warning(
            f"Credential for {origin} was rejected; update {token_environment_variable(origin)} and run again"
        )
