"""MCP tool server exposing the synchronization engine."""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from . import __version__
from .batch import BatchSynchronizer
from .config import Config, load_configuration, validate_configuration
from .credentials import EnvironmentTokenSupplier
from .git_sync.error_types import GitOperationError
from .git_sync.naming import build_student_repo_root, build_upstream_template_url, derive_repository_directory_name
from .git_sync.probe import RepositoryProbe
from .git_sync.repository_info import LocalRepository
from .git_sync.runner import CommandRunner, GitRunner
from .interaction import RecordingInteraction


class StructuredFormatter(logging.Formatter):
    """Prefixes ``[operation]`` when a record carries an ``operation`` extra."""

    def format(self, record):
        if hasattr(record, 'operation'):
            record.msg = f"[{record.operation}] {record.msg}"
        return super().format(record)


def setup_logging(config: Config) -> None:
    """Configure the ``coursesync`` logger hierarchy."""
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    level = getattr(logging, config.log_level)

    logging.basicConfig(level=level, format=log_format, datefmt='%Y-%m-%d %H:%M:%S')

    logger = logging.getLogger('coursesync')
    logger.setLevel(level)
    if not logger.handlers:
        # stdout carries the MCP protocol, logs go to stderr
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(StructuredFormatter(log_format))
        logger.addHandler(handler)
        logger.propagate = False


def _repository_from_dict(entry: Dict[str, Any], config: Config) -> LocalRepository:
    """
    Build a LocalRepository from a tool argument.

    Without ``path`` the checkout goes to ``<workspace>/students/<name>``, the
    name derived from ``full_path`` or the origin URL. Without ``upstream_url``
    a ``provider_url`` plus ``course_path`` point at the course's student template.
    """
    origin_url = entry.get("origin_url")
    if not origin_url:
        raise ValueError("Each repository needs an 'origin_url'")

    if entry.get("path"):
        path = Path(entry["path"])
    else:
        name = derive_repository_directory_name(full_path=entry.get("full_path"), remote_url=origin_url)
        path = build_student_repo_root(config.workspace_root, name)

    upstream_url = entry.get("upstream_url") or None
    if upstream_url is None and entry.get("provider_url") and entry.get("course_path"):
        upstream_url = build_upstream_template_url(entry["provider_url"], entry["course_path"])

    return LocalRepository(
        path=path,
        origin_url=origin_url,
        upstream_url=upstream_url,
        name=entry.get("name") or None,
    )


def register_tools(server: FastMCP, server_config: Config, runner: Optional[CommandRunner] = None) -> None:
    """Register MCP tools with the server instance."""
    runner = runner or GitRunner(server_config)

    def run_batch(repositories: List[LocalRepository], confirm_upstream: bool) -> Dict[str, Any]:
        interaction = RecordingInteraction(confirm_answer=confirm_upstream)
        synchronizer = BatchSynchronizer.create(
            server_config, interaction, EnvironmentTokenSupplier(), runner=runner
        )
        report = synchronizer.sync_all(repositories)
        result = report.to_dict()
        result["messages"] = interaction.to_list()
        return result

    @server.tool()
    def sync_repository(
        origin_url: str,
        path: Optional[str] = None,
        upstream_url: Optional[str] = None,
        confirm_upstream: bool = False
    ) -> dict:
        """
        Clone or update one course repository and merge its upstream template.

        Args:
            origin_url: The student's own (writable) remote
            path: Local directory of the checkout; derived from origin_url under the workspace when omitted
            upstream_url: Template repository the fork was created from
            confirm_upstream: Merge upstream changes without asking

        Returns:
            Dictionary with the attempt and all messages shown to the user
        """
        try:
            repo = _repository_from_dict(
                {"path": path, "origin_url": origin_url, "upstream_url": upstream_url}, server_config
            )
        except ValueError as e:
            return {"error": str(e)}

        result = run_batch([repo], confirm_upstream)
        return {"attempt": result["attempts"][0], "messages": result["messages"]}

    @server.tool()
    def sync_repositories(repositories: List[Dict[str, Any]], confirm_upstream: bool = False) -> dict:
        """
        Synchronize several repositories one after another.

        Args:
            repositories: Entries with ``origin_url`` and optional ``path``, ``full_path``,
                ``upstream_url`` (or ``provider_url`` plus ``course_path``) and ``name``
            confirm_upstream: Merge upstream changes without asking

        Returns:
            Dictionary with attempts, per-outcome counts and messages
        """
        try:
            repos = [_repository_from_dict(entry, server_config) for entry in repositories]
        except ValueError as e:
            return {"error": str(e)}

        return run_batch(repos, confirm_upstream)

    @server.tool()
    def repository_status(path: str) -> dict:
        """Report the state, branch and remotes of a local checkout without changing it."""
        probe = RepositoryProbe(runner)
        target = Path(path).expanduser()

        try:
            state = probe.state(target)
            status = {"path": str(target), "state": state.value}
            if state.is_checkout:
                status.update({
                    "branch": probe.current_branch(target),
                    "head": probe.head_commit(target),
                    "remotes": probe.remote_names(target),
                })
            return status
        except GitOperationError as e:
            return {"path": str(target), "error": str(e), "error_kind": e.kind.value}


def initialize_server() -> FastMCP:
    """Load configuration, set up logging and build the MCP server."""
    server_config = load_configuration()
    setup_logging(server_config)
    init_logger = logging.getLogger('coursesync.init')

    validation_issues = validate_configuration(server_config)
    for issue in validation_issues:
        if issue.startswith("ERROR:"):
            init_logger.error(issue[len("ERROR: "):])
        elif issue.startswith("WARNING:"):
            init_logger.warning(issue[len("WARNING: "):])

    error_count = sum(1 for issue in validation_issues if issue.startswith("ERROR:"))
    if error_count > 0:
        init_logger.critical(f"Server startup failed due to {error_count} configuration error(s)")
        sys.exit(1)

    init_logger.info(f"Workspace: {server_config.workspace_root}")

    server = FastMCP("Course Repository Sync", log_level=server_config.log_level)
    register_tools(server, server_config)
    init_logger.info("coursesync MCP server initialized")
    return server


def main():
    """Main entry point with stdio transport."""
    startup_logger = logging.getLogger('coursesync.startup')

    try:
        server = initialize_server()
        startup_logger.info("=" * 60)
        startup_logger.info(f"Course Repository Sync {__version__} ready on stdio")
        startup_logger.info("=" * 60)
        server.run(transport="stdio")
    except KeyboardInterrupt:
        startup_logger.info("Server stopped by user (Ctrl+C)")
    except ValueError as e:
        startup_logger.critical(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
