"""User-facing resolutions for each failure kind."""

from typing import Dict, Optional

from .error_types import ErrorResolution, GitErrorKind


def build_error_strategies() -> Dict[GitErrorKind, ErrorResolution]:
    """Build the resolution table for every GitErrorKind."""
    return {
        GitErrorKind.AUTHENTICATION: ErrorResolution(
            kind=GitErrorKind.AUTHENTICATION,
            user_message="Authentication with the git server failed",
            technical_message="The remote rejected the supplied access token",
            resolution_steps=[
                "Check that your access token has not expired or been revoked",
                "Make sure the token has the read_repository and write_repository scopes",
                "Enter a fresh token when asked and run the sync again",
            ],
            retryable=True
        ),

        GitErrorKind.NETWORK: ErrorResolution(
            kind=GitErrorKind.NETWORK,
            user_message="The git server could not be reached",
            technical_message="A network operation failed or timed out",
            resolution_steps=[
                "Check your internet connection",
                "Verify that the git server is reachable in your browser",
                "Run the sync again in a few minutes",
            ],
            retryable=True
        ),

        GitErrorKind.HISTORY_DIVERGED: ErrorResolution(
            kind=GitErrorKind.HISTORY_DIVERGED,
            user_message="The remote history changed unexpectedly",
            technical_message="Fast-forward update rejected because the histories diverged",
            resolution_steps=[
                "Your files are backed up before the repository is recreated",
                "Compare the backup with the fresh checkout and copy back anything you still need",
                "If this keeps happening, inform the course coordination team",
            ]
        ),

        GitErrorKind.MERGE_CONFLICT: ErrorResolution(
            kind=GitErrorKind.MERGE_CONFLICT,
            user_message="Your repository has unresolved merge conflicts",
            technical_message="Unmerged paths are present in the working tree",
            resolution_steps=[
                "Open the conflicted files and resolve the conflict markers",
                "Stage the resolved files and commit",
                "Run the sync again",
            ]
        ),

        GitErrorKind.DIRTY_TREE: ErrorResolution(
            kind=GitErrorKind.DIRTY_TREE,
            user_message="Local changes would be overwritten",
            technical_message="The working tree has changes that conflict with the update",
            resolution_steps=[
                "Commit or stash your local changes",
                "Run the sync again",
            ]
        ),

        GitErrorKind.CONFIGURATION: ErrorResolution(
            kind=GitErrorKind.CONFIGURATION,
            user_message="The repository configuration is incomplete",
            technical_message="Required remote or branch metadata is missing",
            resolution_steps=[
                "Check the remote URLs with 'git remote -v'",
                "Contact your lecturer if the course template repository is missing",
            ]
        ),

        GitErrorKind.NOT_A_REPOSITORY: ErrorResolution(
            kind=GitErrorKind.NOT_A_REPOSITORY,
            user_message="The folder is not a git repository",
            technical_message="No valid checkout marker was found",
            resolution_steps=[
                "Move the folder away so that it can be cloned again",
            ]
        ),

        GitErrorKind.UNKNOWN: ErrorResolution(
            kind=GitErrorKind.UNKNOWN,
            user_message="An unexpected git error occurred",
            technical_message="The failure did not match a known pattern",
            resolution_steps=[
                "Check the log output for the full git error",
                "Try the operation again",
                "Contact support if the problem persists",
            ]
        ),
    }


_STRATEGIES = build_error_strategies()


def resolution_for(kind: GitErrorKind) -> ErrorResolution:
    """Return the resolution for ``kind``."""
    return _STRATEGIES.get(kind, _STRATEGIES[GitErrorKind.UNKNOWN])


def describe_failure(kind: GitErrorKind, detail: Optional[str] = None, subject: Optional[str] = None) -> str:
    """
    Create a user-friendly message for a failure.

    Args:
        kind: Classified failure kind
        detail: Technical detail (git output), appended at the end
        subject: Repository name or path the failure belongs to

    Returns:
        Multi-line message with resolution steps
    """
    resolution = resolution_for(kind)
    headline = resolution.user_message
    if subject:
        headline = f"{headline} ({subject})"

    parts = [headline, "", "What you can do:"]
    for i, step in enumerate(resolution.resolution_steps, 1):
        parts.append(f"   {i}. {step}")

    if detail:
        parts.extend(["", f"Technical details: {detail.strip()}"])

    return "\n".join(parts)
