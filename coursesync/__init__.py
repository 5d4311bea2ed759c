"""
Course Repository Sync (coursesync) - keeps per-user course checkouts in step with their remotes.

This package clones, fast-forwards, fork-syncs and, when a remote history has been
rewritten, backs up and recreates local git checkouts of course repositories.
"""

__version__ = "1.0.0"
__author__ = "Computor Team"
__description__ = "Repository synchronization engine for course assignment checkouts"

from .config import Config, load_configuration

__all__ = ["Config", "load_configuration", "__version__"]
