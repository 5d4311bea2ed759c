#!/usr/bin/env python3
"""
Course Repository Sync MCP server.

Keeps local checkouts of course repositories in step with their remotes.
Configuration is read from COURSESYNC_* environment variables or a .env file.
"""

from coursesync.server import main

if __name__ == "__main__":
    main()
