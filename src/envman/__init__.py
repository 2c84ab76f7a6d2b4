"""
envman — versioned environment files on a remote host.

Save a local .env as a timestamped snapshot, keep a "latest" pointer
aimed at the newest one, and pull any snapshot back by exact name,
nickname, or the pointer itself. Every action lands in a remote audit log.
"""

import os

__version__ = "0.1.0"

ENVMAN_HOME = os.environ.get("ENVMAN_HOME", "~/.envman")
