"""CLI command implementations for channel_launcher.

This module contains all command-line interface implementations:
- status: Show installation state and available updates
- install: Install or adopt a game directory
- update: Apply the incremental update
- predownload: Stage the next release ahead of time
- verify: Check and repair game files
- launch: Start the game
"""

from channel_launcher.commands.lifecycle import (
    install,
    launch,
    predownload,
    status,
    update,
    verify,
)

__all__ = ["install", "launch", "predownload", "status", "update", "verify"]
