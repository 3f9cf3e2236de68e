"""Game process execution."""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import Protocol

import structlog

from channel_launcher.core.config import LaunchConfig
from channel_launcher.core.errors import LaunchError
from channel_launcher.core.progress import PhaseChanged, ProgressStream

logger = structlog.get_logger()


class Executor(Protocol):
    """Contract for the execution collaborator."""

    def launch(self, install_dir: Path, executable: str, config: LaunchConfig) -> ProgressStream:
        """Run pre-launch steps, then hand off to the game process."""
        ...


class ProcessExecutor:
    """Runs the game executable as a child process.

    When the launch configuration names a wine prefix the executable runs
    through ``wine`` with ``WINEPREFIX`` set; otherwise it is started
    directly. The stream ends once the process exits.

    Args:
        wine_binary: Name or path of the wine executable
    """

    def __init__(self, wine_binary: str = "wine"):
        self.wine_binary = wine_binary

    def build_command(self, install_dir: Path, executable: str, config: LaunchConfig) -> list[str]:
        """Build the argument vector for a launch."""
        exe_path = install_dir / executable
        command = [str(exe_path), *config.extra_args]
        if config.fps_unlock != "default":
            command += ["-fps", config.fps_unlock]
        if config.wine_prefix is not None:
            command.insert(0, self.wine_binary)
        return command

    def launch(self, install_dir: Path, executable: str, config: LaunchConfig) -> ProgressStream:
        """Start the game and wait for it to exit.

        Raises:
            LaunchError: If the executable is missing or exits with an error
        """
        if not (install_dir / executable).is_file():
            raise LaunchError(f"Executable not found: {install_dir / executable}")
        if config.wine_prefix is not None and shutil.which(self.wine_binary) is None:
            raise LaunchError(f"Wine binary not found: {self.wine_binary}")

        env = dict(os.environ)
        if config.wine_prefix is not None:
            env["WINEPREFIX"] = str(config.wine_prefix)

        command = self.build_command(install_dir, executable, config)
        yield PhaseChanged("launch", f"Starting {executable}")
        logger.info("game_launching", command=command, cwd=str(install_dir))

        try:
            completed = subprocess.run(command, cwd=install_dir, env=env, check=False)
        except OSError as e:
            raise LaunchError(f"Failed to start {executable}: {e}") from e

        if completed.returncode != 0:
            raise LaunchError(f"{executable} exited with code {completed.returncode}")

        logger.info("game_exited", returncode=completed.returncode)
        yield PhaseChanged("exited", executable)
