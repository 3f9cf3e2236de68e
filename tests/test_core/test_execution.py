"""Tests for channel_launcher.core.execution module."""

from unittest.mock import Mock, patch

import pytest

from channel_launcher.core.config import LaunchConfig
from channel_launcher.core.errors import LaunchError
from channel_launcher.core.execution import ProcessExecutor
from channel_launcher.core.progress import PhaseChanged


@pytest.fixture
def game_dir(temp_dir):
    """Directory holding the game executable."""
    (temp_dir / "Game.exe").write_bytes(b"MZ")
    return temp_dir


class TestBuildCommand:
    """Test ProcessExecutor.build_command."""

    def test_native(self, game_dir):
        """Test command without wine."""
        command = ProcessExecutor().build_command(game_dir, "Game.exe", LaunchConfig())
        assert command == [str(game_dir / "Game.exe")]

    def test_wine_and_arguments(self, game_dir, temp_dir):
        """Test command through wine with extra arguments and frame rate."""
        config = LaunchConfig(wine_prefix=temp_dir / "prefix", extra_args=["-popupwindow"], fps_unlock="120")
        command = ProcessExecutor(wine_binary="wine64").build_command(game_dir, "Game.exe", config)
        assert command == ["wine64", str(game_dir / "Game.exe"), "-popupwindow", "-fps", "120"]


class TestLaunch:
    """Test ProcessExecutor.launch."""

    def test_runs_process(self, game_dir):
        """Test process is started in the install directory."""
        with patch("channel_launcher.core.execution.subprocess.run") as run:
            run.return_value = Mock(returncode=0)
            events = list(ProcessExecutor().launch(game_dir, "Game.exe", LaunchConfig()))

        assert all(isinstance(e, PhaseChanged) for e in events)
        assert [e.phase for e in events] == ["launch", "exited"]
        assert run.call_args.kwargs["cwd"] == game_dir

    def test_wine_prefix_environment(self, game_dir, temp_dir):
        """Test WINEPREFIX is exported for wine launches."""
        config = LaunchConfig(wine_prefix=temp_dir / "prefix")
        with patch("channel_launcher.core.execution.shutil.which", return_value="/usr/bin/wine"), \
                patch("channel_launcher.core.execution.subprocess.run") as run:
            run.return_value = Mock(returncode=0)
            list(ProcessExecutor().launch(game_dir, "Game.exe", config))

        assert run.call_args.kwargs["env"]["WINEPREFIX"] == str(temp_dir / "prefix")

    def test_missing_executable(self, temp_dir):
        """Test launch without the executable."""
        with pytest.raises(LaunchError, match="not found"):
            list(ProcessExecutor().launch(temp_dir, "Game.exe", LaunchConfig()))

    def test_missing_wine(self, game_dir, temp_dir):
        """Test launch through a wine binary that is not installed."""
        config = LaunchConfig(wine_prefix=temp_dir / "prefix")
        with patch("channel_launcher.core.execution.shutil.which", return_value=None):
            with pytest.raises(LaunchError, match="Wine binary"):
                list(ProcessExecutor().launch(game_dir, "Game.exe", config))

    def test_nonzero_exit(self, game_dir):
        """Test abnormal exit raises LaunchError."""
        with patch("channel_launcher.core.execution.subprocess.run") as run:
            run.return_value = Mock(returncode=3)
            with pytest.raises(LaunchError, match="code 3"):
                list(ProcessExecutor().launch(game_dir, "Game.exe", LaunchConfig()))
