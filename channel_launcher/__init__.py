"""Channel Launcher - installation lifecycle management for channel-distributed games.

Detects the installed game version, reconciles it with the channel's
version manifest, and drives install, update, pre-download, integrity
check and launch actions as observable progress streams.

Key modules:
- core: Lifecycle orchestration, collaborators, configuration and types
- commands: CLI command implementations
"""

__version__ = "0.1.0"
__author__ = "Channel Launcher Team"

# Re-export commonly used types
from channel_launcher.core.config import ChannelConfig, LaunchConfig
from channel_launcher.core.orchestrator import LifecycleOrchestrator
from channel_launcher.core.state import InstallationState

__all__ = [
    "__version__",
    "__author__",
    "ChannelConfig",
    "LaunchConfig",
    "LifecycleOrchestrator",
    "InstallationState",
]
