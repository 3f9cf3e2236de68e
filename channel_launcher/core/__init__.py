"""Core functionality for channel_launcher.

This module provides the lifecycle machinery used by the CLI:
- Configuration management
- Manifest types and fetching
- Installed version detection
- Transfer, execution and component collaborators
- The lifecycle orchestrator
"""

from channel_launcher.core.errors import (
    InsufficientDiskSpace,
    LifecycleError,
    ManifestFetchError,
    ProbeMalformed,
    ProbeNotFound,
    UnsupportedVersionTooNew,
    VersionTooOldNoDiff,
)
from channel_launcher.core.progress import (
    ActionFinished,
    BytesTransferred,
    CancelToken,
    FileProgress,
    PhaseChanged,
    ProgressEvent,
)
from channel_launcher.core.types import DiffEntry, VersionManifest

__all__ = [
    # Errors
    "LifecycleError",
    "ProbeNotFound",
    "ProbeMalformed",
    "InsufficientDiskSpace",
    "UnsupportedVersionTooNew",
    "VersionTooOldNoDiff",
    "ManifestFetchError",
    # Progress
    "ProgressEvent",
    "PhaseChanged",
    "BytesTransferred",
    "FileProgress",
    "ActionFinished",
    "CancelToken",
    # Types
    "VersionManifest",
    "DiffEntry",
]
