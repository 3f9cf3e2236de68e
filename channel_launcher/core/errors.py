"""Exception hierarchy for installation lifecycle actions.

Probe and store errors are recovered by the orchestrator and mapped to
installation states. Version-policy errors are handed to the notifier and
end the current action. Transfer errors propagate to the stream consumer.
"""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for all lifecycle errors."""


class KeyNotFoundError(LifecycleError, KeyError):
    """Raised when a key is absent from the persistent store."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"Key not found: {self.key}"


class ProbeError(LifecycleError):
    """Raised when the installed version cannot be read from disk."""


class ProbeNotFound(ProbeError):
    """The version asset or its marker sequence is missing."""


class ProbeMalformed(ProbeError):
    """The version asset is present but its payload cannot be decoded."""


class InsufficientDiskSpace(LifecycleError):
    """Free space at the target directory is below the install requirement.

    Attributes:
        required_gib: Required space in GiB (already scaled by the margin)
        free_gib: Free space reported by the filesystem in GiB
        required_gb: Required space converted for decimal-unit display
    """

    def __init__(self, required_gib: float, free_gib: float):
        self.required_gib = required_gib
        self.free_gib = free_gib
        self.required_gb = round(required_gib * 1.074, 1)
        super().__init__(
            f"Not enough disk space: {required_gib:g} GiB "
            f"({self.required_gb} GB) required, {free_gib:.1f} GiB free"
        )


class UnsupportedVersionTooNew(LifecycleError):
    """The installed game is newer than this launcher supports."""

    def __init__(self, version: str, supported: str):
        self.version = version
        self.supported = supported
        super().__init__(
            f"Game version {version} is newer than supported version {supported}"
        )


class VersionTooOldNoDiff(LifecycleError):
    """No incremental diff exists from the installed version to latest."""

    def __init__(self, version: str, latest: str):
        self.version = version
        self.latest = latest
        super().__init__(
            f"Game version {version} is too old to update to {latest}"
        )


class ManifestFetchError(LifecycleError):
    """Raised when the channel manifest or content cannot be retrieved."""

    def __init__(self, message: str, *, url: str | None = None):
        self.url = url
        super().__init__(message)


class TransferError(LifecycleError):
    """Raised by the transfer collaborator when a download or check fails."""

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        expected: str | int | None = None,
        actual: str | int | None = None,
    ):
        self.source = source
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class PatchRevertError(LifecycleError):
    """Raised when an applied patch cannot be reverted."""


class LaunchError(LifecycleError):
    """Raised when the game process cannot be started or exits abnormally."""


class ActionInProgressError(LifecycleError):
    """Raised when an action is started while another one is running."""


class ActionCancelled(LifecycleError):
    """Raised inside an action stream after its cancel token was set."""
