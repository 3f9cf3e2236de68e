"""In-memory installation state with change notification."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace

import structlog
from packaging.version import Version

logger = structlog.get_logger()

NOT_INSTALLED_VERSION = "0.0.0"


@dataclass(frozen=True)
class InstallationState:
    """Snapshot of what is installed.

    Attributes:
        installed: Whether a usable installation is known
        install_dir: Installation directory, empty when not installed
        current_version: Installed version, "0.0.0" when not installed
        predownload_available: Whether a pre-download should be offered
    """

    installed: bool = False
    install_dir: str = ""
    current_version: str = NOT_INSTALLED_VERSION
    predownload_available: bool = False

    def __post_init__(self) -> None:
        # Raises InvalidVersion for anything that is not a version
        Version(self.current_version)
        if self.installed and not self.install_dir:
            raise ValueError("Installed state requires an install directory")

    @classmethod
    def not_installed(cls) -> InstallationState:
        """State for a missing or unusable installation."""
        return cls()


StateListener = Callable[[InstallationState, InstallationState], None]


class StateHolder:
    """Holds the current InstallationState and notifies listeners.

    Listeners receive ``(old, new)`` after every transition that
    changes the state.
    """

    def __init__(self, initial: InstallationState) -> None:
        self._state = initial
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> InstallationState:
        """Current state snapshot."""
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, **changes: object) -> InstallationState:
        """Apply changes atomically and notify listeners."""
        old = self._state
        new = replace(old, **changes)  # type: ignore[arg-type]
        if new == old:
            return old

        self._state = new
        logger.debug(
            "state_changed",
            installed=new.installed,
            install_dir=new.install_dir,
            version=new.current_version,
        )
        for listener in list(self._listeners):
            listener(old, new)
        return new
