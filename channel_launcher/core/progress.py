"""Progress events emitted by lifecycle actions.

Every long-running action is a generator of progress events. The consumer
drives the action by pulling events; the action does no work between
pulls. Streams are finite and cannot be restarted.
"""

from __future__ import annotations

import threading
from collections.abc import Generator, Iterator
from dataclasses import dataclass
from typing import TypeVar

from channel_launcher.core.errors import ActionCancelled


@dataclass(frozen=True)
class ProgressEvent:
    """Base class for all progress events."""


@dataclass(frozen=True)
class PhaseChanged(ProgressEvent):
    """An action entered a new phase (download, extract, verify, ...)."""

    phase: str
    message: str = ""


@dataclass(frozen=True)
class BytesTransferred(ProgressEvent):
    """Byte progress for a single transfer.

    Attributes:
        name: File or payload being transferred
        done: Bytes transferred so far
        total: Expected total bytes, 0 if unknown
    """

    name: str
    done: int
    total: int = 0

    @property
    def fraction(self) -> float:
        """Completed fraction, 0.0 when total is unknown."""
        if self.total <= 0:
            return 0.0
        return min(self.done / self.total, 1.0)


@dataclass(frozen=True)
class FileProgress(ProgressEvent):
    """Per-file progress within a multi-file step."""

    name: str
    index: int
    count: int


@dataclass(frozen=True)
class ActionFinished(ProgressEvent):
    """Final event of an action that ran to completion."""

    action: str


ProgressStream = Iterator[ProgressEvent]

T = TypeVar("T")


class CancelToken:
    """Cooperative cancellation flag shared with running actions.

    Actions check the token between events; a cancelled action raises
    ActionCancelled on the next pull without committing state.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    def reset(self) -> None:
        """Clear a previous cancellation request."""
        self._event.clear()

    def raise_if_cancelled(self) -> None:
        """Raise ActionCancelled if cancellation was requested."""
        if self._event.is_set():
            raise ActionCancelled("Action cancelled")


def checked(
    stream: Generator[ProgressEvent, None, T], token: CancelToken | None
) -> Generator[ProgressEvent, None, T]:
    """Relay a stream, checking the token before resuming it.

    Returns the wrapped stream's return value. The wrapped stream is
    closed when the relay stops early.
    """
    try:
        while True:
            if token is not None:
                token.raise_if_cancelled()
            try:
                event = next(stream)
            except StopIteration as stop:
                return stop.value
            yield event
    finally:
        stream.close()
