"""Operation and progress models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from appshelf.core.errors import AppShelfError


class OperationCancelled(AppShelfError):
    """The operation was cancelled by the user."""

    def __init__(self, message: str = "Operation cancelled", *, cause: BaseException | None = None):
        super().__init__(message, cause=cause)


class Activity(str, Enum):
    """What an operation does."""

    INSTALL = "install"
    UPDATE = "update"
    TRASH = "trash"
    REVEAL = "reveal"
    LAUNCH = "launch"


class OperationState(str, Enum):
    """Install state machine. CANCELLED and FAILED are reachable from every non-terminal state."""

    IDLE = "idle"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    UNPACKING = "unpacking"
    VALIDATING = "validating"
    PLACING = "placing"
    RESCANNING = "rescanning"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (OperationState.DONE, OperationState.CANCELLED, OperationState.FAILED)


class Progress:
    """A cancellable progress handle.

    Tracks completed/total units and notifies listeners on every change.
    """

    def __init__(self, total: int = 0):
        self.total = total
        self.completed = 0
        self._cancelled = False
        self._listeners: list[Callable[["Progress"], None]] = []

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(1.0, self.completed / self.total)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation. Listeners are notified once, on the first request."""
        if self._cancelled:
            return
        self._cancelled = True
        self._notify()

    def check_cancelled(self) -> None:
        """Raise OperationCancelled if cancellation was requested."""
        if self._cancelled:
            raise OperationCancelled()

    def set_total(self, total: int) -> None:
        self.total = total
        self._notify()

    def advance(self, units: int) -> None:
        self.completed += units
        self._notify()

    def finish(self) -> None:
        if self.total <= 0:
            self.total = 1
        self.completed = self.total
        self._notify()

    def add_listener(self, listener: Callable[["Progress"], None]) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)


@dataclass
class Operation:
    """A user-initiated action on one package, owned by the orchestrator."""

    identifier: str
    activity: Activity
    progress: Progress = field(default_factory=Progress)
    state: OperationState = OperationState.IDLE
    error: BaseException | None = None
    history: list[OperationState] = field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return self.progress.cancelled

    def cancel(self) -> None:
        self.progress.cancel()
