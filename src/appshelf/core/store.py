"""Single-writer snapshot stores.

Each cache (catalog, installed set, active operations) lives in a store that
holds one immutable value. Writers replace the value through ``publish``;
readers call ``get`` and always see a complete snapshot. Subscribers are
notified after every replacement.
"""

import logging
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotStore(Generic[T]):
    """Holds the latest immutable snapshot of one cache."""

    def __init__(self, initial: T, name: str = ""):
        self._value = initial
        self._name = name
        self._version = 0
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def version(self) -> int:
        """Number of times the snapshot has been replaced."""
        return self._version

    def get(self) -> T:
        return self._value

    def publish(self, value: T) -> None:
        """Replace the snapshot and notify subscribers."""
        self._value = value
        self._version += 1
        for subscriber in list(self._subscribers):
            try:
                subscriber(value)
            except Exception:
                logger.exception("subscriber to %s store failed", self._name or "snapshot")

    def update(self, fn: Callable[[T], T]) -> T:
        """Publish ``fn(current)``; ``fn`` must return a new value, not mutate."""
        value = fn(self._value)
        self.publish(value)
        return value

    def subscribe(self, subscriber: Callable[[T], None]) -> Callable[[], None]:
        """Register a subscriber. Returns a function that unsubscribes it."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe
