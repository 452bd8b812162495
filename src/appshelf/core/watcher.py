"""Directory watcher that triggers re-scans when the install directory changes.

Changes are detected by polling the directory listing rather than with
OS notifications, so a directory that does not exist yet (or is deleted
and recreated) is handled the same as any other change.
"""

from pathlib import Path
from typing import Awaitable, Callable
import asyncio
import inspect
import logging

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 1.0

# Package managers create a directory eagerly and fill it in later, so their
# changes are re-checked after each of these delays (seconds).
STAGGERED_DELAYS = (0, 1, 2, 5, 10, 30)

Listing = dict[str, tuple[int, int]]


def take_listing(path: Path) -> Listing | None:
    """Snapshot of ``path``'s immediate children, or None if it is not a directory."""
    try:
        entries = list(path.iterdir())
    except (FileNotFoundError, NotADirectoryError):
        return None
    except OSError as e:
        logger.debug("cannot list %s: %s", path, e)
        return None

    listing: Listing = {}
    for entry in entries:
        try:
            stat = entry.lstat()
        except OSError:
            continue  # removed while listing
        listing[entry.name] = (stat.st_mtime_ns, stat.st_ino)
    return listing


class DirectoryWatcher:
    """Invokes ``callback`` whenever an entry inside ``path`` changes."""

    def __init__(
        self,
        path: Path,
        callback: Callable[[], Awaitable[None] | None],
        *,
        interval: float = POLL_INTERVAL_S,
        delays: tuple[float, ...] = (0,),
    ):
        self.path = path
        self.callback = callback
        self.interval = interval
        self.delays = tuple(delays)
        self._listing = take_listing(path)
        self._task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling on the running event loop."""
        if self.running:
            return
        if self._listing is None:
            logger.debug("watch target %s does not exist yet", self.path)
        self._task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop(self) -> None:
        """Stop polling and drop any scheduled callbacks."""
        tasks = list(self._pending)
        if self._task is not None:
            tasks.append(self._task)
            self._task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()

    def rearm(self, delays: tuple[float, ...] | None = None) -> None:
        """Reset the baseline listing, e.g. after the directory was (re)created."""
        if delays is not None:
            self.delays = tuple(delays)
        self._listing = take_listing(self.path)

    def poll(self) -> bool:
        """Compare the directory against the last listing; schedule callbacks on change."""
        listing = take_listing(self.path)
        if listing == self._listing:
            return False

        logger.debug("changes detected in %s", self.path)
        self._listing = listing
        for delay in self.delays:
            task = asyncio.get_running_loop().create_task(self._fire(delay))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return True

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.poll()

    async def _fire(self, delay: float) -> None:
        if delay:
            await asyncio.sleep(delay)
        try:
            result = self.callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("watch callback for %s failed", self.path)
