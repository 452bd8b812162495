"""Launching, revealing and relaunching installed bundles."""

from pathlib import Path
import logging
import os
import platform
import shlex

import psutil

from appshelf.core.errors import AppShelfError
from appshelf.core.shell import run_command_async, spawn_detached

logger = logging.getLogger(__name__)


class LaunchError(AppShelfError):
    """The bundle could not be opened."""

    pass


def _open_command() -> list[str]:
    if platform.system() == "Darwin":
        return ["open"]
    return ["xdg-open"]


class Launcher:
    """Opens bundles with the platform's opener and manages their processes."""

    def __init__(self, open_command: list[str] | None = None):
        self.open_command = open_command or _open_command()

    async def launch(self, bundle: Path) -> None:
        """Open the bundle."""
        logger.debug("launching %s", bundle)
        await self._open([str(bundle)])

    async def reveal(self, bundle: Path) -> None:
        """Show the bundle in the file manager."""
        logger.debug("revealing %s", bundle)
        if self.open_command == ["open"]:
            await self._open(["-R", str(bundle)])
        else:
            await self._open([str(bundle.parent)])

    async def _open(self, args: list[str]) -> None:
        try:
            result = await run_command_async([*self.open_command, *args], timeout=30.0)
        except OSError as e:
            raise LaunchError(f"Could not open {args[-1]}", cause=e)
        if not result.success:
            raise LaunchError(f"Could not open {args[-1]}: {result.stderr.strip()}")

    def running_processes(self, bundle: Path) -> list[psutil.Process]:
        """Processes whose executable lives inside ``bundle``."""
        prefix = str(bundle.resolve()) + os.sep
        found = []
        for process in psutil.process_iter(["exe"]):
            exe = process.info.get("exe")
            if exe and exe.startswith(prefix):
                found.append(process)
        return found

    def terminate_and_relaunch(self, bundle: Path) -> bool:
        """Terminate the running instance of ``bundle`` and open it again once it exits.

        The relaunch is handed to a detached shell that waits for the process
        to die, since the process being terminated may be this one.
        Returns False if no instance was running.
        """
        processes = self.running_processes(bundle)
        if not processes:
            logger.debug("no running instance of %s", bundle)
            return False

        process = processes[0]
        target = shlex.quote(str(bundle))
        opener = " ".join(shlex.quote(part) for part in self.open_command)
        spawn_detached(
            f"while kill -0 {process.pid} >/dev/null 2>&1; do sleep 0.1; done; {opener} {target}"
        )

        try:
            process.terminate()
        except psutil.Error as e:
            logger.warning("could not terminate %s (pid %d): %s", bundle, process.pid, e)
            return False

        logger.debug("terminated pid %d for relaunch of %s", process.pid, bundle)
        return True
