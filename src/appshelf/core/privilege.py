"""Filesystem mutations with a privilege-escalation fallback.

Every move, trash and mkdir of a shared location goes through
``with_elevation``: the operation is attempted unprivileged, and only a
permission-denied failure triggers a single elevated ``chown`` of the
target followed by exactly one retry.
"""

from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, TypeVar
import errno
import getpass
import inspect
import logging
import os
import shlex
import shutil

from appshelf.core.errors import AppShelfError
from appshelf.core.shell import run_command_async

logger = logging.getLogger(__name__)

T = TypeVar("T")

PERMISSION_ERRNOS = {errno.EACCES, errno.EPERM}


class ElevationError(AppShelfError):
    """The privilege-elevation prompt was declined or failed."""

    pass


def is_permission_error(error: BaseException) -> bool:
    """Whether ``error`` is a read/write permission failure on the target."""
    if isinstance(error, PermissionError):
        return True
    return isinstance(error, OSError) and error.errno in PERMISSION_ERRNOS


class Elevator:
    """Runs shell commands with administrator rights."""

    def __init__(self, admin_command: list[str] | None = None):
        self.admin_command = admin_command or ["pkexec", "sh", "-c"]

    async def run(self, command: str, admin: bool = True) -> str:
        """Run ``command``; with ``admin`` it goes through the elevation prompt.

        Returns captured output. Raises ElevationError on failure.
        """
        args = [*self.admin_command, command] if admin else ["/bin/sh", "-c", command]
        try:
            result = await run_command_async(args)
        except OSError as e:
            raise ElevationError(f"Could not run elevated command: {command}", cause=e)
        if not result.success:
            raise ElevationError(
                f"Elevated command failed with exit code {result.returncode}: "
                f"{result.stderr.strip() or command}"
            )
        return result.stdout

    async def elevate(self, path: Path, recursive: bool = False) -> None:
        """Take ownership of ``path`` for the current user."""
        flag = "-R " if recursive else ""
        user = shlex.quote(getpass.getuser())
        output = await self.run(f"/usr/sbin/chown {flag}{user} {shlex.quote(str(path))}", admin=True)
        logger.debug("took ownership of %s: %s", path, output.strip())


async def _call(operation: Callable[[Path], T | Awaitable[T]], path: Path) -> T:
    result = operation(path)
    if inspect.isawaitable(result):
        result = await result
    return result


async def with_elevation(
    path: Path,
    operation: Callable[[Path], T | Awaitable[T]],
    *,
    recursive: bool = False,
    elevator: Elevator | None = None,
) -> T:
    """Perform ``operation(path)``, retrying once with elevated ownership on permission errors.

    Non-permission errors propagate immediately. If elevation fails, the
    original error propagates.
    """
    try:
        return await _call(operation, path)
    except OSError as error:
        if not is_permission_error(error):
            logger.debug("non-permission error on %s: %s", path, error)
            raise

        logger.info("permission denied on %s, requesting elevation", path)
        elevator = elevator or Elevator()
        try:
            await elevator.elevate(path, recursive)
        except ElevationError as elevation_error:
            logger.warning("elevation for %s failed: %s", path, elevation_error)
            raise error

    return await _call(operation, path)


def _unique_destination(folder: Path, name: str) -> Path:
    candidate = folder / name
    if not candidate.exists():
        return candidate
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
    return folder / f"{name} {stamp}"


async def trash(path: Path, trash_dir: Path, *, elevator: Elevator | None = None) -> Path:
    """Move ``path`` into ``trash_dir`` under a unique name. Returns the trashed location."""
    trash_dir.mkdir(parents=True, exist_ok=True)

    def move_to_trash(target: Path) -> Path:
        destination = _unique_destination(trash_dir, target.name)
        return Path(shutil.move(str(target), str(destination)))

    trashed = await with_elevation(path, move_to_trash, recursive=True, elevator=elevator)
    logger.debug("trashed %s to %s", path, trashed)
    return trashed


async def make_directory(path: Path, *, elevator: Elevator | None = None) -> None:
    """Create ``path`` (and parents), elevating on the parent if needed."""

    def mkdir(_parent: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    await with_elevation(path.parent, mkdir, elevator=elevator)


def _replace_into(src: Path, dest: Path) -> Path:
    """Move ``src`` to ``dest`` so that ``dest`` appears in one rename."""
    if dest.exists():
        raise FileExistsError(errno.EEXIST, "Destination already exists", str(dest))
    try:
        os.rename(src, dest)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        # different filesystem: copy next to the destination, then rename
        staging = dest.parent / f".{dest.name}.partial"
        if staging.exists():
            shutil.rmtree(staging)
        try:
            shutil.copytree(src, staging, symlinks=True)
            os.rename(staging, dest)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        shutil.rmtree(src, ignore_errors=True)
    return dest


async def move_into_place(src: Path, dest: Path, *, elevator: Elevator | None = None) -> Path:
    """Atomically place ``src`` at ``dest``, elevating on the destination folder if needed."""
    return await with_elevation(dest.parent, lambda _folder: _replace_into(src, dest), elevator=elevator)
