"""Install, update, delete, reveal and launch, one operation per package.

Each user action becomes an ``Operation`` that walks the install state
machine. At most one operation is active per identifier; a second request
for the same identifier is rejected, while different identifiers run
concurrently. The installed set is re-scanned whenever anything on disk
changed, even when the operation failed part way, and the operation stays
active until that re-scan has been published.
"""

from pathlib import Path
from types import MappingProxyType
from typing import Awaitable, Callable, Mapping
import asyncio
import inspect
import logging
import uuid

import httpx

from appshelf.core.checksum import verify_hash
from appshelf.core.config import AppShelfConfig, PromptSuppression
from appshelf.core.downloader import DownloadError, download
from appshelf.core.errors import AppShelfError, ToolError
from appshelf.core.extractor import cleanup_temp_dir, extract_archive, locate_bundle, validate_bundle
from appshelf.core.homebrew import HomebrewManager
from appshelf.core.inventory import Inventory, installed_key
from appshelf.core.launcher import Launcher
from appshelf.core.privilege import Elevator, make_directory, move_into_place, trash
from appshelf.core.scanner import install_path_for
from appshelf.core.store import SnapshotStore
from appshelf.models.catalog import CaskPackage, PackageRecord
from appshelf.models.operation import (
    Activity,
    Operation,
    OperationCancelled,
    OperationState,
    Progress,
)

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], bool | Awaitable[bool]]


class AlreadyInstalled(AppShelfError):
    """Install requested for a package that is already installed."""

    pass


class NotInstalled(AppShelfError):
    """The package has no installed bundle."""

    pass


class OperationInProgress(AppShelfError):
    """Another operation is already active for this package."""

    pass


class Orchestrator:
    """Runs user operations against the install directory."""

    def __init__(
        self,
        inventory: Inventory,
        *,
        config: AppShelfConfig | None = None,
        elevator: Elevator | None = None,
        launcher: Launcher | None = None,
        homebrew: HomebrewManager | None = None,
        confirm: ConfirmCallback | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.inventory = inventory
        self.config = config or inventory.config
        self.elevator = elevator or Elevator(self.config.elevation_command)
        self.launcher = launcher or Launcher()
        self.homebrew = homebrew or inventory.homebrew
        self.confirm = confirm
        self.client = client or inventory.client
        self.operations: SnapshotStore[Mapping[str, Operation]] = SnapshotStore(
            MappingProxyType({}), "operations"
        )
        self.errors: list[BaseException] = []

    # Operation bookkeeping

    def active(self, identifier: str) -> Operation | None:
        return self.operations.get().get(identifier)

    def begin(self, identifier: str, activity: Activity, progress: Progress | None = None) -> Operation:
        """Register a new operation, or raise OperationInProgress if one is active."""
        current = self.active(identifier)
        if current is not None:
            logger.info("%s already in progress for %s", current.activity.value, identifier)
            raise OperationInProgress(
                f"Cannot {activity.value} {identifier}: {current.activity.value} is already in progress"
            )

        operation = Operation(identifier, activity, progress or Progress())
        self.operations.update(lambda ops: MappingProxyType({**ops, identifier: operation}))
        return operation

    def _end(self, operation: Operation) -> None:
        self.operations.update(
            lambda ops: MappingProxyType({k: v for k, v in ops.items() if k != operation.identifier})
        )

    def cancel(self, identifier: str) -> bool:
        """Request cancellation of the active operation for ``identifier``."""
        operation = self.active(identifier)
        if operation is None:
            return False
        logger.info("cancelling %s of %s", operation.activity.value, identifier)
        operation.cancel()
        return True

    def _advance(self, operation: Operation, state: OperationState, *, check: bool = True) -> None:
        if check:
            operation.progress.check_cancelled()
        logger.debug("%s: %s -> %s", operation.identifier, operation.state.value, state.value)
        operation.state = state
        operation.history.append(state)

    def _settle(self, operation: Operation, state: OperationState, error: BaseException | None = None) -> None:
        operation.state = state
        operation.error = error
        operation.history.append(state)

    def _fail(self, operation: Operation, error: BaseException) -> None:
        if isinstance(error, (AlreadyInstalled, NotInstalled)):
            logger.info("%s of %s: %s", operation.activity.value, operation.identifier, error)
        else:
            logger.error("%s of %s failed: %s", operation.activity.value, operation.identifier, error)
        self._settle(operation, OperationState.FAILED, error)
        self.errors.append(error)

    async def _execute(
        self,
        operation: Operation,
        body: Callable[[Operation], Awaitable[None]],
    ) -> Operation:
        """Run ``body`` and settle ``operation`` in a terminal state.

        Failures are recorded and re-raised; every form of cancellation ends
        in CANCELLED and surfaces as OperationCancelled (or the task's own
        CancelledError).
        """
        try:
            await body(operation)
        except asyncio.CancelledError as e:
            self._settle(operation, OperationState.CANCELLED, e)
            raise
        except OperationCancelled as e:
            logger.info("%s of %s cancelled", operation.activity.value, operation.identifier)
            self._settle(operation, OperationState.CANCELLED, e)
            raise
        except DownloadError as e:
            if not e.cancelled:
                self._fail(operation, e)
                raise
            logger.info("%s of %s cancelled", operation.activity.value, operation.identifier)
            cancelled = OperationCancelled(cause=e)
            self._settle(operation, OperationState.CANCELLED, cancelled)
            raise cancelled
        except Exception as e:
            self._fail(operation, e)
            raise
        else:
            self._settle(operation, OperationState.DONE)
        finally:
            self._end(operation)
        return operation

    # Install / update

    async def install(
        self,
        record: PackageRecord,
        *,
        update: bool = False,
        progress: Progress | None = None,
        allow_unverified: bool | None = None,
    ) -> Operation:
        """Download, verify, unpack and place ``record``'s bundle.

        With ``update`` an existing bundle is trashed first and, if it was
        running, relaunched afterwards.
        """
        operation = self.begin(
            record.identifier, Activity.UPDATE if update else Activity.INSTALL, progress
        )
        if isinstance(record, CaskPackage):
            body = lambda op: self._install_cask(op, record, update, allow_unverified)
        else:
            body = lambda op: self._install_bundle(op, record, update, allow_unverified)
        return await self._execute(operation, body)

    async def update(self, record: PackageRecord, *, progress: Progress | None = None) -> Operation:
        return await self.install(record, update=True, progress=progress)

    def _allow_unverified(self, allow_unverified: bool | None, require_checksum: bool) -> bool:
        if allow_unverified is None:
            return not require_checksum
        return allow_unverified

    async def _install_bundle(
        self,
        operation: Operation,
        record: PackageRecord,
        update: bool,
        allow_unverified: bool | None,
    ) -> None:
        config = self.config
        destination = install_path_for(record, config.install_dir, config.bundle_suffix)
        if not update and destination.exists():
            raise AlreadyInstalled(f"{record.name} is already installed at {destination}")

        artifact: Path | None = None
        scratch: Path | None = None
        mutated = False
        placed = False
        try:
            self._advance(operation, OperationState.DOWNLOADING)
            artifact, digest = await download(
                record.download_url,
                progress=operation.progress,
                dest_dir=config.cache_dir,
                client=self.client,
                timeout=config.timeout,
            )

            self._advance(operation, OperationState.VERIFYING)
            verify_hash(
                record.sha256,
                digest,
                allow_unverified=self._allow_unverified(allow_unverified, config.require_checksum),
                name=record.name,
            )

            self._advance(operation, OperationState.UNPACKING)
            scratch = config.cache_dir / f"unpack-{uuid.uuid4().hex}"
            await asyncio.to_thread(extract_archive, artifact, scratch)
            artifact.unlink(missing_ok=True)
            artifact = None

            self._advance(operation, OperationState.VALIDATING)
            bundle = locate_bundle(scratch, config.bundle_suffix)
            validate_bundle(bundle, record, config.bundle_suffix)

            self._advance(operation, OperationState.PLACING)
            if not destination.parent.is_dir():
                await make_directory(destination.parent, elevator=self.elevator)
            if destination.exists():
                if not update:
                    raise AlreadyInstalled(f"{record.name} is already installed at {destination}")
                mutated = True
                await trash(destination, config.trash_dir, elevator=self.elevator)

            mutated = True
            await move_into_place(bundle, destination, elevator=self.elevator)
            placed = True
            logger.info("placed %s %s at %s", record.name, record.version or "", destination)
        finally:
            if artifact is not None:
                artifact.unlink(missing_ok=True)
            if scratch is not None:
                cleanup_temp_dir(scratch)
            if mutated:
                if placed:
                    self._advance(operation, OperationState.RESCANNING, check=False)
                await self.inventory.rescan()

        if update and config.relaunch_updated:
            await self._relaunch(record, destination)

    async def _install_cask(
        self,
        operation: Operation,
        record: CaskPackage,
        update: bool,
        allow_unverified: bool | None,
    ) -> None:
        homebrew = self._require_homebrew()
        if not update and self.inventory.installed_record(installed_key(record)) is not None:
            raise AlreadyInstalled(f"{record.name} is already installed")

        if homebrew.manage_downloads:
            self._advance(operation, OperationState.DOWNLOADING)
            artifact, digest = await download(
                record.download_url,
                progress=operation.progress,
                dest_dir=homebrew.download_cache,
                client=self.client,
                timeout=self.config.timeout,
            )
            try:
                self._advance(operation, OperationState.VERIFYING)
                verify_hash(
                    record.sha256,
                    digest,
                    allow_unverified=self._allow_unverified(allow_unverified, homebrew.require_checksum),
                    name=record.name,
                )
                homebrew.place_in_cache(artifact, record)
            finally:
                artifact.unlink(missing_ok=True)

        self._advance(operation, OperationState.PLACING)
        try:
            await homebrew.install(record, update=update, verbose=logger.isEnabledFor(logging.DEBUG))
        finally:
            self._advance(operation, OperationState.RESCANNING, check=False)
            await self.inventory.rescan()

    def _require_homebrew(self) -> HomebrewManager:
        if self.homebrew is None:
            raise ToolError("Homebrew casks are not enabled; set brew_root in the settings")
        return self.homebrew

    async def _relaunch(self, record: PackageRecord, bundle: Path) -> None:
        """Restart a running instance of the freshly updated bundle."""
        if record.identifier == self.config.host_identifier:
            if not await self._confirm_host_relaunch(record):
                logger.info("not relaunching %s", record.name)
                return
        try:
            relaunched = await asyncio.to_thread(self.launcher.terminate_and_relaunch, bundle)
        except OSError as e:
            logger.warning("could not relaunch %s: %s", record.name, e)
            return
        if relaunched:
            logger.info("relaunching %s", record.name)

    async def _confirm_host_relaunch(self, record: PackageRecord) -> bool:
        policy = self.config.relaunch_host
        if policy == PromptSuppression.CONFIRMATION:
            return True
        if policy == PromptSuppression.DESTRUCTIVE or self.confirm is None:
            return False
        answer = self.confirm(f"{record.name} has been updated. Restart it now?")
        if inspect.isawaitable(answer):
            answer = await answer
        return bool(answer)

    # Delete / reveal / launch

    async def delete(self, record: PackageRecord) -> Operation:
        """Move the installed bundle to the trash (or ``brew remove`` a cask)."""
        operation = self.begin(record.identifier, Activity.TRASH)

        async def body(op: Operation) -> None:
            if isinstance(record, CaskPackage):
                homebrew = self._require_homebrew()
                if self.inventory.installed_record(installed_key(record)) is None:
                    raise NotInstalled(f"{record.name} is not installed")
                self._advance(op, OperationState.PLACING)
                try:
                    await homebrew.delete(record, verbose=logger.isEnabledFor(logging.DEBUG))
                finally:
                    self._advance(op, OperationState.RESCANNING, check=False)
                    await self.inventory.rescan()
                return

            path = self._installed_path(record)
            self._advance(op, OperationState.PLACING)
            try:
                trashed = await trash(path, self.config.trash_dir, elevator=self.elevator)
            finally:
                self._advance(op, OperationState.RESCANNING, check=False)
                await self.inventory.rescan()
            logger.info("moved %s to %s", path, trashed)

        return await self._execute(operation, body)

    def _installed_path(self, record: PackageRecord) -> Path:
        path = self.inventory.installed_path(record)
        if path is None:
            raise NotInstalled(f"{record.name} is not installed")
        return path

    async def reveal(self, record: PackageRecord) -> Operation:
        """Show the installed bundle in the file manager."""
        operation = self.begin(record.identifier, Activity.REVEAL)
        return await self._execute(
            operation, lambda op: self.launcher.reveal(self._installed_path(record))
        )

    async def launch(self, record: PackageRecord) -> Operation:
        """Open the installed bundle."""
        operation = self.begin(record.identifier, Activity.LAUNCH)
        return await self._execute(
            operation, lambda op: self.launcher.launch(self._installed_path(record))
        )
