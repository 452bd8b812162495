"""Shared plumbing for the commands: building the inventory and running operations."""

from typing import Awaitable, Callable, TypeVar
import asyncio

from rich.console import Console
from rich.progress import BarColumn, DownloadColumn, TextColumn, TransferSpeedColumn
from rich.progress import Progress as ProgressBar
from rich.prompt import Confirm

from appshelf.core.catalog import CatalogFetchError
from appshelf.core.config import AppShelfConfig, get_config
from appshelf.core.errors import AppShelfError
from appshelf.core.homebrew import HomebrewManager
from appshelf.core.inventory import Inventory
from appshelf.core.orchestrator import Orchestrator
from appshelf.models.catalog import PackageRecord
from appshelf.models.operation import Operation, Progress

console = Console()

T = TypeVar("T")


def fail(error: BaseException | str) -> None:
    """Print an error and exit with status 1."""
    console.print(f"[red]Error:[/red] {error}")
    raise SystemExit(1)


def run(coro_fn: Callable[[], Awaitable[T]]) -> T:
    """Run an async command body; Ctrl-C cancels whatever is in flight."""
    try:
        return asyncio.run(coro_fn())
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise SystemExit(130)


def load_config() -> AppShelfConfig:
    try:
        config = get_config()
    except AppShelfError as e:
        fail(e)
    config.ensure_dirs()
    return config


def build_inventory(config: AppShelfConfig | None = None) -> Inventory:
    config = config or load_config()
    return Inventory(config, homebrew=HomebrewManager.from_config(config))


async def ask(message: str) -> bool:
    """Prompt on the terminal without blocking other running operations."""
    return await asyncio.to_thread(Confirm.ask, message, default=True)


def build_orchestrator(inventory: Inventory) -> Orchestrator:
    return Orchestrator(inventory, confirm=ask)


async def refresh(inventory: Inventory, *, catalog: bool = True, reload: bool = False) -> None:
    """Load the catalog (optionally) and the installed set, exiting on fetch failure."""
    try:
        if catalog:
            await inventory.refresh_all(reload_from_source=reload)
        else:
            await inventory.rescan()
    except CatalogFetchError as e:
        fail(e)


def resolve(inventory: Inventory, name: str, include_prereleases: bool | None = None) -> PackageRecord:
    """Find a catalog record by identifier or name, exiting if there is none."""
    record = inventory.find(name, include_prereleases)
    if record is None:
        fail(f"No package named '{name}' in the catalog")
    return record


async def run_install(
    orchestrator: Orchestrator,
    record: PackageRecord,
    *,
    update: bool = False,
    allow_unverified: bool | None = None,
) -> Operation:
    """Install or update ``record`` with a progress bar for the download."""
    progress = Progress()
    columns = (
        TextColumn("  [progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
    )
    with ProgressBar(*columns, console=console, transient=True) as bar:
        task = bar.add_task(record.name, total=None)
        progress.add_listener(
            lambda p: bar.update(task, total=p.total or None, completed=p.completed)
        )
        return await orchestrator.install(
            record, update=update, progress=progress, allow_unverified=allow_unverified
        )
