"""Update command implementation."""

import click

from appshelf.commands.session import (
    build_inventory,
    build_orchestrator,
    console,
    fail,
    refresh,
    resolve,
    run,
    run_install,
)
from appshelf.core.errors import AppShelfError
from appshelf.core.inventory import Inventory, InventoryFilter, Section
from appshelf.core.orchestrator import Orchestrator
from appshelf.models.catalog import PackageRecord
from appshelf.models.operation import OperationCancelled


async def update_package(inventory: Inventory, orchestrator: Orchestrator, record: PackageRecord) -> bool:
    """Update a single package. Returns True if updated."""
    current = inventory.installed_version(record.identifier)
    if not inventory.update_available(record):
        console.print(f"  [green]{record.name}[/green] is up to date ({current})")
        return False

    console.print(f"  [blue]Updating[/blue] {record.name}: {current} → {record.version}")
    try:
        await run_install(orchestrator, record, update=True)
    except OperationCancelled:
        console.print(f"    [yellow]Update of {record.name} cancelled[/yellow]")
        return False
    except AppShelfError as e:
        console.print(f"    [red]Update failed:[/red] {e}")
        return False

    console.print(f"    [green]✓[/green] Updated to {record.version}")
    return True


@click.command()
@click.argument("name")
def update(name: str):
    """Update an installed package to the catalog's version.

    NAME is the package's bundle identifier or its name.
    """

    async def body() -> None:
        inventory = build_inventory()
        await refresh(inventory)
        record = resolve(inventory, name)

        if inventory.installed_path(record) is None:
            fail(f"Package '{name}' is not installed")

        updated = await update_package(inventory, build_orchestrator(inventory), record)
        if not updated:
            if inventory.update_available(record):
                raise SystemExit(1)
            return

        console.print(f"\n[green]✓[/green] Successfully updated [bold]{record.name}[/bold]")

    run(body)


@click.command("upgrade-all")
def upgrade_all():
    """Update all installed packages that have a newer catalog version."""

    async def body() -> None:
        inventory = build_inventory()
        await refresh(inventory)

        items = inventory.items(InventoryFilter(section=Section.UPDATED))
        if not items:
            console.print("[green]All packages are up to date![/green]")
            return

        console.print(f"[blue]Updating {len(items)} package(s)...[/blue]\n")

        orchestrator = build_orchestrator(inventory)
        updated_count = 0
        for item in items:
            if await update_package(inventory, orchestrator, item.record):
                updated_count += 1

        console.print(f"\n[green]✓[/green] Updated {updated_count} package(s)")

    run(body)
