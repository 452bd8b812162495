"""Uninstall command implementation."""

import click

from appshelf.commands.session import build_inventory, build_orchestrator, console, fail, refresh, resolve, run
from appshelf.core.errors import AppShelfError


@click.command()
@click.argument("name")
def uninstall(name: str):
    """Move an installed package to the trash.

    NAME is the package's bundle identifier or its name.
    """

    async def body() -> None:
        inventory = build_inventory()
        await refresh(inventory)
        record = resolve(inventory, name, include_prereleases=True)

        console.print(f"[blue]Uninstalling[/blue] {record.name}...")
        try:
            await build_orchestrator(inventory).delete(record)
        except AppShelfError as e:
            fail(e)

        console.print(f"\n[green]✓[/green] Successfully uninstalled [bold]{record.name}[/bold]")
        console.print(f"[dim]The bundle was moved to {inventory.config.trash_dir}[/dim]")

    run(body)
