"""Outdated command implementation."""

import click
from rich.table import Table

from appshelf.commands.session import build_inventory, console, refresh, run
from appshelf.core.inventory import InventoryFilter, Section


@click.command()
def outdated():
    """List packages with available updates."""
    console.print("[blue]Checking for updates...[/blue]\n")

    async def body() -> None:
        inventory = build_inventory()
        await refresh(inventory)

        if not inventory.installed.get():
            console.print("No packages installed")
            return

        items = inventory.items(InventoryFilter(section=Section.UPDATED))
        if not items:
            console.print("[green]All packages are up to date![/green]")
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("Package")
        table.add_column("Current")
        table.add_column("Latest")
        table.add_column("Released")

        for item in items:
            released = item.record.version_date.strftime("%Y-%m-%d") if item.record.version_date else ""
            table.add_row(
                item.name,
                item.installed_version or "?",
                f"[green]{item.version}[/green]",
                released,
            )

        console.print(table)
        console.print(f"\n{len(items)} package(s) can be updated")
        console.print("[dim]Run 'appshelf upgrade-all' to update all packages[/dim]")

    run(body)
