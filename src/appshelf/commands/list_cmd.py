"""List command implementation."""

import click
from rich.table import Table

from appshelf.commands.session import build_inventory, console, refresh, run


@click.command("list")
def list_packages():
    """List all installed packages."""

    async def body() -> None:
        inventory = build_inventory()
        await refresh(inventory, catalog=False)
        installed = inventory.installed.get()

        if not installed:
            console.print("No packages installed")
            console.print("\nInstall packages with: appshelf install <name>")
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("Identifier")
        table.add_column("Version")
        table.add_column("Location")

        for identifier in sorted(installed):
            record = installed[identifier]
            table.add_row(identifier, record.version or "?", str(record.path))

        console.print(table)

    run(body)
