"""Install command implementation."""

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
from appshelf.core.orchestrator import AlreadyInstalled
from appshelf.models.operation import OperationCancelled


@click.command()
@click.argument("name")
@click.option(
    "--allow-unverified",
    is_flag=True,
    help="Install even if the catalog publishes no SHA-256 checksum",
)
@click.option("--prereleases", "-p", is_flag=True, help="Consider beta versions")
def install(name: str, allow_unverified: bool, prereleases: bool):
    """Install a package from the catalog.

    NAME is the package's bundle identifier or its name (e.g. app.Foo or Foo).
    """

    async def body() -> None:
        inventory = build_inventory()
        await refresh(inventory)
        record = resolve(inventory, name, prereleases or None)

        installed = inventory.installed_version(record.identifier)
        if inventory.installed_path(record) is not None:
            console.print(
                f"[yellow]{record.name}[/yellow] is already installed (version {installed}). "
                f"Use 'appshelf update {record.name}' to update it."
            )
            return

        console.print(f"[blue]Installing[/blue] {record.name} {record.version or ''}...")
        orchestrator = build_orchestrator(inventory)
        try:
            await run_install(orchestrator, record, allow_unverified=allow_unverified or None)
        except AlreadyInstalled as e:
            console.print(f"[yellow]{e}[/yellow]")
            return
        except OperationCancelled:
            console.print("[yellow]Installation cancelled[/yellow]")
            raise SystemExit(1)
        except AppShelfError as e:
            fail(e)

        console.print(
            f"\n[green]✓[/green] Successfully installed [bold]{record.name}[/bold] {record.version or ''}"
        )
        console.print(f"\n[dim]Installed to {inventory.installed_path(record)}[/dim]")

    run(body)
