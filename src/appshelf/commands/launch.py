"""Launch and reveal commands."""

import click

from appshelf.commands.session import build_inventory, build_orchestrator, console, fail, refresh, resolve, run
from appshelf.core.errors import AppShelfError


def _open(name: str, reveal: bool) -> None:
    async def body() -> None:
        inventory = build_inventory()
        await refresh(inventory)
        record = resolve(inventory, name, include_prereleases=True)
        orchestrator = build_orchestrator(inventory)
        try:
            if reveal:
                await orchestrator.reveal(record)
            else:
                await orchestrator.launch(record)
        except AppShelfError as e:
            fail(e)
        console.print(f"[green]✓[/green] {'Revealed' if reveal else 'Launched'} [bold]{record.name}[/bold]")

    run(body)


@click.command()
@click.argument("name")
def launch(name: str):
    """Open an installed package."""
    _open(name, reveal=False)


@click.command()
@click.argument("name")
def reveal(name: str):
    """Show an installed package in the file manager."""
    _open(name, reveal=True)
