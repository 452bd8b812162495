"""Watch command: follow changes to the install directory."""

import asyncio

import click

from appshelf.commands.session import build_inventory, console, refresh, run
from appshelf.core.inventory import InstalledMap


def describe_changes(before: InstalledMap, after: InstalledMap) -> list[str]:
    """Human-readable lines for what changed between two installed sets."""
    lines = []
    for identifier in sorted(set(before) | set(after)):
        old, new = before.get(identifier), after.get(identifier)
        if old is None:
            lines.append(f"[green]+[/green] {identifier} {new.version or ''}")
        elif new is None:
            lines.append(f"[red]-[/red] {identifier} {old.version or ''}")
        elif old.version != new.version:
            lines.append(f"[blue]~[/blue] {identifier} {old.version} → {new.version}")
    return lines


@click.command()
@click.option("--interval", default=1.0, show_default=True, help="Polling interval in seconds")
def watch(interval: float):
    """Report packages as they appear in or vanish from the install directory."""

    async def body() -> None:
        inventory = build_inventory()
        await refresh(inventory, catalog=False)

        previous = inventory.installed.get()

        def on_change(installed: InstalledMap) -> None:
            nonlocal previous
            for line in describe_changes(previous, installed):
                console.print(line)
            previous = installed

        inventory.installed.subscribe(on_change)
        inventory.watch(interval=interval)
        console.print(
            f"[blue]Watching[/blue] {inventory.config.install_dir} "
            f"({len(previous)} installed). Press Ctrl-C to stop."
        )
        try:
            await asyncio.Event().wait()
        finally:
            await inventory.unwatch()

    run(body)
