"""Info command implementation."""

import click
from rich.panel import Panel

from appshelf.commands.session import build_inventory, console, refresh, resolve, run
from appshelf.models.catalog import CaskPackage


@click.command()
@click.argument("name")
def info(name: str):
    """Show detailed information about a package.

    NAME is the package's bundle identifier or its name.
    """

    async def body() -> None:
        inventory = build_inventory()
        await refresh(inventory)
        record = resolve(inventory, name, include_prereleases=True)
        item = inventory.item(record.identifier)

        lines = [
            f"[bold]Identifier:[/bold] {record.identifier}",
            f"[bold]Version:[/bold] {record.version or '?'}{' (beta)' if record.beta else ''}",
        ]
        if record.subtitle:
            lines.append(f"[bold]Summary:[/bold] {record.subtitle}")
        if record.developer_name:
            lines.append(f"[bold]Developer:[/bold] {record.developer_name}")
        if record.version_date:
            lines.append(f"[bold]Released:[/bold] {record.version_date.strftime('%Y-%m-%d')}")
        if record.categories:
            lines.append(f"[bold]Categories:[/bold] {', '.join(record.categories)}")
        lines.append(f"[bold]Risk:[/bold] {record.risk_level.name.replace('_', ' ').lower()}")
        lines.append(f"[bold]Downloads:[/bold] {record.download_count:,}  [bold]Stars:[/bold] {record.star_count:,}")
        lines.append(f"[bold]Download:[/bold] {record.download_url}")
        lines.append(f"[bold]SHA-256:[/bold] {record.sha256 or '[yellow]not published[/yellow]'}")
        if isinstance(record, CaskPackage):
            lines.append(f"[bold]Cask:[/bold] {record.token}{' (auto-updates)' if record.auto_updates else ''}")

        title = f"[green]{record.name}[/green]"
        if item is not None and item.is_installed:
            lines.append(f"[bold]Installed:[/bold] {item.installed_version or '?'} at {item.installed.path}")
            title += " (installed)"
            if item.update_available:
                lines.append(f"[bold]Update available:[/bold] [green]{record.version}[/green]")

        console.print(Panel("\n".join(lines), title=title))

        if record.description:
            console.print(f"\n{record.description}")

        if record.permissions:
            console.print("\n[bold]Permissions:[/bold]")
            for permission in record.permissions:
                usage = f": {permission.usage_description}" if permission.usage_description else ""
                console.print(f"  • {permission.type}{usage}")

    run(body)
