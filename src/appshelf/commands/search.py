"""Search command implementation."""

import click
from rich.table import Table

from appshelf.commands.session import build_inventory, console, refresh, run
from appshelf.core.inventory import MINIMUM_SEARCH_LENGTH, InventoryFilter


@click.command()
@click.argument("query")
@click.option("--prereleases", "-p", is_flag=True, help="Include beta versions")
@click.option("--limit", "-n", default=20, help="Number of results to show")
def search(query: str, prereleases: bool, limit: int):
    """Search the catalog.

    QUERY matches the identifier, name, subtitle, developer or description.
    """
    if len(query.strip()) < MINIMUM_SEARCH_LENGTH:
        console.print(f"[yellow]Search terms need at least {MINIMUM_SEARCH_LENGTH} characters[/yellow]")
        raise SystemExit(1)

    console.print(f"[blue]Searching for:[/blue] {query}\n")

    async def body() -> None:
        inventory = build_inventory()
        await refresh(inventory)
        results = inventory.items(InventoryFilter(search_text=query, include_prereleases=prereleases))

        if not results:
            console.print("No results found")
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("Identifier")
        table.add_column("Name")
        table.add_column("Version")
        table.add_column("Description")

        for item in results[:limit]:
            desc = item.record.subtitle or item.record.description or ""
            if len(desc) > 60:
                desc = desc[:57] + "..."
            version = item.version or ""
            if item.record.beta:
                version += " [yellow](beta)[/yellow]"
            if item.is_installed:
                version += " [green](installed)[/green]"
            table.add_row(item.identifier, item.name, version, desc)

        console.print(table)
        if len(results) > limit:
            console.print(f"[dim]... and {len(results) - limit} more[/dim]")
        console.print("\n[dim]Install with: appshelf install <name>[/dim]")

    run(body)
