"""CLI entry point for appshelf."""

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from appshelf import __version__
from appshelf.commands import info, install, launch, list_cmd, outdated, search, uninstall, update, watch

console = Console(stderr=True)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option(version=__version__, prog_name="appshelf")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def main(verbose: bool):
    """appshelf - an app catalog client.

    Install, update and remove app bundles published in a catalog, with
    checksum verification and atomic placement into the install directory.

    Examples:

        appshelf search editor

        appshelf install app.Foo

        appshelf list

        appshelf upgrade-all
    """
    setup_logging(verbose)


# Register commands
main.add_command(install.install)
main.add_command(uninstall.uninstall)
main.add_command(update.update)
main.add_command(update.upgrade_all)
main.add_command(list_cmd.list_packages)
main.add_command(search.search)
main.add_command(info.info)
main.add_command(outdated.outdated)
main.add_command(launch.launch)
main.add_command(launch.reveal)
main.add_command(watch.watch)


if __name__ == "__main__":
    main()
