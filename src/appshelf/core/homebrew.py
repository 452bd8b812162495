"""Homebrew cask support.

Casks are installed by ``brew`` itself. appshelf only pre-downloads the
artifact into Homebrew's download cache (so progress and cancellation work
and the checksum is verified before brew sees it), invokes
``brew install|upgrade|remove --cask``, and scans the Caskroom to learn what
is installed.
"""

from pathlib import Path
import logging
import os
import shutil

from appshelf.core.config import AppShelfConfig
from appshelf.core.downloader import cache_path_name
from appshelf.core.errors import ToolError
from appshelf.core.shell import run_command_async
from appshelf.core.version import version_key
from appshelf.models.catalog import CaskPackage
from appshelf.models.installed import InstalledRecord

logger = logging.getLogger(__name__)

METADATA_DIR = ".metadata"


class HomebrewManager:
    """Runs brew for cask installs and reads the Caskroom."""

    def __init__(
        self,
        brew_root: Path,
        cache_dir: Path,
        *,
        require_checksum: bool = True,
        manage_downloads: bool = True,
        zap: bool = False,
        quarantine: bool = False,
    ):
        self.brew_root = brew_root
        self.cache_dir = cache_dir  # HOMEBREW_CACHE
        self.require_checksum = require_checksum
        self.manage_downloads = manage_downloads
        self.zap = zap
        self.quarantine = quarantine

    @classmethod
    def from_config(cls, config: AppShelfConfig) -> "HomebrewManager | None":
        """A manager for the configured Homebrew, or None when casks are disabled."""
        if config.brew_root is None:
            return None
        return cls(
            config.brew_root,
            config.cache_dir / "Homebrew",
            require_checksum=config.require_cask_checksum,
            manage_downloads=config.manage_cask_downloads,
            zap=config.zap_deleted_casks,
        )

    @property
    def brew_command(self) -> Path:
        return self.brew_root / "bin" / "brew"

    @property
    def caskroom(self) -> Path:
        return self.brew_root / "Caskroom"

    @property
    def download_cache(self) -> Path:
        return self.cache_dir / "downloads"

    def is_installed(self) -> bool:
        return self.brew_command.is_file() and os.access(self.brew_command, os.X_OK)

    def environment(self) -> dict[str, str]:
        env = dict(os.environ)
        env["HOMEBREW_CACHE"] = str(self.cache_dir)
        env["HOMEBREW_NO_AUTO_UPDATE"] = "1"
        env["HOMEBREW_NO_ANALYTICS"] = "1"
        env["HOMEBREW_NO_INSTALL_CLEANUP"] = "1"
        return env

    def scan_caskroom(self) -> dict[str, InstalledRecord]:
        """Map cask token -> installed versions, read from ``Caskroom/<token>/<version>/``.

        Only folders with a ``.metadata`` directory are real installs.
        """
        installed: dict[str, InstalledRecord] = {}
        if not self.caskroom.is_dir():
            return installed

        for cask_dir in sorted(self.caskroom.iterdir()):
            if cask_dir.name.startswith(".") or not cask_dir.is_dir():
                continue
            try:
                names = {child.name for child in cask_dir.iterdir() if child.is_dir()}
            except OSError as e:
                logger.debug("skipping %s: %s", cask_dir, e)
                continue
            if METADATA_DIR not in names:
                continue
            names.discard(METADATA_DIR)

            versions = tuple(sorted(names, key=version_key))
            installed[cask_dir.name] = InstalledRecord(
                identifier=cask_dir.name,
                version=versions[-1] if versions else None,
                path=cask_dir,
                versions=versions,
            )

        logger.debug("scanned installed casks: %s", sorted(installed))
        return installed

    def cache_target(self, record: CaskPackage) -> Path:
        """Where brew expects the download: ``downloads/<sha256(url)>--<basename>``."""
        return self.download_cache / cache_path_name(record.download_url)

    def place_in_cache(self, artifact: Path, record: CaskPackage) -> Path:
        """Move a verified download into Homebrew's cache, replacing any earlier copy."""
        target = self.cache_target(record)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.unlink(missing_ok=True)
        shutil.move(str(artifact), str(target))
        logger.debug("moved %s to %s", artifact, target)
        return target

    def install_args(self, record: CaskPackage, update: bool, verbose: bool = False) -> list[str]:
        args = ["upgrade" if update else "install"]
        if verbose:
            args.append("--verbose")
        args.append("--quarantine" if self.quarantine else "--no-quarantine")
        if self.require_checksum:
            args.append("--require-sha")
        args += ["--cask", record.token]
        return args

    def delete_args(self, record: CaskPackage, verbose: bool = False) -> list[str]:
        args = ["remove"]
        if self.zap:
            args.append("--zap")
        if verbose:
            args.append("--verbose")
        args += ["--cask", record.token]
        return args

    async def run(self, args: list[str], tool: str) -> str:
        """Run brew with ``args``; a non-zero exit raises ToolError."""
        command = [str(self.brew_command), *args]
        logger.debug("running %s", " ".join(command))
        try:
            result = await run_command_async(command, env=self.environment())
        except OSError as e:
            raise ToolError(f"Error running {tool}", cause=e)
        if not result.success:
            raise ToolError(
                f"Error running {tool}: the {tool} failed with exit code {result.returncode}: "
                f"{result.stderr.strip()}"
            )
        return result.stdout

    async def install(self, record: CaskPackage, update: bool = False, verbose: bool = False) -> str:
        if not self.is_installed():
            raise ToolError(f"Homebrew is not installed at {self.brew_root}")
        return await self.run(self.install_args(record, update, verbose), "updater" if update else "installer")

    async def delete(self, record: CaskPackage, verbose: bool = False) -> str:
        if not self.is_installed():
            raise ToolError(f"Homebrew is not installed at {self.brew_root}")
        return await self.run(self.delete_args(record, verbose), "uninstaller")
