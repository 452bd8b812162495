"""Unit tests for core/homebrew.py."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from appshelf.core.downloader import cache_path_name
from appshelf.core.errors import ToolError
from appshelf.core.homebrew import HomebrewManager
from appshelf.core.shell import CommandResult
from appshelf.models.catalog import CaskPackage

CASK = CaskPackage(
    identifier="iterm2",
    name="iTerm",
    download_url="https://downloads.example.com/iTerm2-3_5_0.zip",
    version="3.5.0",
    token="iterm2",
)


@pytest.fixture
def brew_root(tmp_path: Path) -> Path:
    root = tmp_path / "homebrew"
    (root / "bin").mkdir(parents=True)
    brew = root / "bin" / "brew"
    brew.write_text("#!/bin/sh\nexit 0\n")
    brew.chmod(0o755)
    return root


@pytest.fixture
def manager(brew_root: Path, tmp_path: Path) -> HomebrewManager:
    return HomebrewManager(brew_root, tmp_path / "cache" / "Homebrew")


def _install_cask(caskroom: Path, token: str, *versions: str, metadata: bool = True) -> None:
    for version in versions:
        (caskroom / token / version).mkdir(parents=True)
    if metadata:
        (caskroom / token / ".metadata").mkdir(parents=True)


class TestFromConfig:
    """Tests for HomebrewManager.from_config()."""

    def test_disabled_without_brew_root(self, config) -> None:
        assert HomebrewManager.from_config(config) is None

    def test_from_config(self, config, brew_root: Path) -> None:
        config.brew_root = brew_root
        config.zap_deleted_casks = True

        manager = HomebrewManager.from_config(config)

        assert manager.cache_dir == config.cache_dir / "Homebrew"
        assert manager.download_cache == config.cache_dir / "Homebrew" / "downloads"
        assert manager.zap is True
        assert manager.is_installed()


class TestScanCaskroom:
    """Tests for HomebrewManager.scan_caskroom()."""

    def test_no_caskroom(self, manager: HomebrewManager) -> None:
        assert manager.scan_caskroom() == {}

    def test_scan(self, manager: HomebrewManager) -> None:
        _install_cask(manager.caskroom, "iterm2", "3.4.0", "3.5.0")
        _install_cask(manager.caskroom, "firefox", "125.0")

        installed = manager.scan_caskroom()

        assert set(installed) == {"iterm2", "firefox"}
        assert installed["iterm2"].version == "3.5.0"
        assert installed["iterm2"].all_versions == ("3.4.0", "3.5.0")
        assert installed["iterm2"].path == manager.caskroom / "iterm2"

    def test_folders_without_metadata_are_ignored(self, manager: HomebrewManager) -> None:
        _install_cask(manager.caskroom, "half-installed", "1.0", metadata=False)
        assert manager.scan_caskroom() == {}


class TestArguments:
    """Tests for install/delete argument building."""

    def test_install_args(self, manager: HomebrewManager) -> None:
        assert manager.install_args(CASK, update=False) == [
            "install", "--no-quarantine", "--require-sha", "--cask", "iterm2",
        ]

    def test_upgrade_args(self, manager: HomebrewManager) -> None:
        manager.require_checksum = False
        manager.quarantine = True
        assert manager.install_args(CASK, update=True, verbose=True) == [
            "upgrade", "--verbose", "--quarantine", "--cask", "iterm2",
        ]

    def test_delete_args(self, manager: HomebrewManager) -> None:
        assert manager.delete_args(CASK) == ["remove", "--cask", "iterm2"]
        manager.zap = True
        assert manager.delete_args(CASK) == ["remove", "--zap", "--cask", "iterm2"]

    def test_environment(self, manager: HomebrewManager) -> None:
        env = manager.environment()
        assert env["HOMEBREW_CACHE"] == str(manager.cache_dir)
        assert env["HOMEBREW_NO_AUTO_UPDATE"] == "1"


class TestCache:
    """Tests for the download cache placement."""

    def test_place_in_cache(self, manager: HomebrewManager, tmp_path: Path) -> None:
        artifact = tmp_path / "download-abc"
        artifact.write_bytes(b"zip")
        stale = manager.cache_target(CASK)
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"old")

        target = manager.place_in_cache(artifact, CASK)

        assert target.name == cache_path_name(CASK.download_url)
        assert target.read_bytes() == b"zip"
        assert not artifact.exists()


class TestRun:
    """Tests for running brew."""

    @pytest.mark.asyncio
    async def test_install_runs_brew(self, manager: HomebrewManager) -> None:
        with patch(
            "appshelf.core.homebrew.run_command_async",
            AsyncMock(return_value=CommandResult("installed", "", 0)),
        ) as run:
            assert await manager.install(CASK) == "installed"

        args = run.await_args.args[0]
        assert args[0] == str(manager.brew_command)
        assert args[1:] == manager.install_args(CASK, update=False)
        assert run.await_args.kwargs["env"]["HOMEBREW_CACHE"] == str(manager.cache_dir)

    @pytest.mark.asyncio
    async def test_failure_raises_tool_error(self, manager: HomebrewManager) -> None:
        with patch(
            "appshelf.core.homebrew.run_command_async",
            AsyncMock(return_value=CommandResult("", "Error: no such cask", 1)),
        ):
            with pytest.raises(ToolError, match="no such cask"):
                await manager.delete(CASK)

    @pytest.mark.asyncio
    async def test_missing_brew(self, tmp_path: Path) -> None:
        manager = HomebrewManager(tmp_path / "nowhere", tmp_path / "cache")
        with pytest.raises(ToolError, match="not installed"):
            await manager.install(CASK)
