"""Configuration and path management for appshelf."""

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
import logging
import os

import yaml

from appshelf.core.errors import AppShelfError

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_URL = "https://appfair.net/fairapps-macos.json"


class ConfigError(AppShelfError):
    """The settings file could not be read."""

    pass


class PromptSuppression(str, Enum):
    """Whether to remember the response to a confirmation prompt."""

    UNSET = "unset"  # ask every time
    CONFIRMATION = "confirmation"  # always answer yes
    DESTRUCTIVE = "destructive"  # always answer no


# Settings that may be overridden from config.yaml
_PATH_SETTINGS = {"install_dir", "cache_dir", "trash_dir", "brew_root"}


@dataclass
class AppShelfConfig:
    """Configuration for the appshelf package manager."""

    base_dir: Path
    install_dir: Path
    cache_dir: Path
    trash_dir: Path
    settings_path: Path
    catalog_url: str = DEFAULT_CATALOG_URL
    bundle_suffix: str = ".app"
    display_extensions: tuple[str, ...] = ("zip",)
    show_prereleases: bool = False
    relaunch_updated: bool = True
    relaunch_host: PromptSuppression = PromptSuppression.UNSET
    risk_filter: int = 2  # RiskLevel.RISKY
    require_checksum: bool = True
    timeout: float = 60.0
    host_identifier: str | None = None
    locale: str | None = None
    brew_root: Path | None = None
    manage_cask_downloads: bool = True
    require_cask_checksum: bool = True
    zap_deleted_casks: bool = False
    ignore_auto_updates: bool = True
    elevation_command: list[str] = field(default_factory=lambda: ["pkexec", "sh", "-c"])

    @classmethod
    def default(cls) -> "AppShelfConfig":
        """Create config with default paths."""
        base = Path(os.environ.get("APPSHELF_HOME", Path.home() / ".appshelf"))
        install_dir = Path(os.environ.get("APPSHELF_INSTALL_DIR", base / "Applications"))
        config = cls(
            base_dir=base,
            install_dir=install_dir,
            cache_dir=base / "cache",
            trash_dir=base / "trash",
            settings_path=base / "config.yaml",
        )
        if "APPSHELF_CATALOG_URL" in os.environ:
            config.catalog_url = os.environ["APPSHELF_CATALOG_URL"]
        return config

    @classmethod
    def load(cls, path: Path | None = None) -> "AppShelfConfig":
        """Create the default config and overlay the settings file, if any."""
        config = cls.default()
        if path is not None:
            config.settings_path = path
        config.apply(config.read_settings())
        return config

    def read_settings(self) -> dict:
        """Read the YAML settings file; a missing file yields no settings."""
        if not self.settings_path.exists():
            return {}

        try:
            with open(self.settings_path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Could not read settings from {self.settings_path}", cause=e)

        if not isinstance(data, dict):
            raise ConfigError(f"Settings file {self.settings_path} must contain a mapping")
        return data

    def apply(self, settings: dict) -> None:
        """Apply a mapping of settings to this config."""
        known = {f.name for f in fields(self)}
        for key, value in settings.items():
            if key not in known or key in ("base_dir", "settings_path"):
                logger.warning("ignoring unknown setting %r in %s", key, self.settings_path)
                continue
            if key in _PATH_SETTINGS and value is not None:
                value = Path(value).expanduser()
            elif key == "relaunch_host":
                value = PromptSuppression(value)
            elif key == "display_extensions":
                value = tuple(value)
            setattr(self, key, value)

    def save(self) -> None:
        """Write the user-adjustable settings back to the settings file."""
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)

        data = {}
        for key, value in asdict(self).items():
            if key in ("base_dir", "settings_path"):
                continue
            if isinstance(value, Path):
                value = str(value)
            elif isinstance(value, Enum):
                value = value.value
            elif isinstance(value, tuple):
                value = list(value)
            data[key] = value

        with open(self.settings_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def ensure_dirs(self) -> None:
        """Ensure all required directories exist."""
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.trash_dir.mkdir(parents=True, exist_ok=True)

    @property
    def host_bundle_path(self) -> Path:
        """Where the host application itself is installed: next to the install directory."""
        return self.install_dir.parent / (self.install_dir.name + self.bundle_suffix)


# Global config instance
_config: AppShelfConfig | None = None


def get_config() -> AppShelfConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppShelfConfig.load()
    return _config


def set_config(config: AppShelfConfig | None) -> None:
    """Set a custom configuration (useful for testing)."""
    global _config
    _config = config
