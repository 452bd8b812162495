"""Catalog data models."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import IntEnum
from typing import ClassVar


class RiskLevel(IntEnum):
    """How much a package can do, derived from the permissions it requests."""

    HARMLESS = 0
    MOSTLY_HARMLESS = 1
    RISKY = 2
    HAZARDOUS = 3
    DANGEROUS = 4
    PERILOUS = 5


_LOCALIZATION_KEYS = {
    "name": "name",
    "subtitle": "subtitle",
    "localizedDescription": "description",
    "versionDescription": "version_description",
}


def parse_date(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, accepting a trailing 'Z'."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _text(data: dict, key: str, *, required: bool = False) -> str | None:
    """A string field; raises ValueError if present with another type."""
    value = data[key] if required else data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key!r} must be a string, not {type(value).__name__}")
    return value


def _count(data: dict, key: str) -> int:
    """A non-negative integer field; numeric strings are accepted."""
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key!r} must be a non-negative integer, not {value!r}")
    return value


@dataclass(frozen=True)
class Permission:
    """A permission requested by a package."""

    type: str
    usage_description: str = ""

    @classmethod
    def from_api_response(cls, data: dict) -> "Permission":
        return cls(
            type=data["type"],
            usage_description=data.get("usageDescription", ""),
        )


@dataclass(frozen=True)
class PackageRecord:
    """A package as listed in a catalog. Immutable once parsed."""

    kind: ClassVar[str] = "package"

    identifier: str
    name: str
    download_url: str
    version: str | None = None
    sha256: str | None = None
    size: int = 0
    version_date: datetime | None = None
    beta: bool = False
    subtitle: str | None = None
    developer_name: str | None = None
    description: str | None = None
    version_description: str | None = None
    categories: tuple[str, ...] = ()
    download_count: int = 0
    star_count: int = 0
    permissions: tuple[Permission, ...] = ()
    localizations: dict = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def risk_level(self) -> RiskLevel:
        """Risk grows with the number of distinct permission types requested."""
        kinds = {p.type for p in self.permissions}
        return RiskLevel(min(len(kinds), RiskLevel.PERILOUS))

    @property
    def download_extension(self) -> str:
        """The file extension of the download URL, without the dot."""
        path = self.download_url.split("?", 1)[0].rsplit("/", 1)[-1]
        if "." not in path:
            return ""
        return path.rsplit(".", 1)[-1].lower()

    @staticmethod
    def _common_fields(data: dict) -> dict:
        return {
            "identifier": _text(data, "bundleIdentifier", required=True),
            "name": _text(data, "name", required=True),
            "download_url": _text(data, "downloadURL", required=True),
            "version": _text(data, "version"),
            "sha256": _text(data, "sha256"),
            "size": _count(data, "size"),
            "version_date": parse_date(_text(data, "versionDate")),
            "beta": bool(data.get("beta", False)),
            "subtitle": _text(data, "subtitle"),
            "developer_name": _text(data, "developerName"),
            "description": _text(data, "localizedDescription"),
            "version_description": _text(data, "versionDescription"),
            "categories": tuple(data.get("categories") or ()),
            "download_count": _count(data, "downloadCount"),
            "star_count": _count(data, "starCount"),
            "permissions": tuple(
                Permission.from_api_response(p) for p in data.get("permissions") or ()
            ),
            "localizations": data.get("localizations") or {},
        }

    @staticmethod
    def from_api_response(data: dict) -> "PackageRecord":
        """Create the right package variant from a catalog entry."""
        if data.get("cask"):
            return CaskPackage.from_api_response(data)
        return CatalogPackage.from_api_response(data)

    def localized(self, language: str) -> "PackageRecord":
        """Return a copy with text fields taken from the given localization.

        Raises ValueError if the localization entry is malformed.
        """
        entry = self.localizations.get(language)
        if entry is None and "-" in language:
            entry = self.localizations.get(language.split("-", 1)[0])
        if entry is None:
            return self
        if not isinstance(entry, dict):
            raise ValueError(f"localization {language!r} for {self.identifier} is not a mapping")

        changes = {}
        for key, attr in _LOCALIZATION_KEYS.items():
            if key in entry:
                if not isinstance(entry[key], str):
                    raise ValueError(f"localized {key!r} for {self.identifier} is not a string")
                changes[attr] = entry[key]
        return replace(self, **changes)


@dataclass(frozen=True)
class CatalogPackage(PackageRecord):
    """A bundle installed by appshelf's own download pipeline."""

    kind: ClassVar[str] = "catalog"

    @classmethod
    def from_api_response(cls, data: dict) -> "CatalogPackage":
        return cls(**PackageRecord._common_fields(data))


@dataclass(frozen=True)
class CaskPackage(PackageRecord):
    """A package whose install is delegated to Homebrew."""

    kind: ClassVar[str] = "cask"

    token: str = ""
    auto_updates: bool = False

    @classmethod
    def from_api_response(cls, data: dict) -> "CaskPackage":
        cask = data["cask"]
        return cls(
            **PackageRecord._common_fields(data),
            token=cask.get("token") or data["bundleIdentifier"],
            auto_updates=bool(cask.get("autoUpdates", False)),
        )


@dataclass(frozen=True)
class CatalogSnapshot:
    """A fully parsed catalog. Replaced wholesale on every fetch."""

    packages: tuple[PackageRecord, ...]
    name: str | None = None
    identifier: str | None = None
    source_url: str | None = None
    homepage: str | None = None
    description: str | None = None
    last_modified: datetime | None = None
    etag: str | None = None
