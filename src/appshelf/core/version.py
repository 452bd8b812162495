"""Version ordering for catalog and installed version strings."""

from packaging.version import InvalidVersion, Version


def parse_version(raw: str | None) -> Version | None:
    """Parse a version string, tolerating a leading 'v'. Returns None if unparseable."""
    if not raw:
        return None
    candidate = raw.strip()
    if candidate.startswith("v"):
        candidate = candidate[1:]
    try:
        return Version(candidate)
    except InvalidVersion:
        return None


def version_key(raw: str | None) -> tuple:
    """Sort key: missing < unparseable (by text) < parseable (by version)."""
    if raw is None:
        return (0, "")
    parsed = parse_version(raw)
    if parsed is None:
        return (1, raw)
    return (2, parsed)


def is_newer(candidate: str | None, current: str | None) -> bool:
    """Whether ``candidate`` is strictly newer than ``current``.

    Both versions must be present; nothing is newer than an unknown version.
    """
    if candidate is None or current is None:
        return False
    return version_key(candidate) > version_key(current)
