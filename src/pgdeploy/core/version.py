"""
Version Utilities

Parses and compares dotted numeric versions. Used for manifest compatibility
checks and for comparing installed extension versions against requested ones.
"""

import re
from dataclasses import dataclass

SUPPORTED_MANIFEST_MAJOR = 1

_VERSION_PATTERN = re.compile(r"^(v)?(\d+)(?:\.(\d+))?(?:\.(\d+))?$")


@dataclass(frozen=True)
class DottedVersion:
    """Dotted version (MAJOR[.MINOR[.PATCH]]), missing parts compare as zero"""

    major: int
    minor: int = 0
    patch: int = 0
    prefix: str = ""

    def __str__(self) -> str:
        return f"{self.prefix}{self.major}.{self.minor}.{self.patch}"

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __lt__(self, other: "DottedVersion") -> bool:
        return self.key < other.key

    def __le__(self, other: "DottedVersion") -> bool:
        return self.key <= other.key

    def __gt__(self, other: "DottedVersion") -> bool:
        return self.key > other.key

    def __ge__(self, other: "DottedVersion") -> bool:
        return self.key >= other.key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DottedVersion):
            return False
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)


def parse_version(version_str: str) -> DottedVersion:
    """Parse a dotted version string

    Args:
        version_str: Version string (e.g., "1", "1.0", "v3.4.2")

    Returns:
        DottedVersion object

    Raises:
        ValueError: If version string is invalid

    Example:
        >>> parse_version("3.4")
        DottedVersion(major=3, minor=4, patch=0, prefix='')
    """
    match = _VERSION_PATTERN.match(version_str.strip())
    if not match:
        raise ValueError(
            f"Invalid version: {version_str}. Expected format: 1, 1.0 or 1.0.0 (MAJOR.MINOR.PATCH)"
        )

    prefix = match.group(1) or ""
    major = int(match.group(2))
    minor = int(match.group(3) or 0)
    patch = int(match.group(4) or 0)

    return DottedVersion(major, minor, patch, prefix)


def is_supported_manifest_version(version_str: str) -> bool:
    """Return True if the manifest format version can be consumed by this engine."""
    try:
        return parse_version(version_str).major == SUPPORTED_MANIFEST_MAJOR
    except ValueError:
        return False


def satisfies_minimum(installed: str, requested: str) -> bool | None:
    """Check whether an installed version is equal to or newer than a requested one.

    Returns:
        True/False for comparable versions, None if either side is not a
        dotted numeric version (e.g. "1.5.3dev") and the strings differ.
    """
    if installed == requested:
        return True
    try:
        return parse_version(installed) >= parse_version(requested)
    except ValueError:
        return None
