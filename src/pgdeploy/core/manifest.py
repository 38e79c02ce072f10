"""
Manifest loading and validation.

`parse` is pure: it turns a raw mapping into a validated `Manifest` or raises
`ValidationError` listing every problem found. `load_manifest` adds file I/O
for JSON and TOML documents.
"""

import json
import logging
import tomllib
from pathlib import Path
from typing import Any

import pydantic

from pgdeploy.domain.errors import ValidationError
from pgdeploy.models import Manifest

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_FILENAMES = ("pgdeploy.json", "pgdeploy.toml")
REQUIRED_KEYS = ("version", "default_schema")


def _format_error(error: Any) -> str:
    location = ".".join(str(part) for part in error.get("loc", ())) or "manifest"
    message = str(error.get("msg", "invalid value"))
    # pydantic prefixes messages raised from validators
    message = message.removeprefix("Value error, ")
    return f"{location}: {message}"


def parse(raw_config: Any) -> Manifest:
    """Parse and validate a raw manifest mapping

    Args:
        raw_config: Decoded manifest document (mapping of keys to values)

    Returns:
        Validated, immutable Manifest

    Raises:
        ValidationError: If the document is not a mapping, misses required
            keys, or violates any manifest invariant
    """
    if not isinstance(raw_config, dict):
        raise ValidationError(
            f"Manifest must be a key/value document, got {type(raw_config).__name__}",
            code="manifest_malformed",
        )

    missing = [key for key in REQUIRED_KEYS if key not in raw_config]
    if missing:
        raise ValidationError(
            f"Manifest is missing required keys: {', '.join(missing)}",
            code="manifest_missing_keys",
            problems=tuple(f"{key}: field required" for key in missing),
        )

    try:
        return Manifest.model_validate(raw_config)
    except pydantic.ValidationError as e:
        problems = tuple(_format_error(error) for error in e.errors())
        code = "invalid_manifest"
        if any(problem.startswith("version:") for problem in problems):
            code = "unsupported_version"
        raise ValidationError(
            "Invalid manifest:\n" + "\n".join(f"  - {problem}" for problem in problems),
            code=code,
            problems=problems,
        ) from e


def _decode(path: Path, text: str) -> Any:
    if path.suffix == ".toml":
        return tomllib.loads(text)
    return json.loads(text)


def load_manifest(path: Path) -> Manifest:
    """Read a JSON or TOML manifest file and validate it

    Args:
        path: Manifest file path (.json or .toml)

    Returns:
        Validated Manifest

    Raises:
        ValidationError: If the file cannot be read or decoded, or is invalid
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError(
            f"Couldn't read manifest file: {path} ({e})", code="manifest_unreadable"
        ) from e

    try:
        raw_config = _decode(path, text)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
        raise ValidationError(
            f"Couldn't parse manifest file: {path} ({e})", code="manifest_malformed"
        ) from e

    manifest = parse(raw_config)
    logger.debug(
        "Loaded manifest %s (version %s, schema %s)",
        path,
        manifest.version,
        manifest.default_schema,
    )
    return manifest


def find_manifest(project_root: Path) -> Path:
    """Locate the default manifest file in a project root

    Raises:
        ValidationError: If no default manifest file exists
    """
    for filename in DEFAULT_MANIFEST_FILENAMES:
        candidate = project_root / filename
        if candidate.is_file():
            return candidate
    raise ValidationError(
        f"No manifest found in {project_root} (expected one of: "
        f"{', '.join(DEFAULT_MANIFEST_FILENAMES)})",
        code="manifest_unreadable",
    )
