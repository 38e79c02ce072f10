"""
Pydantic models for pgdeploy manifests and deployment records.

The manifest is the declarative contract an operator writes; resolved scripts
and applied records are derived by the engine.
"""

import re
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pgdeploy.core.version import is_supported_manifest_version

# PostgreSQL unquoted identifier grammar, NAMEDATALEN - 1 characters
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")
MAX_IDENTIFIER_LENGTH = 63


class Phase(StrEnum):
    """Script phases, in their fixed relative execution order"""

    PRE = "pre"
    CORE = "core"
    POST = "post"


def validate_identifier(value: str, what: str = "identifier") -> str:
    """Check a schema/extension-schema name against the identifier grammar."""
    if not value:
        raise ValueError(f"{what} must not be empty")
    if len(value) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(f"{what} '{value}' exceeds {MAX_IDENTIFIER_LENGTH} characters")
    if not IDENTIFIER_PATTERN.match(value):
        raise ValueError(f"{what} '{value}' is not a valid identifier")
    return value


def normalize_script_path(raw: str) -> str:
    """Normalize a declared script path to a relative POSIX path.

    Rejects absolute paths and any `..` segment instead of resolving them, so a
    manifest can never reach outside the project root.

    Raises:
        ValueError: If the path is empty, absolute or traverses upwards
    """
    text = raw.strip().replace("\\", "/")
    if not text:
        raise ValueError("script path must not be empty")
    if text.startswith("/") or re.match(r"^[A-Za-z]:", text):
        raise ValueError(f"script path '{raw}' must be relative to the project root")
    parts = [part for part in text.split("/") if part not in ("", ".")]
    if ".." in parts:
        raise ValueError(f"script path '{raw}' must not contain '..' segments")
    if not parts:
        raise ValueError(f"script path '{raw}' does not name a file")
    return "/".join(parts)


def _normalize_unique(paths: list[str]) -> list[str]:
    normalized: list[str] = []
    seen: set[str] = set()
    for raw in paths:
        path = normalize_script_path(raw)
        if path in seen:
            raise ValueError(f"duplicate script path '{path}'")
        seen.add(path)
        normalized.append(path)
    return normalized


class ExtensionDeclaration(BaseModel):
    """Database extension that must exist before any script runs"""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    name: str = Field(..., description="Extension name (e.g. postgis)")
    schema_name: str | None = Field(
        None, alias="schema", description="Target schema override (default: manifest schema)"
    )
    version: str | None = Field(None, description="Minimum acceptable version")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("extension name must not be empty")
        return value

    @field_validator("schema_name")
    @classmethod
    def _check_schema(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return validate_identifier(value, "extension schema")


class Manifest(BaseModel):
    """Deployment manifest (pgdeploy.json / pgdeploy.toml)"""

    model_config = ConfigDict(extra="forbid", frozen=True)

    version: str
    default_schema: str
    pre_deploy_scripts: list[str] = Field(default_factory=list)
    post_deploy_scripts: list[str] = Field(default_factory=list)
    file_exclude_globs: list[str] = Field(default_factory=list)
    extensions: list[ExtensionDeclaration] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not is_supported_manifest_version(value):
            raise ValueError(f"unsupported manifest version '{value}'")
        return value

    @field_validator("default_schema")
    @classmethod
    def _check_default_schema(cls, value: str) -> str:
        return validate_identifier(value, "default_schema")

    @field_validator("pre_deploy_scripts", "post_deploy_scripts")
    @classmethod
    def _check_scripts(cls, value: list[str]) -> list[str]:
        return _normalize_unique(value)

    @field_validator("file_exclude_globs")
    @classmethod
    def _check_excludes(cls, value: list[str]) -> list[str]:
        globs = [normalize_script_path(pattern) for pattern in value]
        # Order is irrelevant for a filter; keep a stable, duplicate-free list
        return sorted(set(globs))

    @field_validator("extensions", mode="before")
    @classmethod
    def _expand_extension_shorthand(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value

    @field_validator("extensions")
    @classmethod
    def _check_unique_extensions(
        cls, value: list[ExtensionDeclaration]
    ) -> list[ExtensionDeclaration]:
        seen: set[str] = set()
        for extension in value:
            if extension.name in seen:
                raise ValueError(f"duplicate extension '{extension.name}'")
            seen.add(extension.name)
        return value

    def scripts_for(self, phase: Phase) -> list[str]:
        """Declared entries of a manifest-owned phase (core is external)."""
        if phase is Phase.PRE:
            return list(self.pre_deploy_scripts)
        if phase is Phase.POST:
            return list(self.post_deploy_scripts)
        return []


class ResolvedScript(BaseModel):
    """Script that survived exclusion filtering, tagged with phase and fingerprint"""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Normalized path relative to the project root")
    phase: Phase
    fingerprint: str = Field(..., description="SHA-256 of the file bytes")
    absolute_path: Path = Field(..., exclude=True)

    def read_text(self) -> str:
        return self.absolute_path.read_text(encoding="utf-8")


class AppliedRecord(BaseModel):
    """Ledger entry written after a script's transaction committed"""

    path: str
    fingerprint: str
    phase: Phase
    applied_at: datetime
    outcome: Literal["applied"] = "applied"
    execution_time_ms: int = 0
