"""
pgdeploy configuration.

Settings resolve in priority order: CLI options > environment variables
(read by click, e.g. PGDEPLOY_DATABASE_URL) > deployment profile file (JSON)
> defaults below.
"""

import json
from pathlib import Path
from typing import Any, Literal

import pydantic
from pydantic import BaseModel, Field

from pgdeploy.core.ledger import get_ledger_file_path
from pgdeploy.core.sources import DEFAULT_MIGRATIONS_GLOB
from pgdeploy.domain.errors import ValidationError
from pgdeploy.models import normalize_script_path

DEFAULT_TIMEOUT_SECONDS = 300


class DeployConfig(BaseModel):
    """Configuration for a deployment run

    Attributes:
        database_url: SQLAlchemy URL of the target database
        dry_run: If True, plan and report without executing
        allow_drift: Re-apply scripts whose content changed since they were applied
        post_deploy_policy: "tracked" or "always" (treat post-deploy scripts as seeds)
        timeout_seconds: Default per-script timeout
        script_timeouts: Per-path timeout overrides
        ledger: Where applied records are stored
        ledger_path: File ledger location, relative to the project root
        ledger_schema: Schema of the database ledger table
        fingerprint_workers: Threads used to fingerprint scripts
        migrations_glob: Core migration pattern (None: no core migrations)
    """

    model_config = pydantic.ConfigDict(extra="forbid")

    database_url: str | None = Field(None, description="Target database URL")
    dry_run: bool = Field(default=False, description="Preview without executing")
    allow_drift: bool = Field(default=False, description="Re-apply drifted scripts")
    post_deploy_policy: Literal["tracked", "always"] = Field(
        default="tracked", description="Drift policy for post-deploy scripts"
    )
    timeout_seconds: int = Field(
        default=DEFAULT_TIMEOUT_SECONDS, gt=0, description="Script timeout in seconds"
    )
    script_timeouts: dict[str, int] = Field(
        default_factory=dict, description="Per-script timeout overrides"
    )
    ledger: Literal["file", "database"] = Field(default="file", description="Ledger backend")
    ledger_path: str | None = Field(None, description="File ledger path")
    ledger_schema: str | None = Field(None, description="Database ledger schema")
    fingerprint_workers: int = Field(default=4, ge=1, description="Fingerprint threads")
    migrations_glob: str | None = Field(
        default=DEFAULT_MIGRATIONS_GLOB, description="Core migration glob"
    )

    @pydantic.field_validator("script_timeouts")
    @classmethod
    def _normalize_timeout_paths(cls, value: dict[str, int]) -> dict[str, int]:
        normalized: dict[str, int] = {}
        for path, seconds in value.items():
            if seconds <= 0:
                raise ValueError(f"timeout for '{path}' must be positive")
            normalized[normalize_script_path(path)] = seconds
        return normalized

    def timeout_for(self, path: str) -> int:
        """Timeout in seconds for one script"""
        return self.script_timeouts.get(path, self.timeout_seconds)

    def ledger_file(self, project_root: Path) -> Path:
        if self.ledger_path:
            return project_root / self.ledger_path
        return get_ledger_file_path(project_root)


def load_profile(path: Path) -> dict[str, Any]:
    """Read a deployment profile (JSON object of DeployConfig fields)

    Raises:
        ValidationError: If the file cannot be read or is not a JSON object
    """
    try:
        with open(path, encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(
            f"Couldn't read deployment profile: {path} ({e})", code="profile_unreadable"
        ) from e
    if not isinstance(payload, dict):
        raise ValidationError(
            f"Deployment profile must be a JSON object: {path}", code="profile_malformed"
        )
    return payload


def build_config(profile: Path | None = None, **overrides: Any) -> DeployConfig:
    """Merge profile settings and explicit overrides into a DeployConfig

    Overrides set to None are ignored, so unset CLI options fall back to the
    profile and then to defaults.

    Raises:
        ValidationError: If the merged settings are invalid
    """
    settings: dict[str, Any] = load_profile(profile) if profile else {}
    settings.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return DeployConfig.model_validate(settings)
    except pydantic.ValidationError as e:
        problems = tuple(
            f"{'.'.join(str(p) for p in error['loc'])}: {error['msg']}" for error in e.errors()
        )
        raise ValidationError(
            "Invalid deployment configuration:\n" + "\n".join(f"  - {p}" for p in problems),
            code="invalid_config",
            problems=problems,
        ) from e
