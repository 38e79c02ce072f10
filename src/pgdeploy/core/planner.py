"""
Phase Planner

Orders resolved scripts into execution stages:

    extensions -> pre -> core -> post

Extension provisioning always completes before any script runs because scripts
may reference extension-provided types or functions. Within a stage the order
is exactly the resolved order; the planner never reorders.
"""

import json
import logging
from collections.abc import Sequence
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict

from pgdeploy.domain.errors import ValidationError
from pgdeploy.models import ExtensionDeclaration, Manifest, Phase, ResolvedScript

from .resolver import DEFAULT_FINGERPRINT_WORKERS, ExclusionMatcher, resolve
from .sources import CoreMigrationSource, FileSystemScriptSource, ScriptSource

logger = logging.getLogger(__name__)


class StageKind(StrEnum):
    """Execution stages in their fixed order"""

    EXTENSIONS = "extensions"
    PRE = "pre"
    CORE = "core"
    POST = "post"


STAGE_ORDER: tuple[StageKind, ...] = (
    StageKind.EXTENSIONS,
    StageKind.PRE,
    StageKind.CORE,
    StageKind.POST,
)

_PHASE_STAGES = {Phase.PRE: StageKind.PRE, Phase.CORE: StageKind.CORE, Phase.POST: StageKind.POST}


class Stage(BaseModel):
    """One stage of an execution plan"""

    model_config = ConfigDict(frozen=True)

    kind: StageKind
    scripts: tuple[ResolvedScript, ...] = ()
    extensions: tuple[ExtensionDeclaration, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.scripts and not self.extensions

    def describe(self) -> dict[str, Any]:
        if self.kind is StageKind.EXTENSIONS:
            items: list[dict[str, Any]] = [
                {
                    "name": extension.name,
                    "schema": extension.schema_name,
                    "version": extension.version,
                }
                for extension in self.extensions
            ]
        else:
            items = [
                {"path": script.path, "fingerprint": script.fingerprint}
                for script in self.scripts
            ]
        return {"stage": self.kind.value, "items": items}


class ExecutionPlan(BaseModel):
    """Ordered deployment stages for one run"""

    model_config = ConfigDict(frozen=True)

    default_schema: str
    stages: tuple[Stage, ...]

    def stage(self, kind: StageKind) -> Stage:
        for stage in self.stages:
            if stage.kind is kind:
                return stage
        raise KeyError(kind)

    @property
    def scripts(self) -> list[ResolvedScript]:
        """Every script in execution order."""
        return [script for stage in self.stages for script in stage.scripts]

    @property
    def extensions(self) -> tuple[ExtensionDeclaration, ...]:
        return self.stage(StageKind.EXTENSIONS).extensions

    def describe(self) -> dict[str, Any]:
        """JSON-serializable report of the plan."""
        return {
            "default_schema": self.default_schema,
            "stages": [stage.describe() for stage in self.stages],
        }

    def to_json(self) -> str:
        """Deterministic JSON rendering; identical inputs give identical output."""
        return json.dumps(self.describe(), indent=2, sort_keys=True)


def plan(
    manifest: Manifest,
    resolved_scripts: Sequence[ResolvedScript],
    core_scripts: Sequence[ResolvedScript] = (),
) -> ExecutionPlan:
    """Slot resolved scripts into execution stages

    Args:
        manifest: Validated manifest (provides extensions and default schema)
        resolved_scripts: Pre/post scripts from the path resolver, in order
        core_scripts: Ordered core migration set from the core migration source

    Returns:
        ExecutionPlan with all four stages, empty ones included

    Raises:
        ValidationError: If one path is scheduled in more than one stage
    """
    grouped: dict[StageKind, list[ResolvedScript]] = {kind: [] for kind in _PHASE_STAGES.values()}
    for script in [*resolved_scripts, *core_scripts]:
        grouped[_PHASE_STAGES[script.phase]].append(script)

    owner: dict[str, StageKind] = {}
    for kind in (StageKind.PRE, StageKind.CORE, StageKind.POST):
        for script in grouped[kind]:
            if script.path in owner and owner[script.path] is not kind:
                raise ValidationError(
                    f"Script '{script.path}' is scheduled in both the "
                    f"{owner[script.path].value} and {kind.value} stages",
                    code="duplicate_stage_script",
                )
            owner[script.path] = kind

    stages = (
        Stage(kind=StageKind.EXTENSIONS, extensions=tuple(manifest.extensions)),
        Stage(kind=StageKind.PRE, scripts=tuple(grouped[StageKind.PRE])),
        Stage(kind=StageKind.CORE, scripts=tuple(grouped[StageKind.CORE])),
        Stage(kind=StageKind.POST, scripts=tuple(grouped[StageKind.POST])),
    )
    logger.debug(
        "Planned %d extensions and %d scripts",
        len(manifest.extensions),
        sum(len(stage.scripts) for stage in stages),
    )
    return ExecutionPlan(default_schema=manifest.default_schema, stages=stages)


def build_plan(
    manifest: Manifest,
    project_root: Path,
    core_source: CoreMigrationSource | None = None,
    *,
    source: ScriptSource | None = None,
    max_workers: int = DEFAULT_FINGERPRINT_WORKERS,
) -> ExecutionPlan:
    """Resolve every phase of a manifest and plan the result

    The exclusion matcher and the file listing are built once and shared by
    all phases.
    """
    source = source or FileSystemScriptSource(project_root)
    matcher = ExclusionMatcher(manifest.file_exclude_globs)

    def _resolve(entries: Sequence[str], phase: Phase) -> list[ResolvedScript]:
        return resolve(
            entries, matcher, project_root, phase, source=source, max_workers=max_workers
        )

    pre = _resolve(manifest.scripts_for(Phase.PRE), Phase.PRE)
    post = _resolve(manifest.scripts_for(Phase.POST), Phase.POST)
    core = _resolve(core_source.entries(), Phase.CORE) if core_source else []
    return plan(manifest, [*pre, *post], core)
