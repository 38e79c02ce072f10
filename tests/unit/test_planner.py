"""Unit tests for the phase planner."""

import json
from pathlib import Path

import pytest

from pgdeploy.core.manifest import parse
from pgdeploy.core.planner import STAGE_ORDER, StageKind, build_plan, plan
from pgdeploy.core.sources import DirectoryMigrationSource, StaticMigrationSource
from pgdeploy.domain.errors import ValidationError
from pgdeploy.models import Phase, ResolvedScript


def _script(path: str, phase: Phase) -> ResolvedScript:
    return ResolvedScript(
        path=path, phase=phase, fingerprint=f"fp-{path}", absolute_path=Path("/tmp") / path
    )


class TestPlan:
    def test_all_stages_present_in_fixed_order(self) -> None:
        manifest = parse({"version": "1", "default_schema": "app"})
        result = plan(manifest, [])
        assert tuple(stage.kind for stage in result.stages) == STAGE_ORDER
        assert all(stage.is_empty for stage in result.stages)

    def test_scripts_slotted_by_phase_without_reordering(self) -> None:
        manifest = parse({"version": "1", "default_schema": "app", "extensions": ["postgis"]})
        resolved = [
            _script("post/z.sql", Phase.POST),
            _script("pre/b.sql", Phase.PRE),
            _script("post/a.sql", Phase.POST),
            _script("pre/a.sql", Phase.PRE),
        ]
        core = [
            _script("migrations/002.sql", Phase.CORE),
            _script("migrations/001.sql", Phase.CORE),
        ]
        result = plan(manifest, resolved, core)

        assert [e.name for e in result.stage(StageKind.EXTENSIONS).extensions] == ["postgis"]
        assert [s.path for s in result.stage(StageKind.PRE).scripts] == ["pre/b.sql", "pre/a.sql"]
        assert [s.path for s in result.stage(StageKind.CORE).scripts] == [
            "migrations/002.sql",
            "migrations/001.sql",
        ]
        post = result.stage(StageKind.POST).scripts
        assert [s.path for s in post] == ["post/z.sql", "post/a.sql"]
        assert [s.path for s in result.scripts] == [
            "pre/b.sql",
            "pre/a.sql",
            "migrations/002.sql",
            "migrations/001.sql",
            "post/z.sql",
            "post/a.sql",
        ]

    def test_same_path_in_two_stages_rejected(self) -> None:
        manifest = parse({"version": "1", "default_schema": "app"})
        with pytest.raises(ValidationError) as exc_info:
            plan(manifest, [_script("shared.sql", Phase.PRE), _script("shared.sql", Phase.POST)])
        assert exc_info.value.code == "duplicate_stage_script"

    def test_to_json_is_deterministic(self) -> None:
        manifest = parse({"version": "1", "default_schema": "app", "extensions": ["pgcrypto"]})
        scripts = [_script("pre/a.sql", Phase.PRE), _script("post/b.sql", Phase.POST)]
        first = plan(manifest, scripts).to_json()
        second = plan(manifest, list(scripts)).to_json()
        assert first == second
        payload = json.loads(first)
        stages = [stage["stage"] for stage in payload["stages"]]
        assert stages == ["extensions", "pre", "core", "post"]


class TestBuildPlan:
    def test_builds_full_plan_from_disk(self, seed_project: Path) -> None:
        manifest = parse(json.loads((seed_project / "pgdeploy.json").read_text()))
        result = build_plan(manifest, seed_project, DirectoryMigrationSource())

        assert [s.path for s in result.stage(StageKind.PRE).scripts] == ["pre/roles.sql"]
        assert [s.path for s in result.stage(StageKind.CORE).scripts] == [
            "migrations/001_users.sql",
            "migrations/002_orders.sql",
        ]
        assert [s.path for s in result.stage(StageKind.POST).scripts] == [
            "seed/countries.sql",
            "seed/lookup.sql",
        ]

    def test_without_core_source_core_stage_is_empty(self, seed_project: Path) -> None:
        manifest = parse(json.loads((seed_project / "pgdeploy.json").read_text()))
        result = build_plan(manifest, seed_project)
        assert result.stage(StageKind.CORE).is_empty

    def test_static_core_source_keeps_given_order(self, seed_project: Path) -> None:
        manifest = parse(json.loads((seed_project / "pgdeploy.json").read_text()))
        core = StaticMigrationSource(["migrations/002_orders.sql", "migrations/001_users.sql"])
        result = build_plan(manifest, seed_project, core)
        assert [s.path for s in result.stage(StageKind.CORE).scripts] == [
            "migrations/002_orders.sql",
            "migrations/001_users.sql",
        ]

    def test_identical_inputs_give_identical_plans(self, seed_project: Path) -> None:
        manifest = parse(json.loads((seed_project / "pgdeploy.json").read_text()))
        first = build_plan(manifest, seed_project, DirectoryMigrationSource(), max_workers=1)
        second = build_plan(manifest, seed_project, DirectoryMigrationSource(), max_workers=4)
        assert first == second
        assert first.to_json() == second.to_json()
