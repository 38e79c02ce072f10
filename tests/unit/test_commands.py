"""Unit tests for command modules (validate, plan, sql, status)."""

from pathlib import Path

import pytest

from pgdeploy.commands.plan import generate_plan
from pgdeploy.commands.sql import generate_plan_sql, render_plan_sql
from pgdeploy.commands.status import deployment_status
from pgdeploy.commands.validate import validate_project
from pgdeploy.config import DeployConfig
from pgdeploy.core.ledger import FileLedger
from pgdeploy.core.manifest import parse
from pgdeploy.core.planner import build_plan
from pgdeploy.core.project import ProjectRepository
from pgdeploy.core.sources import DirectoryMigrationSource
from pgdeploy.core.tracker import ExecutionTracker
from pgdeploy.domain.errors import UnresolvedPathError, ValidationError
from tests.utils import base_manifest, write_project


class TestRenderPlanSql:
    def test_renders_extensions_then_scripts_in_order(self, seed_project: Path) -> None:
        manifest = parse(
            base_manifest(
                pre_deploy_scripts=["pre/roles.sql"],
                post_deploy_scripts=["seed/*.sql"],
                file_exclude_globs=["**/geo/**/*.sql"],
                extensions=[{"name": "postgis", "schema": "gis"}],
            )
        )
        plan = build_plan(manifest, seed_project, DirectoryMigrationSource())

        sql = render_plan_sql(plan, manifest)

        assert sql.startswith("-- pgdeploy deployment script\n")
        order = [
            'CREATE EXTENSION IF NOT EXISTS "postgis" WITH SCHEMA "gis";',
            "-- Script: pre/roles.sql",
            "-- Script: migrations/001_users.sql",
            "-- Script: migrations/002_orders.sql",
            "-- Script: seed/countries.sql",
            "-- Script: seed/lookup.sql",
        ]
        positions = [sql.index(marker) for marker in order]
        assert positions == sorted(positions)
        assert "points" not in sql
        assert sql.endswith("\n")

    def test_rendering_is_deterministic(self, seed_project: Path) -> None:
        first = generate_plan_sql(seed_project, json_output=True)
        second = generate_plan_sql(seed_project, json_output=True)
        assert first == second

    def test_non_transactional_scripts_annotated(self, project_root: Path) -> None:
        write_project(
            project_root,
            base_manifest(pre_deploy_scripts=["pre/idx.sql"]),
            {"pre/idx.sql": "CREATE INDEX CONCURRENTLY i ON t (c);"},
        )
        sql = generate_plan_sql(project_root, json_output=True)
        assert "-- Runs outside a transaction" in sql

    def test_output_file_written(self, seed_project: Path, tmp_path: Path) -> None:
        output = tmp_path / "out" / "deploy.sql"
        sql = generate_plan_sql(seed_project, output=output, json_output=True)
        assert output.read_text() == sql

    def test_non_utf8_script_is_a_validation_error(self, project_root: Path) -> None:
        write_project(project_root, base_manifest(pre_deploy_scripts=["pre/latin1.sql"]))
        (project_root / "pre").mkdir()
        (project_root / "pre" / "latin1.sql").write_bytes(b"SELECT 'caf\xe9';")

        with pytest.raises(ValidationError) as excinfo:
            generate_plan_sql(project_root, json_output=True)

        assert excinfo.value.code == "unreadable_script"
        assert "pre/latin1.sql" in excinfo.value.message


class TestGeneratePlan:
    def test_writes_json_plan(self, seed_project: Path, tmp_path: Path) -> None:
        output = tmp_path / "plan.json"
        plan = generate_plan(seed_project, output=output, json_output=True)
        assert output.read_text() == plan.to_json() + "\n"

    def test_custom_migrations_glob(self, seed_project: Path) -> None:
        repository = ProjectRepository(migrations_glob="migrations/002_*.sql")
        plan = generate_plan(seed_project, repository=repository, json_output=True)
        assert [s.path for s in plan.scripts if s.phase.value == "core"] == [
            "migrations/002_orders.sql"
        ]


class TestValidateProject:
    def test_valid_project(self, seed_project: Path) -> None:
        report = validate_project(seed_project, json_output=True)
        assert report.valid
        assert len(report.plan.scripts) == 5

    def test_parse_problems_are_warnings_unless_strict(self, project_root: Path) -> None:
        write_project(
            project_root,
            base_manifest(pre_deploy_scripts=["pre/bad.sql"]),
            {"pre/bad.sql": "SELECT (1 + 2 FROM t;"},
        )
        lenient = validate_project(project_root, json_output=True)
        assert lenient.valid
        assert lenient.warnings and lenient.warnings[0].startswith("pre/bad.sql:")

        strict = validate_project(project_root, strict=True, json_output=True)
        assert not strict.valid
        assert strict.errors[0].startswith("pre/bad.sql:")

    def test_non_utf8_script_is_an_error(self, project_root: Path) -> None:
        write_project(project_root, base_manifest(pre_deploy_scripts=["pre/latin1.sql"]))
        (project_root / "pre").mkdir()
        (project_root / "pre" / "latin1.sql").write_bytes(b"SELECT 'caf\xe9';")

        report = validate_project(project_root, json_output=True)

        assert not report.valid
        assert report.errors[0].startswith("pre/latin1.sql: couldn't read script")

    def test_missing_script_raises(self, project_root: Path) -> None:
        write_project(project_root, base_manifest(post_deploy_scripts=["seed/missing.sql"]))
        with pytest.raises(UnresolvedPathError):
            validate_project(project_root, json_output=True)

    def test_explicit_manifest_path(self, project_root: Path) -> None:
        write_project(
            project_root,
            base_manifest(default_schema="reporting"),
            manifest_name="deploy/reporting.json",
        )
        report = validate_project(
            project_root, Path("deploy/reporting.json"), json_output=True
        )
        assert report.manifest.default_schema == "reporting"


class TestDeploymentStatus:
    def test_reports_applied_pending_and_drifted(self, seed_project: Path) -> None:
        config = DeployConfig()
        repository = ProjectRepository()
        manifest, plan = repository.load(project_root=seed_project)
        tracker = ExecutionTracker(FileLedger(config.ledger_file(seed_project)))
        by_path = {script.path: script for script in plan.scripts}
        tracker.record(by_path["pre/roles.sql"], "applied")
        tracker.record(by_path["seed/lookup.sql"], "applied")
        (seed_project / "seed" / "lookup.sql").write_text("INSERT INTO roles VALUES (3, 'x');")

        report = deployment_status(seed_project, config, json_output=True)

        states = {script.path: script.state for script in report.scripts}
        assert states["pre/roles.sql"] == "applied"
        assert states["seed/lookup.sql"] == "drifted"
        assert states["migrations/001_users.sql"] == "pending"
        assert report.has_drift
        assert report.orphaned == []

    def test_orphaned_records_listed(self, seed_project: Path) -> None:
        config = DeployConfig()
        repository = ProjectRepository()
        _, plan = repository.load(project_root=seed_project)
        tracker = ExecutionTracker(FileLedger(config.ledger_file(seed_project)))
        tracker.record(plan.scripts[0].model_copy(update={"path": "old/removed.sql"}), "applied")

        report = deployment_status(seed_project, config, json_output=True)
        assert report.orphaned == ["old/removed.sql"]
