"""Unit tests for application service result envelopes and exit codes."""

from pathlib import Path

from pgdeploy.application.services import (
    ApplyService,
    PlanService,
    SqlService,
    StatusService,
    ValidateService,
)
from pgdeploy.config import DeployConfig
from pgdeploy.domain.results import EXIT_PARTIAL_FAILURE, EXIT_SUCCESS, EXIT_VALIDATION_FAILURE
from tests.utils import FakeConnector, base_manifest, write_project


class TestApplyService:
    def test_success(self, seed_project: Path) -> None:
        result = ApplyService().run(
            project_root=seed_project,
            config=DeployConfig(),
            connector=FakeConnector(),
            json_output=True,
        )
        assert result.success
        assert result.code == "apply_success"
        assert result.exit_code == EXIT_SUCCESS
        statuses = [
            action["status"]
            for stage in result.data["result"]["stages"]
            for action in stage["actions"]
        ]
        assert statuses == ["applied"] * 5
        assert (seed_project / ".pgdeploy" / "ledger.json").is_file()

    def test_partial_failure(self, seed_project: Path) -> None:
        result = ApplyService().run(
            project_root=seed_project,
            config=DeployConfig(),
            connector=FakeConnector(fail_markers=("'reader'",)),
            json_output=True,
        )
        assert not result.success
        assert result.code == "apply_failed"
        assert result.exit_code == EXIT_PARTIAL_FAILURE
        assert result.data["failed_stage"] == "post"
        assert result.data["failed_script"] == "seed/lookup.sql"
        assert result.data["error"]["code"] == "script_failed"

    def test_unresolved_path_is_validation_failure(self, project_root: Path) -> None:
        write_project(project_root, base_manifest(post_deploy_scripts=["seed/missing.sql"]))
        connector = FakeConnector()
        result = ApplyService().run(
            project_root=project_root,
            config=DeployConfig(),
            connector=connector,
            json_output=True,
        )
        assert result.exit_code == EXIT_VALIDATION_FAILURE
        assert result.code == "unresolved_path"
        assert result.data["error"]["paths"] == ["seed/missing.sql"]
        assert connector.calls == []

    def test_missing_database_url(self, seed_project: Path) -> None:
        result = ApplyService().run(
            project_root=seed_project, config=DeployConfig(), json_output=True
        )
        assert result.exit_code == EXIT_VALIDATION_FAILURE
        assert result.code == "missing_database_url"

    def test_cancel_before_run_stops_at_first_script(self, seed_project: Path) -> None:
        service = ApplyService()
        service.cancel()
        connector = FakeConnector()
        result = service.run(
            project_root=seed_project, config=DeployConfig(), connector=connector, json_output=True
        )
        assert result.code == "apply_cancelled"
        assert result.exit_code == EXIT_PARTIAL_FAILURE
        assert connector.calls == []


class TestReadOnlyServices:
    def test_validate_invalid_manifest(self, project_root: Path) -> None:
        write_project(project_root, {"version": "9", "default_schema": "app"})
        result = ValidateService().run(project_root=project_root, json_output=True)
        assert result.exit_code == EXIT_VALIDATION_FAILURE
        assert result.code == "unsupported_version"
        assert result.data["error"]["problems"]

    def test_validate_strict_failure_exit_code(self, project_root: Path) -> None:
        write_project(
            project_root,
            base_manifest(pre_deploy_scripts=["bad.sql"]),
            {"bad.sql": "SELECT (1 FROM t;"},
        )
        result = ValidateService().run(project_root=project_root, strict=True, json_output=True)
        assert result.code == "invalid"
        assert result.exit_code == EXIT_VALIDATION_FAILURE

    def test_plan_payload(self, seed_project: Path) -> None:
        result = PlanService().run(project_root=seed_project, json_output=True)
        assert result.success
        assert [stage["stage"] for stage in result.data["plan"]["stages"]] == [
            "extensions",
            "pre",
            "core",
            "post",
        ]

    def test_sql_payload(self, seed_project: Path) -> None:
        result = SqlService().run(project_root=seed_project, json_output=True)
        assert result.code == "sql_generated"
        assert "-- Script: seed/lookup.sql" in result.data["sql"]

    def test_status_payload(self, seed_project: Path) -> None:
        result = StatusService().run(
            project_root=seed_project, config=DeployConfig(), json_output=True
        )
        assert result.code == "status_ok"
        assert {script["state"] for script in result.data["scripts"]} == {"pending"}
