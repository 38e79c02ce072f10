"""Application service layer over command modules.

Services give CLI and SDK callers one stable surface: every run returns a
CommandResult carrying a machine-readable code, a payload and the process
exit code (0 success, 1 partial/execution failure, 2 validation failure).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pgdeploy.commands.apply import apply_project
from pgdeploy.commands.plan import generate_plan
from pgdeploy.commands.sql import generate_plan_sql
from pgdeploy.commands.status import deployment_status
from pgdeploy.commands.validate import validate_project
from pgdeploy.config import DeployConfig
from pgdeploy.connectors.base import DatabaseConnector
from pgdeploy.core.project import ProjectRepository
from pgdeploy.domain.errors import (
    LedgerError,
    PgDeployError,
    UnresolvedPathError,
    ValidationError,
)
from pgdeploy.domain.results import (
    EXIT_PARTIAL_FAILURE,
    EXIT_SUCCESS,
    EXIT_VALIDATION_FAILURE,
    CommandResult,
    DeploymentOutcome,
    PartialFailure,
    ValidationFailure,
)


def error_payload(error: PgDeployError) -> dict[str, Any]:
    """Structured details of a domain error."""
    payload: dict[str, Any] = {"type": type(error).__name__, "code": error.code}
    if isinstance(error, ValidationError) and error.problems:
        payload["problems"] = list(error.problems)
    if isinstance(error, UnresolvedPathError):
        payload["paths"] = list(error.paths)
    for attribute in ("path", "extension", "timed_out"):
        if hasattr(error, attribute):
            payload[attribute] = getattr(error, attribute)
    return payload


def failure_result(error: PgDeployError) -> CommandResult:
    """Map a domain error raised before execution onto a CommandResult."""
    exit_code = EXIT_PARTIAL_FAILURE if isinstance(error, LedgerError) else EXIT_VALIDATION_FAILURE
    return CommandResult(
        success=False,
        code=error.code,
        message=error.message,
        data={"error": error_payload(error)},
        exit_code=exit_code,
    )


def _repository(config: DeployConfig | None) -> ProjectRepository:
    if config is None:
        return ProjectRepository()
    return ProjectRepository(
        migrations_glob=config.migrations_glob,
        fingerprint_workers=config.fingerprint_workers,
    )


@dataclass(slots=True)
class ValidateService:
    """Validate a project's manifest, script paths and SQL syntax."""

    def run(
        self,
        *,
        project_root: Path,
        manifest: Path | None = None,
        strict: bool = False,
        config: DeployConfig | None = None,
        json_output: bool = False,
    ) -> CommandResult:
        try:
            report = validate_project(
                project_root,
                manifest,
                strict=strict,
                repository=_repository(config),
                json_output=json_output,
            )
        except PgDeployError as e:
            return failure_result(e)
        return CommandResult(
            success=report.valid,
            code="valid" if report.valid else "invalid",
            message="Validation completed",
            data={
                "scripts": len(report.plan.scripts),
                "extensions": len(report.plan.extensions),
                "errors": report.errors,
                "warnings": report.warnings,
            },
            exit_code=EXIT_SUCCESS if report.valid else EXIT_VALIDATION_FAILURE,
        )


@dataclass(slots=True)
class PlanService:
    """Build and report the execution plan of a project."""

    def run(
        self,
        *,
        project_root: Path,
        manifest: Path | None = None,
        config: DeployConfig | None = None,
        output: Path | None = None,
        json_output: bool = False,
    ) -> CommandResult:
        try:
            plan = generate_plan(
                project_root,
                manifest,
                repository=_repository(config),
                output=output,
                json_output=json_output,
            )
        except PgDeployError as e:
            return failure_result(e)
        return CommandResult(
            success=True,
            code="plan_generated",
            message="Plan generation completed",
            data={"plan": plan.describe()},
        )


@dataclass(slots=True)
class SqlService:
    """Render a project's execution plan as one SQL document."""

    def run(
        self,
        *,
        project_root: Path,
        manifest: Path | None = None,
        config: DeployConfig | None = None,
        output: Path | None = None,
        json_output: bool = False,
    ) -> CommandResult:
        try:
            sql = generate_plan_sql(
                project_root,
                manifest,
                repository=_repository(config),
                output=output,
                json_output=json_output,
            )
        except PgDeployError as e:
            return failure_result(e)
        return CommandResult(
            success=True,
            code="sql_generated",
            message="SQL generation completed",
            data={"sql": sql},
        )


@dataclass(slots=True)
class ApplyService:
    """Deploy a project to its target database."""

    cancel_event: threading.Event = field(default_factory=threading.Event)

    def run(
        self,
        *,
        project_root: Path,
        config: DeployConfig,
        manifest: Path | None = None,
        connector: DatabaseConnector | None = None,
        json_output: bool = False,
    ) -> CommandResult:
        outcome = apply_project(
            project_root,
            config,
            manifest,
            repository=_repository(config),
            connector=connector,
            cancel_event=self.cancel_event,
            json_output=json_output,
        )
        return outcome_to_result(outcome)

    def cancel(self) -> None:
        """Stop the running deployment at the next script boundary."""
        self.cancel_event.set()


def outcome_to_result(outcome: DeploymentOutcome) -> CommandResult:
    """Map a deployment outcome onto a CommandResult."""
    if isinstance(outcome, ValidationFailure):
        return failure_result(outcome.cause)

    data: dict[str, Any] = {"result": outcome.result.model_dump(mode="json")}
    if isinstance(outcome, PartialFailure):
        data["error"] = error_payload(outcome.cause)
        data["failed_stage"] = outcome.stage
        data["failed_script"] = outcome.script
        return CommandResult(
            success=False,
            code=f"apply_{outcome.result.status}",
            message=outcome.cause.message,
            data=data,
            exit_code=outcome.exit_code,
        )
    return CommandResult(
        success=True,
        code=f"apply_{outcome.result.status}",
        message="Deployment completed",
        data=data,
        exit_code=outcome.exit_code,
    )


@dataclass(slots=True)
class StatusService:
    """Report ledger state for every planned script."""

    def run(
        self,
        *,
        project_root: Path,
        config: DeployConfig,
        manifest: Path | None = None,
        connector: DatabaseConnector | None = None,
        json_output: bool = False,
    ) -> CommandResult:
        try:
            report = deployment_status(
                project_root,
                config,
                manifest,
                repository=_repository(config),
                connector=connector,
                json_output=json_output,
            )
        except PgDeployError as e:
            return failure_result(e)
        return CommandResult(
            success=True,
            code="status_drifted" if report.has_drift else "status_ok",
            message="Status completed",
            data={
                "scripts": [script.as_dict() for script in report.scripts],
                "orphaned": report.orphaned,
            },
        )
