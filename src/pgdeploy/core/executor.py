"""
Deployment Executor

Drives an execution plan against a database connector:

    extensions -> pre -> core -> post

Stages move Pending -> Running -> {Completed, Failed}. Each script is Skipped
(already applied), Applied (executed and committed) or Failed. The first
failure halts the stage and the whole run: DDL scripts are order-dependent and
a failed script leaves the schema in an intermediate state that must not be
compounded. Nothing is retried.

Scripts run strictly one at a time. Cancellation is honored only between
scripts, never in the middle of one.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field, PrivateAttr

from pgdeploy.config import DeployConfig
from pgdeploy.connectors.base import DatabaseConnector
from pgdeploy.domain.errors import (
    DeploymentCancelled,
    DriftDetected,
    LedgerError,
    PgDeployError,
    ProvisionError,
    ScriptExecutionError,
)
from pgdeploy.domain.results import PartialFailure, Success
from pgdeploy.models import ResolvedScript

from .planner import ExecutionPlan, Stage, StageKind
from .provisioner import ExtensionProvisioner
from .sources import fingerprint_bytes
from .sql_utils import is_transactional
from .tracker import ExecutionTracker

logger = logging.getLogger(__name__)


class StageState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ActionStatus(StrEnum):
    PENDING = "pending"
    SKIPPED = "skipped"
    APPLIED = "applied"
    ALREADY_PRESENT = "already_present"
    FAILED = "failed"


class ActionResult(BaseModel):
    """Outcome of one extension or script

    Attributes:
        name: Script path or extension name
        kind: "script" or "extension"
        status: Action status
        fingerprint: Script fingerprint (scripts only)
        transactional: Whether the script ran in a single transaction
        execution_time_ms: Time taken in milliseconds
        error_code: Domain error code if failed
        error_message: Error details if failed
    """

    name: str = Field(..., description="Script path or extension name")
    kind: Literal["script", "extension"] = Field(..., description="Action kind")
    status: ActionStatus = Field(default=ActionStatus.PENDING, description="Action status")
    fingerprint: str | None = Field(None, description="Script fingerprint")
    transactional: bool | None = Field(None, description="Ran in one transaction")
    execution_time_ms: int = Field(default=0, description="Execution time (ms)")
    error_code: str | None = Field(None, description="Error code")
    error_message: str | None = Field(None, description="Error message")


class StageResult(BaseModel):
    """Outcome of one stage"""

    kind: StageKind
    state: StageState = StageState.PENDING
    actions: list[ActionResult] = Field(default_factory=list)

    def action(self, name: str) -> ActionResult:
        for action in self.actions:
            if action.name == name:
                return action
        raise KeyError(name)


class DeploymentResult(BaseModel):
    """Result of a full deployment run

    Always enumerates every stage and every action, including the ones that
    never ran, so operators can see how far a run progressed.

    Attributes:
        deployment_id: Unique run identifier
        status: Overall status
        stages: Stage results in execution order
        failed_stage: Stage that stopped the run (if any)
        failed_action: Script or extension that stopped the run (if any)
        error_code: Domain error code (if failed)
        error_message: Summary error message (if failed)
        total_execution_time_ms: Wall-clock time of the run
    """

    deployment_id: str = Field(..., description="Deployment ID")
    status: Literal["success", "failed", "cancelled", "dry_run"] = Field(
        default="success", description="Overall status"
    )
    stages: list[StageResult] = Field(default_factory=list, description="Stage results")
    failed_stage: StageKind | None = Field(None, description="Stage that failed")
    failed_action: str | None = Field(None, description="Action that failed")
    error_code: str | None = Field(None, description="Error code")
    error_message: str | None = Field(None, description="Error summary")
    total_execution_time_ms: int = Field(default=0, description="Total execution time (ms)")

    _cause: PgDeployError | None = PrivateAttr(default=None)

    @property
    def succeeded(self) -> bool:
        return self.status in ("success", "dry_run")

    @property
    def cause(self) -> PgDeployError | None:
        return self._cause

    def stage(self, kind: StageKind) -> StageResult:
        for stage in self.stages:
            if stage.kind is kind:
                return stage
        raise KeyError(kind)

    def script_statuses(self) -> list[tuple[str, ActionStatus]]:
        """(path, status) of every script in execution order."""
        return [
            (action.name, action.status)
            for stage in self.stages
            for action in stage.actions
            if action.kind == "script"
        ]

    def count(self, status: ActionStatus) -> int:
        return sum(
            1 for stage in self.stages for action in stage.actions if action.status is status
        )

    def fail(self, stage: StageResult, action: ActionResult | None, cause: PgDeployError) -> None:
        stage.state = StageState.FAILED
        if action is not None:
            action.status = ActionStatus.FAILED
            action.error_code = cause.code
            action.error_message = cause.message
        self.status = "cancelled" if isinstance(cause, DeploymentCancelled) else "failed"
        self.failed_stage = stage.kind
        self.failed_action = action.name if action is not None else None
        self.error_code = cause.code
        self.error_message = cause.message
        self._cause = cause

    def outcome(self) -> Success | PartialFailure:
        """Map the result onto the engine's exit contract."""
        if self.succeeded or self._cause is None or self.failed_stage is None:
            return Success(result=self)
        return PartialFailure(
            stage=self.failed_stage.value,
            script=self.failed_action,
            cause=self._cause,
            result=self,
        )


ProgressCallback = Callable[[StageKind, ActionResult], None]


@dataclass
class ExecutionContext:
    """Collaborators for one run

    Attributes:
        connector: Single database connector used for the whole run
        tracker: Execution tracker over the ledger
        config: Deployment configuration
        cancel_event: Set to request cancellation at the next script boundary
        on_progress: Called after each action finishes
    """

    connector: DatabaseConnector
    tracker: ExecutionTracker
    config: DeployConfig
    cancel_event: threading.Event | None = None
    on_progress: ProgressCallback | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


def _initial_result(plan: ExecutionPlan) -> DeploymentResult:
    stages: list[StageResult] = []
    for stage in plan.stages:
        if stage.kind is StageKind.EXTENSIONS:
            actions = [
                ActionResult(name=extension.name, kind="extension")
                for extension in stage.extensions
            ]
        else:
            actions = [
                ActionResult(name=script.path, kind="script", fingerprint=script.fingerprint)
                for script in stage.scripts
            ]
        stages.append(StageResult(kind=stage.kind, actions=actions))
    return DeploymentResult(deployment_id=f"deploy_{uuid4().hex[:8]}", stages=stages)


class DeploymentExecutor:
    """Execute plans sequentially with fail-fast behavior"""

    def run(self, plan: ExecutionPlan, context: ExecutionContext) -> DeploymentResult:
        """Run a plan

        Args:
            plan: Execution plan from the phase planner
            context: Connector, tracker, configuration and cancellation

        Returns:
            DeploymentResult listing every stage and action
        """
        start_time = time.time()
        result = _initial_result(plan)
        try:
            self._run(plan, context, result)
        finally:
            result.total_execution_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Deployment %s finished: %s (%d applied, %d skipped)",
            result.deployment_id,
            result.status,
            result.count(ActionStatus.APPLIED),
            result.count(ActionStatus.SKIPPED),
        )
        return result

    def _run(
        self, plan: ExecutionPlan, context: ExecutionContext, result: DeploymentResult
    ) -> None:
        decisions = self._preflight(plan, context, result)
        if decisions is None:
            return

        if context.config.dry_run:
            self._mark_dry_run(plan, result, decisions)
            return

        for stage in plan.stages:
            stage_result = result.stage(stage.kind)
            stage_result.state = StageState.RUNNING
            if stage.kind is StageKind.EXTENSIONS:
                completed = self._provision(plan, stage, stage_result, context, result)
            else:
                completed = self._execute_stage(
                    plan, stage, stage_result, context, result, decisions
                )
            if not completed:
                return
            stage_result.state = StageState.COMPLETED

    def _preflight(
        self, plan: ExecutionPlan, context: ExecutionContext, result: DeploymentResult
    ) -> dict[str, bool] | None:
        """Ask the tracker about every script before anything runs.

        Drift that is not explicitly allowed fails the run with nothing executed.
        """
        decisions: dict[str, bool] = {}
        for stage in plan.stages:
            for script in stage.scripts:
                try:
                    decisions[script.path] = context.tracker.should_apply(script)
                except DriftDetected as e:
                    stage_result = result.stage(stage.kind)
                    result.fail(stage_result, stage_result.action(script.path), e)
                    logger.error("%s", e)
                    return None
                except LedgerError as e:
                    stage_result = result.stage(stage.kind)
                    result.fail(stage_result, stage_result.action(script.path), e)
                    return None
        return decisions

    def _mark_dry_run(
        self, plan: ExecutionPlan, result: DeploymentResult, decisions: dict[str, bool]
    ) -> None:
        for stage in plan.stages:
            stage_result = result.stage(stage.kind)
            for script in stage.scripts:
                if not decisions[script.path]:
                    stage_result.action(script.path).status = ActionStatus.SKIPPED
        result.status = "dry_run"

    def _cancel_if_requested(
        self, context: ExecutionContext, stage_result: StageResult, result: DeploymentResult
    ) -> bool:
        if not context.cancelled:
            return False
        cause = DeploymentCancelled(
            f"Deployment cancelled by operator during the {stage_result.kind.value} stage"
        )
        result.fail(stage_result, None, cause)
        logger.warning("%s", cause)
        return True

    def _provision(
        self,
        plan: ExecutionPlan,
        stage: Stage,
        stage_result: StageResult,
        context: ExecutionContext,
        result: DeploymentResult,
    ) -> bool:
        provisioner = ExtensionProvisioner(context.connector, plan.default_schema)
        for extension in stage.extensions:
            if self._cancel_if_requested(context, stage_result, result):
                return False
            action = stage_result.action(extension.name)
            started = time.time()
            try:
                outcome = provisioner.ensure(extension)
            except ProvisionError as e:
                action.execution_time_ms = int((time.time() - started) * 1000)
                result.fail(stage_result, action, e)
                logger.error("%s", e)
                self._notify(context, stage.kind, action)
                return False
            action.status = ActionStatus(outcome.value)
            action.execution_time_ms = int((time.time() - started) * 1000)
            self._notify(context, stage.kind, action)
        return True

    def _execute_stage(
        self,
        plan: ExecutionPlan,
        stage: Stage,
        stage_result: StageResult,
        context: ExecutionContext,
        result: DeploymentResult,
        decisions: dict[str, bool],
    ) -> bool:
        for script in stage.scripts:
            if self._cancel_if_requested(context, stage_result, result):
                return False
            action = stage_result.action(script.path)
            if not decisions[script.path]:
                action.status = ActionStatus.SKIPPED
                logger.info("Skipping %s (already applied)", script.path)
                self._notify(context, stage.kind, action)
                continue
            if not self._execute_script(plan, script, action, stage_result, context, result):
                self._notify(context, stage.kind, action)
                return False
            self._notify(context, stage.kind, action)
        return True

    def _execute_script(
        self,
        plan: ExecutionPlan,
        script: ResolvedScript,
        action: ActionResult,
        stage_result: StageResult,
        context: ExecutionContext,
        result: DeploymentResult,
    ) -> bool:
        try:
            content = script.absolute_path.read_bytes()
        except OSError as e:
            result.fail(
                stage_result,
                action,
                ScriptExecutionError(f"Couldn't read {script.path}: {e}", path=script.path),
            )
            return False
        if fingerprint_bytes(content) != script.fingerprint:
            result.fail(
                stage_result,
                action,
                ScriptExecutionError(
                    f"Script {script.path} changed on disk after planning", path=script.path
                ),
            )
            return False

        try:
            sql = content.decode("utf-8")
        except UnicodeDecodeError as e:
            result.fail(
                stage_result,
                action,
                ScriptExecutionError(
                    f"Script {script.path} is not valid UTF-8: {e}", path=script.path
                ),
            )
            return False
        transactional = is_transactional(sql)
        timeout = context.config.timeout_for(script.path)
        logger.info("Applying %s", script.path)
        execution = context.connector.execute_script(
            sql,
            schema=plan.default_schema,
            timeout_seconds=timeout,
            transactional=transactional,
        )
        action.transactional = transactional
        action.execution_time_ms = execution.execution_time_ms

        if not execution.succeeded:
            reason = "timed out" if execution.timed_out else "failed"
            error = ScriptExecutionError(
                f"Script {script.path} {reason}: {execution.error_message}",
                path=script.path,
                timed_out=execution.timed_out,
            )
            result.fail(stage_result, action, error)
            logger.error("%s", error)
            return False

        # The transaction has committed; only now may the ledger record it
        action.status = ActionStatus.APPLIED
        try:
            context.tracker.record(script, "applied", execution.execution_time_ms)
        except LedgerError as e:
            result.fail(
                stage_result,
                None,
                LedgerError(
                    f"Script {script.path} was committed but could not be recorded: {e}"
                ),
            )
            result.failed_action = script.path
            return False
        return True

    @staticmethod
    def _notify(context: ExecutionContext, kind: StageKind, action: ActionResult) -> None:
        if context.on_progress is not None:
            context.on_progress(kind, action)
