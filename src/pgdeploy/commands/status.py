"""
Status Command

Compares the project's current plan with the ledger and reports, for every
script, whether it is applied, pending or drifted. Ledger records whose
script is no longer part of the plan are listed as orphaned. Read-only.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from pgdeploy.config import DeployConfig
from pgdeploy.connectors.base import DatabaseConnector
from pgdeploy.core.project import ProjectRepository
from pgdeploy.core.tracker import ExecutionTracker, TrackerDecision

from .apply import create_connector, open_ledger

console = Console()

_DECISION_STATES = {
    TrackerDecision.SKIP: "applied",
    TrackerDecision.APPLY: "pending",
    TrackerDecision.DRIFT: "drifted",
}


@dataclass
class ScriptState:
    """Ledger state of one planned script."""

    path: str
    stage: str
    state: str
    fingerprint: str
    applied_at: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "stage": self.stage,
            "state": self.state,
            "fingerprint": self.fingerprint,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
        }


@dataclass
class StatusReport:
    """Per-script state of a project against its ledger."""

    scripts: list[ScriptState] = field(default_factory=list)
    orphaned: list[str] = field(default_factory=list)

    def count(self, state: str) -> int:
        return sum(1 for script in self.scripts if script.state == state)

    @property
    def has_drift(self) -> bool:
        return self.count("drifted") > 0


def deployment_status(
    project_root: Path,
    config: DeployConfig,
    manifest: Path | None = None,
    *,
    repository: ProjectRepository | None = None,
    connector: DatabaseConnector | None = None,
    json_output: bool = False,
) -> StatusReport:
    """Report applied / pending / drifted state for every planned script

    Args:
        project_root: Project directory
        config: Deployment configuration (ledger selection)
        manifest: Manifest file (default: the project's default manifest)
        repository: Project repository override
        connector: Connector override for the database ledger
        json_output: Suppress console output

    Returns:
        StatusReport

    Raises:
        ValidationError: If the manifest or configuration is invalid
        UnresolvedPathError: If declared literal paths do not exist
        LedgerError: If the ledger cannot be read
    """
    repository = repository or ProjectRepository(
        migrations_glob=config.migrations_glob,
        fingerprint_workers=config.fingerprint_workers,
    )
    _, plan = repository.load(project_root=project_root, manifest=manifest)

    owns_connector = connector is None and config.ledger == "database"
    if owns_connector:
        connector = create_connector(config)
    try:
        ledger = open_ledger(config, project_root, connector, read_only=True)
        # Policy-free view: post-deploy scripts are reported by fingerprint too
        tracker = ExecutionTracker(ledger)
        report = StatusReport()
        planned: set[str] = set()
        for stage in plan.stages:
            for script in stage.scripts:
                planned.add(script.path)
                record = ledger.get(script.path)
                report.scripts.append(
                    ScriptState(
                        path=script.path,
                        stage=stage.kind.value,
                        state=_DECISION_STATES[tracker.check(script)],
                        fingerprint=script.fingerprint,
                        applied_at=record.applied_at if record else None,
                    )
                )
        report.orphaned = [record.path for record in ledger.all() if record.path not in planned]
    finally:
        if owns_connector and connector is not None:
            connector.close()

    if not json_output:
        _print_report(report)
    return report


def _print_report(report: StatusReport) -> None:
    table = Table(title="Deployment Status")
    table.add_column("Stage")
    table.add_column("Script")
    table.add_column("State")
    table.add_column("Applied at")
    styles = {"applied": "green", "pending": "yellow", "drifted": "red"}
    for script in report.scripts:
        style = styles[script.state]
        table.add_row(
            script.stage,
            script.path,
            f"[{style}]{script.state}[/{style}]",
            script.applied_at.isoformat(timespec="seconds") if script.applied_at else "",
        )
    console.print(table)
    console.print(
        f"Applied: {report.count('applied')}  Pending: {report.count('pending')}  "
        f"Drifted: {report.count('drifted')}"
    )
    for path in report.orphaned:
        console.print(f"[yellow]⚠  Recorded but no longer planned:[/yellow] {path}")
