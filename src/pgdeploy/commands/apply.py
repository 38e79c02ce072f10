"""
Apply Command Implementation

Runs a deployment: loads and plans the project, provisions extensions and
executes every pending script against the target database, recording each
committed script in the ledger.
"""

import threading
from pathlib import Path

from rich.console import Console
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from pgdeploy.config import DeployConfig
from pgdeploy.connectors.base import DatabaseConnector
from pgdeploy.connectors.postgres import SQLAlchemyConnector
from pgdeploy.core.executor import DeploymentExecutor, ExecutionContext
from pgdeploy.core.ledger import DatabaseLedger, FileLedger, LedgerStore
from pgdeploy.core.project import ProjectRepository
from pgdeploy.core.tracker import ExecutionTracker
from pgdeploy.domain.errors import PgDeployError, ValidationError
from pgdeploy.domain.results import DeploymentOutcome, PartialFailure, ValidationFailure

from ._preview import print_deployment_summary, print_plan_preview, print_progress

console = Console()


def redact_url(url: str) -> str:
    """Render a database URL with its password hidden."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<invalid url>"


def create_connector(config: DeployConfig) -> SQLAlchemyConnector:
    """Create the connector for the configured database URL

    Raises:
        ValidationError: If no URL is configured or it cannot be parsed
    """
    if not config.database_url:
        raise ValidationError(
            "A database URL is required (--database-url or PGDEPLOY_DATABASE_URL)",
            code="missing_database_url",
        )
    try:
        return SQLAlchemyConnector(config.database_url)
    except ArgumentError as e:
        raise ValidationError(f"Invalid database URL: {e}", code="invalid_database_url") from e


def open_ledger(
    config: DeployConfig,
    project_root: Path,
    connector: DatabaseConnector | None,
    *,
    read_only: bool = False,
) -> LedgerStore:
    """Open the configured ledger store

    Raises:
        ValidationError: If the database ledger is selected without a SQLAlchemy connector
    """
    if config.ledger == "file":
        return FileLedger(config.ledger_file(project_root))
    engine = getattr(connector, "engine", None)
    if engine is None:
        raise ValidationError(
            "The database ledger needs a database connection", code="missing_database_url"
        )
    return DatabaseLedger(engine, config.ledger_schema, read_only=read_only)


def _print_header(config: DeployConfig, project_root: Path) -> None:
    console.print()
    console.print("[bold]pgdeploy apply[/bold]")
    console.print("─" * 60)
    console.print(f"[blue]Project:[/blue] {project_root}")
    if config.database_url:
        console.print(f"[blue]Target:[/blue] {redact_url(config.database_url)}")
    console.print(f"[blue]Ledger:[/blue] {config.ledger}")
    if config.dry_run:
        console.print("[yellow]Dry run: nothing will be executed[/yellow]")


def _print_outcome(outcome: DeploymentOutcome) -> None:
    if isinstance(outcome, PartialFailure):
        console.print(f"\n[red]✗ Deployment stopped in the {outcome.stage} stage[/red]")
        if outcome.script:
            console.print(f"   At: {outcome.script}")
        console.print(f"   {outcome.cause}")
        console.print("[yellow]Earlier scripts stay applied; fix the cause and re-run.[/yellow]")
        return
    if isinstance(outcome, ValidationFailure):
        console.print(f"\n[red]✗ Validation failed:[/red] {outcome.cause}")
        return
    if outcome.result.status == "dry_run":
        console.print("\n[green]✓ Dry run completed[/green]")
    else:
        console.print("\n[green]✓ Deployment completed[/green]")


def apply_project(
    project_root: Path,
    config: DeployConfig,
    manifest: Path | None = None,
    *,
    repository: ProjectRepository | None = None,
    connector: DatabaseConnector | None = None,
    cancel_event: threading.Event | None = None,
    json_output: bool = False,
) -> DeploymentOutcome:
    """Deploy a project to the configured database

    Args:
        project_root: Project directory
        config: Deployment configuration
        manifest: Manifest file (default: the project's default manifest)
        repository: Project repository override
        connector: Connector override (default: built from config.database_url)
        cancel_event: Set to stop the run at the next script boundary
        json_output: Suppress console output

    Returns:
        Success, PartialFailure or ValidationFailure
    """
    repository = repository or ProjectRepository(
        migrations_glob=config.migrations_glob,
        fingerprint_workers=config.fingerprint_workers,
    )
    if not json_output:
        _print_header(config, project_root)

    try:
        _, plan = repository.load(project_root=project_root, manifest=manifest)
    except PgDeployError as e:
        outcome: DeploymentOutcome = ValidationFailure(cause=e)
        if not json_output:
            _print_outcome(outcome)
        return outcome

    owns_connector = connector is None
    try:
        if connector is None:
            connector = create_connector(config)
        ledger = open_ledger(config, project_root, connector, read_only=config.dry_run)
    except ValidationError as e:
        if owns_connector and connector is not None:
            connector.close()
        outcome = ValidationFailure(cause=e)
        if not json_output:
            _print_outcome(outcome)
        return outcome

    if not json_output:
        print_plan_preview(plan)

    tracker = ExecutionTracker(
        ledger,
        allow_drift=config.allow_drift,
        post_deploy_policy=config.post_deploy_policy,
    )
    context = ExecutionContext(
        connector=connector,
        tracker=tracker,
        config=config,
        cancel_event=cancel_event,
        on_progress=None if json_output else print_progress,
    )
    try:
        result = DeploymentExecutor().run(plan, context)
    finally:
        if owns_connector:
            connector.close()

    outcome = result.outcome()
    if not json_output:
        print_deployment_summary(result)
        _print_outcome(outcome)
    return outcome
