"""Shared CLI preview helpers (plan listing, deployment summaries)."""

from rich.console import Console
from rich.table import Table

from pgdeploy.core.executor import ActionResult, ActionStatus, DeploymentResult
from pgdeploy.core.planner import ExecutionPlan, StageKind

console = Console()

_STATUS_STYLES = {
    ActionStatus.APPLIED: "[green]✓ applied[/green]",
    ActionStatus.ALREADY_PRESENT: "[green]✓ already present[/green]",
    ActionStatus.SKIPPED: "[dim]- skipped[/dim]",
    ActionStatus.FAILED: "[red]✗ failed[/red]",
    ActionStatus.PENDING: "[yellow]• pending[/yellow]",
}


def format_status(status: ActionStatus) -> str:
    return _STATUS_STYLES[status]


def print_plan_preview(plan: ExecutionPlan, title: str = "Execution Plan") -> None:
    """Print every stage of a plan with its scripts or extensions.

    Args:
        plan: Execution plan to list
        title: Section title
    """
    console.print()
    console.print(f"[bold]{title}[/bold]")
    console.print("─" * 60)
    console.print(f"[blue]Default schema:[/blue] {plan.default_schema}")
    for stage in plan.stages:
        console.print(f"\n[cyan]{stage.kind.value}[/cyan]")
        if stage.is_empty:
            console.print("  [dim](empty)[/dim]")
            continue
        if stage.kind is StageKind.EXTENSIONS:
            for extension in stage.extensions:
                suffix = f" >= {extension.version}" if extension.version else ""
                schema = extension.schema_name or plan.default_schema
                console.print(f"  {extension.name}{suffix} [dim](schema {schema})[/dim]")
            continue
        for script in stage.scripts:
            console.print(f"  {script.path} [dim]{script.fingerprint[:12]}[/dim]")
    console.print()


def print_progress(kind: StageKind, action: ActionResult) -> None:
    """Progress callback for the deployment executor."""
    timing = f" [dim]({action.execution_time_ms}ms)[/dim]" if action.execution_time_ms else ""
    console.print(f"  [{kind.value}] {action.name}: {format_status(action.status)}{timing}")


def print_deployment_summary(result: DeploymentResult) -> None:
    """Print a per-stage table of a finished deployment."""
    table = Table(title=f"Deployment {result.deployment_id}")
    table.add_column("Stage")
    table.add_column("Action")
    table.add_column("Status")
    table.add_column("Time (ms)", justify="right")
    for stage in result.stages:
        for action in stage.actions:
            table.add_row(
                stage.kind.value,
                action.name,
                format_status(action.status),
                str(action.execution_time_ms),
            )
    console.print()
    console.print(table)
    console.print(
        f"Applied: {result.count(ActionStatus.APPLIED)}  "
        f"Skipped: {result.count(ActionStatus.SKIPPED)}  "
        f"Already present: {result.count(ActionStatus.ALREADY_PRESENT)}  "
        f"Total time: {result.total_execution_time_ms}ms"
    )
