"""
Validation Command

Validates a deployment project: the manifest, the declared script paths and
the SQL syntax of every resolved script. Nothing is executed.
"""

from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from pgdeploy.core.planner import ExecutionPlan
from pgdeploy.core.project import ProjectRepository
from pgdeploy.core.sql_utils import check_sql_syntax
from pgdeploy.models import Manifest

console = Console()


@dataclass
class ValidationReport:
    """Outcome of validating a project."""

    manifest: Manifest
    plan: ExecutionPlan
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def check_scripts(plan: ExecutionPlan, *, strict: bool = False) -> tuple[list[str], list[str]]:
    """Syntax-check every planned script

    Returns:
        Tuple of (errors list, warnings list). Parse problems are warnings
        unless strict is set.
    """
    errors: list[str] = []
    warnings: list[str] = []
    for script in plan.scripts:
        try:
            problems = check_sql_syntax(script.read_text())
        except (OSError, UnicodeDecodeError) as e:
            errors.append(f"{script.path}: couldn't read script ({e})")
            continue
        target = errors if strict else warnings
        target.extend(f"{script.path}: {problem}" for problem in problems)
    return errors, warnings


def validate_project(
    project_root: Path,
    manifest: Path | None = None,
    *,
    strict: bool = False,
    repository: ProjectRepository | None = None,
    json_output: bool = False,
) -> ValidationReport:
    """Validate a project without touching any database

    Args:
        project_root: Project directory
        manifest: Manifest file (default: pgdeploy.json / pgdeploy.toml in the root)
        strict: Treat SQL parse problems as errors
        repository: Project repository override
        json_output: Suppress console output

    Returns:
        ValidationReport

    Raises:
        ValidationError: If the manifest is malformed or unsupported
        UnresolvedPathError: If declared literal paths do not exist
    """
    repository = repository or ProjectRepository()
    loaded, plan = repository.load(project_root=project_root, manifest=manifest)
    errors, warnings = check_scripts(plan, strict=strict)
    report = ValidationReport(manifest=loaded, plan=plan, errors=errors, warnings=warnings)

    if not json_output:
        console.print(f"  [green]✓[/green] Manifest (version {loaded.version})")
        console.print(f"  [green]✓[/green] {len(plan.scripts)} scripts resolved")
        console.print(f"  [green]✓[/green] {len(plan.extensions)} extensions declared")
        for warning in warnings:
            console.print(f"  [yellow]⚠[/yellow] {warning}")
        for error in errors:
            console.print(f"  [red]✗[/red] {error}")
        if report.valid:
            console.print("\n[green]✓ Project is valid[/green]")
        else:
            console.print("\n[red]✗ Validation failed[/red]")
    return report
