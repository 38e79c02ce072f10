"""
SQL Rendering Command

Renders an execution plan as one SQL document: extension DDL first, then the
body of every script in execution order, each annotated with its stage and
fingerprint. Useful for review or for handing a deployment to a DBA.
"""

from pathlib import Path

from rich.console import Console
from rich.syntax import Syntax

from pgdeploy.core.planner import ExecutionPlan, StageKind
from pgdeploy.core.project import ProjectRepository
from pgdeploy.core.provisioner import create_extension_sql
from pgdeploy.core.sql_utils import is_transactional
from pgdeploy.domain.errors import ValidationError
from pgdeploy.models import Manifest

console = Console()


def render_plan_sql(plan: ExecutionPlan, manifest: Manifest) -> str:
    """Concatenate a plan into one annotated SQL document

    The output is deterministic: identical plans render identical text.

    Args:
        plan: Execution plan
        manifest: Manifest the plan was built from

    Returns:
        SQL document

    Raises:
        ValidationError: If a script cannot be read as UTF-8 text
    """
    lines = [
        "-- pgdeploy deployment script",
        f"-- Manifest version: {manifest.version}",
        f"-- Default schema: {plan.default_schema}",
        "",
    ]
    for stage in plan.stages:
        if stage.is_empty:
            continue
        lines.append(f"-- ==== Stage: {stage.kind.value} ====")
        lines.append("")
        if stage.kind is StageKind.EXTENSIONS:
            for extension in stage.extensions:
                lines.append(create_extension_sql(extension, plan.default_schema) + ";")
            lines.append("")
            continue
        for script in stage.scripts:
            try:
                body = script.read_text().strip()
            except (OSError, UnicodeDecodeError) as e:
                raise ValidationError(
                    f"Couldn't read script {script.path}: {e}", code="unreadable_script"
                ) from e
            lines.append(f"-- Script: {script.path}")
            lines.append(f"-- Fingerprint: {script.fingerprint}")
            if not is_transactional(body):
                lines.append("-- Runs outside a transaction")
            lines.append(body)
            lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def generate_plan_sql(
    project_root: Path,
    manifest: Path | None = None,
    *,
    repository: ProjectRepository | None = None,
    output: Path | None = None,
    json_output: bool = False,
) -> str:
    """Render a project's execution plan as SQL

    Args:
        project_root: Project directory
        manifest: Manifest file (default: the project's default manifest)
        repository: Project repository override
        output: Output file path (default: print to the console)
        json_output: Suppress console output

    Returns:
        Rendered SQL document

    Raises:
        ValidationError: If the manifest or the plan is invalid
        UnresolvedPathError: If declared literal paths do not exist
    """
    repository = repository or ProjectRepository()
    loaded, plan = repository.load(project_root=project_root, manifest=manifest)
    sql_output = render_plan_sql(plan, loaded)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(sql_output, encoding="utf-8")
        if not json_output:
            console.print(f"[green]✓[/green] SQL written to {output}")
    elif not json_output:
        console.print(Syntax(sql_output, "sql", theme="monokai", line_numbers=False))
    return sql_output
