"""
Plan Command

Resolves a project and prints the execution plan: stages in order, the
scripts of each stage and their fingerprints. Nothing is executed.
"""

from pathlib import Path

from rich.console import Console

from pgdeploy.core.planner import ExecutionPlan
from pgdeploy.core.project import ProjectRepository

from ._preview import print_plan_preview

console = Console()


def generate_plan(
    project_root: Path,
    manifest: Path | None = None,
    *,
    repository: ProjectRepository | None = None,
    output: Path | None = None,
    json_output: bool = False,
) -> ExecutionPlan:
    """Build the execution plan of a project

    Args:
        project_root: Project directory
        manifest: Manifest file (default: the project's default manifest)
        repository: Project repository override
        output: Write the JSON plan to this file
        json_output: Suppress console output

    Returns:
        ExecutionPlan

    Raises:
        ValidationError: If the manifest or the plan is invalid
        UnresolvedPathError: If declared literal paths do not exist
    """
    repository = repository or ProjectRepository()
    _, plan = repository.load(project_root=project_root, manifest=manifest)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(plan.to_json() + "\n", encoding="utf-8")
        if not json_output:
            console.print(f"[green]✓[/green] Plan written to {output}")
    elif not json_output:
        print_plan_preview(plan)
    return plan
