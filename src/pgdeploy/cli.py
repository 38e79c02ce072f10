"""
Click-based CLI for pgdeploy.
"""

import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler

from pgdeploy import __version__

from .application import ApplyService, PlanService, SqlService, StatusService, ValidateService
from .config import DeployConfig, build_config
from .domain.errors import ValidationError
from .domain.results import EXIT_VALIDATION_FAILURE, CommandResult

console = Console()
err_console = Console(stderr=True)


def configure_logging(verbosity: int) -> None:
    """Route library logging through rich on stderr.

    Args:
        verbosity: 0 warnings only, 1 info, 2 or more debug
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def _emit(result: CommandResult, json_output: bool, *, report_failure: bool = True) -> None:
    """Print the result (JSON or console) and exit with its code."""
    if json_output:
        print(json.dumps(result.as_json_dict(), indent=2, sort_keys=True, default=str))
    elif not result.success and report_failure:
        console.print(f"[red]✗ {result.message}[/red]")
    sys.exit(result.exit_code)


def _config(json_output: bool, profile: str | None, **overrides: Any) -> DeployConfig:
    try:
        return build_config(Path(profile) if profile else None, **overrides)
    except ValidationError as e:
        if json_output:
            payload = {
                "success": False,
                "code": e.code,
                "message": e.message,
                "data": {"problems": list(e.problems)},
            }
            print(json.dumps(payload, indent=2, sort_keys=True))
        else:
            console.print(f"[red]✗ {e.message}[/red]")
        sys.exit(EXIT_VALIDATION_FAILURE)


def _manifest(value: str | None) -> Path | None:
    return Path(value) if value else None


project_argument = click.argument(
    "project", type=click.Path(exists=True, file_okay=False), required=False, default="."
)
manifest_option = click.option(
    "--manifest",
    "-m",
    type=click.Path(dir_okay=False),
    help="Manifest file, relative to PROJECT (default: pgdeploy.json or pgdeploy.toml)",
)
migrations_option = click.option(
    "--migrations", help="Core migration glob (default: migrations/**/*.sql)"
)
profile_option = click.option(
    "--profile", type=click.Path(exists=True, dir_okay=False), help="Deployment profile (JSON)"
)
json_option = click.option("--json", "json_output", is_flag=True, help="Output results as JSON")
database_url_option = click.option(
    "--database-url", envvar="PGDEPLOY_DATABASE_URL", help="Target database URL (SQLAlchemy)"
)
ledger_option = click.option(
    "--ledger", type=click.Choice(["file", "database"]), help="Where applied scripts are recorded"
)


@click.group()
@click.version_option(version=__version__, prog_name="pgdeploy")
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (-v, -vv)")
def cli(verbose: int) -> None:
    """pgdeploy: manifest-driven PostgreSQL deployments"""
    configure_logging(verbose)


@cli.command()
@manifest_option
@migrations_option
@profile_option
@click.option("--strict", is_flag=True, help="Treat SQL parse problems as errors")
@json_option
@project_argument
def validate(
    manifest: str | None,
    migrations: str | None,
    profile: str | None,
    strict: bool,
    json_output: bool,
    project: str,
) -> None:
    """Validate the manifest, script paths and SQL syntax"""
    config = _config(json_output, profile, migrations_glob=migrations)
    if not json_output:
        console.print("Validating project...")
    result = ValidateService().run(
        project_root=Path(project).resolve(),
        manifest=_manifest(manifest),
        strict=strict,
        config=config,
        json_output=json_output,
    )
    _emit(result, json_output, report_failure=result.code != "invalid")


@cli.command()
@manifest_option
@migrations_option
@profile_option
@click.option(
    "--output", "-o", type=click.Path(dir_okay=False), help="Write the JSON plan to a file"
)
@json_option
@project_argument
def plan(
    manifest: str | None,
    migrations: str | None,
    profile: str | None,
    output: str | None,
    json_output: bool,
    project: str,
) -> None:
    """Show the execution plan: stages, scripts and fingerprints"""
    config = _config(json_output, profile, migrations_glob=migrations)
    result = PlanService().run(
        project_root=Path(project).resolve(),
        manifest=_manifest(manifest),
        config=config,
        output=Path(output) if output else None,
        json_output=json_output,
    )
    _emit(result, json_output)


@cli.command()
@manifest_option
@migrations_option
@profile_option
@click.option(
    "--output", "-o", type=click.Path(dir_okay=False), help="Output file path (default: stdout)"
)
@json_option
@project_argument
def sql(
    manifest: str | None,
    migrations: str | None,
    profile: str | None,
    output: str | None,
    json_output: bool,
    project: str,
) -> None:
    """Render the execution plan as one SQL script"""
    config = _config(json_output, profile, migrations_glob=migrations)
    result = SqlService().run(
        project_root=Path(project).resolve(),
        manifest=_manifest(manifest),
        config=config,
        output=Path(output) if output else None,
        json_output=json_output,
    )
    _emit(result, json_output)


@cli.command()
@database_url_option
@manifest_option
@migrations_option
@profile_option
@click.option("--dry-run", is_flag=True, help="Preview the deployment without executing")
@click.option(
    "--allow-drift", is_flag=True, help="Re-apply scripts changed since they were applied"
)
@click.option(
    "--post-deploy-policy",
    type=click.Choice(["tracked", "always"]),
    help="Track post-deploy scripts (default) or re-apply them on every run",
)
@click.option("--timeout", type=click.IntRange(min=1), help="Per-script timeout in seconds")
@ledger_option
@click.option("--ledger-schema", help="Schema of the database ledger table")
@json_option
@project_argument
def apply(
    database_url: str | None,
    manifest: str | None,
    migrations: str | None,
    profile: str | None,
    dry_run: bool,
    allow_drift: bool,
    post_deploy_policy: str | None,
    timeout: int | None,
    ledger: str | None,
    ledger_schema: str | None,
    json_output: bool,
    project: str,
) -> None:
    """Deploy the project to the target database

    Provisions declared extensions, then runs pre-deploy scripts, core
    migrations and post-deploy scripts in order. Scripts already applied
    with the same content are skipped.

    Examples:

        # Preview
        pgdeploy apply --database-url postgresql+psycopg://app@localhost/app --dry-run

        # Deploy, recording applied scripts in the database itself
        PGDEPLOY_DATABASE_URL=postgresql+psycopg://app@db/app pgdeploy apply --ledger database
    """
    config = _config(
        json_output,
        profile,
        database_url=database_url,
        migrations_glob=migrations,
        dry_run=dry_run or None,
        allow_drift=allow_drift or None,
        post_deploy_policy=post_deploy_policy,
        timeout_seconds=timeout,
        ledger=ledger,
        ledger_schema=ledger_schema,
    )
    service = ApplyService()

    def _request_cancel(signum: int, frame: Any) -> None:
        err_console.print("[yellow]Cancelling after the current script...[/yellow]")
        service.cancel()
        # A second interrupt aborts immediately
        signal.signal(signal.SIGINT, previous_handler)

    previous_handler = signal.signal(signal.SIGINT, _request_cancel)
    try:
        result = service.run(
            project_root=Path(project).resolve(),
            config=config,
            manifest=_manifest(manifest),
            json_output=json_output,
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)
    _emit(result, json_output, report_failure=False)


@cli.command()
@database_url_option
@manifest_option
@migrations_option
@profile_option
@ledger_option
@click.option("--ledger-schema", help="Schema of the database ledger table")
@json_option
@project_argument
def status(
    database_url: str | None,
    manifest: str | None,
    migrations: str | None,
    profile: str | None,
    ledger: str | None,
    ledger_schema: str | None,
    json_output: bool,
    project: str,
) -> None:
    """Show applied, pending and drifted scripts"""
    config = _config(
        json_output,
        profile,
        database_url=database_url,
        migrations_glob=migrations,
        ledger=ledger,
        ledger_schema=ledger_schema,
    )
    result = StatusService().run(
        project_root=Path(project).resolve(),
        config=config,
        manifest=_manifest(manifest),
        json_output=json_output,
    )
    _emit(result, json_output)


def main() -> None:
    """Main entry point"""
    cli()


if __name__ == "__main__":
    main()
