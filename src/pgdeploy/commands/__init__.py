"""
pgdeploy CLI Commands

Each command is implemented as a separate module; the CLI layer (cli.py)
routes through the application services and only handles options and exit
codes.
"""

from .apply import apply_project, create_connector, open_ledger
from .plan import generate_plan
from .sql import generate_plan_sql, render_plan_sql
from .status import ScriptState, StatusReport, deployment_status
from .validate import ValidationReport, validate_project

__all__ = [
    "apply_project",
    "create_connector",
    "open_ledger",
    "generate_plan",
    "generate_plan_sql",
    "render_plan_sql",
    "deployment_status",
    "ScriptState",
    "StatusReport",
    "validate_project",
    "ValidationReport",
]
