"""
pgdeploy

Manifest-driven deployment engine for PostgreSQL databases: resolves an
ordered set of SQL scripts, provisions extensions and applies the scripts
with fingerprint-based idempotence.
"""

__version__ = "0.1.0"

from .config import DeployConfig, build_config
from .core.executor import DeploymentExecutor, DeploymentResult, ExecutionContext
from .core.manifest import load_manifest, parse
from .core.planner import ExecutionPlan, StageKind, build_plan, plan
from .core.resolver import resolve
from .core.tracker import ExecutionTracker
from .domain import (
    PartialFailure,
    PgDeployError,
    Success,
    ValidationFailure,
)
from .models import AppliedRecord, ExtensionDeclaration, Manifest, Phase, ResolvedScript

__all__ = [
    "__version__",
    "Manifest",
    "ExtensionDeclaration",
    "ResolvedScript",
    "AppliedRecord",
    "Phase",
    "parse",
    "load_manifest",
    "resolve",
    "plan",
    "build_plan",
    "ExecutionPlan",
    "StageKind",
    "ExecutionTracker",
    "DeploymentExecutor",
    "ExecutionContext",
    "DeploymentResult",
    "DeployConfig",
    "build_config",
    "PgDeployError",
    "Success",
    "PartialFailure",
    "ValidationFailure",
]
