"""Domain types and contracts for pgdeploy workflows."""

from .errors import (
    ConnectorError,
    DeploymentCancelled,
    DriftDetected,
    LedgerError,
    PgDeployError,
    ProvisionError,
    ScriptExecutionError,
    UnresolvedPathError,
    ValidationError,
)
from .results import (
    EXIT_PARTIAL_FAILURE,
    EXIT_SUCCESS,
    EXIT_VALIDATION_FAILURE,
    CommandResult,
    DeploymentOutcome,
    PartialFailure,
    Success,
    ValidationFailure,
)

__all__ = [
    "CommandResult",
    "DeploymentOutcome",
    "Success",
    "PartialFailure",
    "ValidationFailure",
    "EXIT_SUCCESS",
    "EXIT_PARTIAL_FAILURE",
    "EXIT_VALIDATION_FAILURE",
    "PgDeployError",
    "ValidationError",
    "UnresolvedPathError",
    "ProvisionError",
    "DriftDetected",
    "ScriptExecutionError",
    "DeploymentCancelled",
    "ConnectorError",
    "LedgerError",
]
