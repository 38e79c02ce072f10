"""Unified domain error taxonomy for manifest deployments.

None of these errors are retried by the engine. Recovery is an operator-driven
re-run after remediation, relying on the execution tracker to skip scripts that
were already applied.
"""

from dataclasses import dataclass


@dataclass(slots=True)
class PgDeployError(Exception):
    """Base class for application/domain-level failures."""

    message: str
    code: str = "pgdeploy_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class ValidationError(PgDeployError):
    """Raised for malformed or unsupported manifests. Nothing is executed."""

    code: str = "invalid_manifest"
    problems: tuple[str, ...] = ()


@dataclass(slots=True)
class UnresolvedPathError(PgDeployError):
    """Raised when declared, non-glob script paths do not exist on disk."""

    code: str = "unresolved_path"
    paths: tuple[str, ...] = ()


@dataclass(slots=True)
class ProvisionError(PgDeployError):
    """Raised when an extension cannot be provisioned. Blocks every stage."""

    code: str = "provision_failed"
    extension: str = ""


@dataclass(slots=True)
class DriftDetected(PgDeployError):
    """Raised when a previously applied script changed on disk."""

    code: str = "drift_detected"
    path: str = ""
    recorded_fingerprint: str = ""
    current_fingerprint: str = ""


@dataclass(slots=True)
class ScriptExecutionError(PgDeployError):
    """Raised when a script fails or times out."""

    code: str = "script_failed"
    path: str = ""
    timed_out: bool = False


@dataclass(slots=True)
class DeploymentCancelled(PgDeployError):
    """Raised when an operator interrupts a run between two scripts."""

    code: str = "cancelled"


@dataclass(slots=True)
class ConnectorError(PgDeployError):
    """Raised by database connectors for statements that must not fail."""

    code: str = "connector_error"


@dataclass(slots=True)
class LedgerError(PgDeployError):
    """Raised when the applied-scripts ledger cannot be read or written."""

    code: str = "ledger_error"
