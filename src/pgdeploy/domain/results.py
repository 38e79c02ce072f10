"""Typed workflow result envelopes used by CLI and SDK entrypoints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .errors import PgDeployError

if TYPE_CHECKING:
    from pgdeploy.core.executor import DeploymentResult

EXIT_SUCCESS = 0
EXIT_PARTIAL_FAILURE = 1
EXIT_VALIDATION_FAILURE = 2


@dataclass(slots=True)
class CommandResult:
    """Common command/service response payload."""

    success: bool
    code: str = "ok"
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    exit_code: int = EXIT_SUCCESS

    def as_json_dict(self) -> dict[str, Any]:
        """Return a stable machine-readable structure."""
        return {
            "success": self.success,
            "code": self.code,
            "message": self.message,
            "data": self.data,
        }


@dataclass(slots=True)
class Success:
    """Every stage completed."""

    result: DeploymentResult

    exit_code = EXIT_SUCCESS


@dataclass(slots=True)
class PartialFailure:
    """A run stopped at `stage`/`script`; earlier work stays committed."""

    stage: str
    script: str | None
    cause: PgDeployError
    result: DeploymentResult

    exit_code = EXIT_PARTIAL_FAILURE


@dataclass(slots=True)
class ValidationFailure:
    """Manifest, path or plan problems found before anything was executed."""

    cause: PgDeployError

    exit_code = EXIT_VALIDATION_FAILURE


DeploymentOutcome = Success | PartialFailure | ValidationFailure
