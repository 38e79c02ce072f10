"""Application service layer entrypoints."""

from .services import (
    ApplyService,
    PlanService,
    SqlService,
    StatusService,
    ValidateService,
)

__all__ = [
    "ValidateService",
    "PlanService",
    "SqlService",
    "ApplyService",
    "StatusService",
]
