"""
Execution Tracker

Decides whether a resolved script must run, by comparing it with the ledger:

- no record for the path            -> APPLY
- record with the same fingerprint  -> SKIP
- record with another fingerprint   -> DRIFT

Drift is surfaced as a distinct condition rather than silently re-running or
silently skipping. Post-deploy scripts can be configured as always
re-applicable seed data instead of tracked DDL.
"""

import logging
from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal

from pgdeploy.domain.errors import DriftDetected
from pgdeploy.models import AppliedRecord, Phase, ResolvedScript

from .ledger import LedgerStore

logger = logging.getLogger(__name__)

PostDeployPolicy = Literal["tracked", "always"]


class TrackerDecision(StrEnum):
    """Tracker verdict for one script"""

    APPLY = "apply"
    SKIP = "skip"
    DRIFT = "drift"


class ExecutionTracker:
    """Fingerprint-based idempotence over a ledger store

    Attributes:
        ledger: Persistent store of applied records
        allow_drift: Operator override; drifted scripts are re-applied
        post_deploy_policy: "tracked" (same as DDL) or "always" (re-apply seeds)
    """

    def __init__(
        self,
        ledger: LedgerStore,
        *,
        allow_drift: bool = False,
        post_deploy_policy: PostDeployPolicy = "tracked",
    ) -> None:
        self.ledger = ledger
        self.allow_drift = allow_drift
        self.post_deploy_policy = post_deploy_policy

    def is_always_applied(self, script: ResolvedScript) -> bool:
        return script.phase is Phase.POST and self.post_deploy_policy == "always"

    def check(self, script: ResolvedScript) -> TrackerDecision:
        """Compare a script with its ledger record (policy-free)."""
        if self.is_always_applied(script):
            return TrackerDecision.APPLY
        record = self.ledger.get(script.path)
        if record is None:
            return TrackerDecision.APPLY
        if record.fingerprint == script.fingerprint:
            return TrackerDecision.SKIP
        return TrackerDecision.DRIFT

    def drift_error(self, script: ResolvedScript) -> DriftDetected:
        record = self.ledger.get(script.path)
        recorded = record.fingerprint if record else ""
        return DriftDetected(
            f"Script {script.path} changed since it was applied "
            f"(recorded {recorded[:12]}, now {script.fingerprint[:12]}); "
            "re-run with --allow-drift to re-apply it",
            path=script.path,
            recorded_fingerprint=recorded,
            current_fingerprint=script.fingerprint,
        )

    def should_apply(self, script: ResolvedScript) -> bool:
        """Return True if the script must run, False if it is already applied

        Raises:
            DriftDetected: If the script changed since it was applied and
                drift was not explicitly allowed
        """
        decision = self.check(script)
        if decision is TrackerDecision.DRIFT:
            if not self.allow_drift:
                raise self.drift_error(script)
            logger.warning("Re-applying drifted script %s (drift allowed)", script.path)
            return True
        return decision is TrackerDecision.APPLY

    def record(
        self, script: ResolvedScript, outcome: str, execution_time_ms: int = 0
    ) -> AppliedRecord | None:
        """Persist a successful application

        Must only be called after the script's transaction committed. Outcomes
        other than "applied" are not persisted.
        """
        if outcome != "applied":
            logger.debug("Not recording %s for %s", outcome, script.path)
            return None
        record = AppliedRecord(
            path=script.path,
            fingerprint=script.fingerprint,
            phase=script.phase,
            applied_at=datetime.now(UTC),
            execution_time_ms=execution_time_ms,
        )
        self.ledger.put(record)
        return record
