"""
Decision Lifecycle Manager: owns active -> approved / rejected / expired.

Transition rules, applied in order against one consistent snapshot:
1. every required voter has voted and the outcome passed -> approved
2. the deadline date has passed -> expired (regardless of the tally)
3. every required voter has voted and the outcome failed -> rejected
4. otherwise the decision stays active

Status writes are compare-and-set against ACTIVE, so a terminal status is
never overwritten even when several evaluations race.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

from ..core.clock import Clock, today, utc_now
from ..core.exceptions import ConsensusError, InvalidStateError
from ..models import DecisionStatus
from ..store.base import DecisionSnapshot, EntityStore
from .outcome import Outcome, evaluate

logger = logging.getLogger(__name__)


@dataclass
class LifecycleResult:
    decision_id: UUID
    status: DecisionStatus
    outcome: Outcome
    changed: bool
    reason: str


@dataclass
class MaintenanceSummary:
    total: int = 0
    finalized: int = 0
    unchanged: int = 0
    errors: list[str] = field(default_factory=list)


def deadline_passed(deadline: date, on: date) -> bool:
    """The deadline day itself is still open for voting."""
    return on > deadline


def outcome_for(snapshot: DecisionSnapshot) -> Outcome:
    return evaluate(
        [vote.value for vote in snapshot.votes],
        snapshot.decision.success_policy,
        len(snapshot.voters),
    )


def next_status(
    snapshot: DecisionSnapshot,
    outcome: Outcome,
    on: date,
) -> tuple[DecisionStatus, str]:
    """Pure transition function for an active decision."""
    if snapshot.all_voted and outcome.passed:
        return DecisionStatus.APPROVED, "all votes submitted"
    if deadline_passed(snapshot.decision.deadline, on):
        return DecisionStatus.EXPIRED, "deadline reached"
    if snapshot.all_voted:
        return DecisionStatus.REJECTED, "all votes submitted"
    return DecisionStatus.ACTIVE, "not yet ready"


class LifecycleManager:
    """Drives decision status from outcome results and deadline checks."""

    def __init__(self, store: EntityStore, clock: Clock = utc_now):
        self._store = store
        self._clock = clock

    async def evaluate(self, decision_id: UUID) -> LifecycleResult:
        """Re-evaluate one decision and apply any resulting transition."""
        snapshot = await self._store.get_decision_snapshot(decision_id)
        if snapshot is None:
            raise InvalidStateError(decision_id)
        return await self.apply(snapshot)

    async def apply(self, snapshot: DecisionSnapshot) -> LifecycleResult:
        decision = snapshot.decision
        outcome = outcome_for(snapshot)

        if decision.status.is_terminal:
            return LifecycleResult(decision.id, decision.status, outcome, False, "already closed")

        status, reason = next_status(snapshot, outcome, today(self._clock))
        logger.debug(
            f"Lifecycle check for {decision.id}: status={status.value} reason={reason} "
            f"votes={outcome.total_votes}/{outcome.required_voter_count}"
        )
        if status == DecisionStatus.ACTIVE:
            return LifecycleResult(decision.id, status, outcome, False, reason)

        changed = await self._store.update_decision_status(
            decision.id, status, only_if_active=True
        )
        if not changed:
            # Someone else closed it first; report what is stored now
            current = await self._store.get_decision(decision.id)
            if current is None:
                raise InvalidStateError(decision.id)
            return LifecycleResult(decision.id, current.status, outcome, False, "already closed")

        logger.info(f"Decision {decision.id} transitioned to {status.value} ({reason})")
        return LifecycleResult(decision.id, status, outcome, True, reason)

    async def run_maintenance_pass(self) -> MaintenanceSummary:
        """Evaluate every active decision, collecting per-decision errors."""
        summary = MaintenanceSummary()
        for decision in await self._store.list_active_decisions():
            summary.total += 1
            try:
                result = await self.evaluate(decision.id)
            except ConsensusError as e:
                logger.error(f"Error evaluating decision {decision.id}: {e}")
                summary.errors.append(f"Decision {decision.id}: {e}")
                continue
            if result.changed:
                summary.finalized += 1
            else:
                summary.unchanged += 1

        logger.info(
            f"Maintenance pass: {summary.finalized} finalized, "
            f"{summary.unchanged} unchanged, {len(summary.errors)} errors"
        )
        return summary
