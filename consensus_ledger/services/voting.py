"""
Vote Capture and decision orchestration.

cast_vote flow:
1. Load the decision; refuse unless it exists and is active
2. Refuse users who are not registered voters (nothing is written)
3. Upsert the vote only while the decision is still active
   (last write wins, voted_at always refreshed)
4. Re-read a consistent snapshot, evaluate the outcome, apply lifecycle
5. Return the refreshed status and outcome
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

from ..core.clock import Clock, today, utc_now
from ..core.exceptions import (
    InvalidStateError,
    NotCreatorError,
    NotEligibleError,
    ValidationError,
)
from ..models import DecisionStatus, SuccessPolicy, VoteValue
from ..store.base import (
    DecisionRecord,
    EntityStore,
    NewDecision,
    VoteSummary,
    parse_vote_value,
)
from ..utils.dates import days_until, default_deadline
from .lifecycle import LifecycleManager, deadline_passed, outcome_for
from .outcome import Deadlock, Outcome, check_deadlock

logger = logging.getLogger(__name__)


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class VoteResult:
    """What a voter's click produced."""
    decision_id: UUID
    user_id: str
    value: VoteValue
    status: DecisionStatus
    outcome: Outcome
    changed: bool


@dataclass
class DecisionStats:
    """Decision merged with its tally, for status and summary views."""
    decision: DecisionRecord
    voter_count: int
    summary: VoteSummary
    missing_voter_ids: list[str]
    outcome: Outcome
    deadlock: Deadlock
    days_until_deadline: int
    voter_ids: list[str] = field(default_factory=list)


# =============================================================================
# DECISION SERVICE
# =============================================================================


class DecisionService:
    """Entry points the messaging layer calls with already-parsed values."""

    def __init__(
        self,
        store: EntityStore,
        lifecycle: LifecycleManager | None = None,
        clock: Clock = utc_now,
        default_deadline_business_days: int = 5,
    ):
        self._store = store
        self._clock = clock
        self._lifecycle = lifecycle or LifecycleManager(store, clock=clock)
        self._default_deadline_days = default_deadline_business_days

    # =========================================================================
    # CREATION
    # =========================================================================

    async def create_decision(
        self,
        name: str,
        proposal: str,
        success_policy: SuccessPolicy | str,
        channel_ref: str,
        creator_ref: str,
        deadline: date | None = None,
        voter_ids: Iterable[str] = (),
    ) -> DecisionRecord:
        """Create a decision and register its voters."""
        if deadline is None:
            deadline = default_deadline(today(self._clock), self._default_deadline_days)

        decision_id = await self._store.create_decision(NewDecision(
            name=name,
            proposal=proposal,
            success_policy=success_policy,
            deadline=deadline,
            channel_ref=channel_ref,
            creator_ref=creator_ref,
        ))

        voter_ids = list(voter_ids)
        if voter_ids:
            await self._store.add_voters(decision_id, voter_ids)

        decision = await self._store.get_decision(decision_id)
        if decision is None:
            raise InvalidStateError(decision_id)
        return decision

    async def add_voters(self, decision_id: UUID, user_ids: Iterable[str]) -> int:
        decision = await self._store.get_decision(decision_id)
        if decision is None:
            raise InvalidStateError(decision_id)
        return await self._store.add_voters(decision_id, user_ids)

    async def attach_message(self, decision_id: UUID, ref: str) -> DecisionRecord:
        """Record where the announcement for a decision was posted."""
        if not ref:
            raise ValidationError("message reference is required", field="message_ref")
        if not await self._store.update_decision_message_ref(decision_id, ref):
            raise InvalidStateError(decision_id)
        decision = await self._store.get_decision(decision_id)
        if decision is None:
            raise InvalidStateError(decision_id)
        return decision

    async def delete_decision(self, decision_id: UUID, requested_by: str) -> None:
        """
        Remove a decision together with its voters and votes.

        Only the decision's creator may do this; anyone else gets
        NotCreatorError and nothing is removed.
        """
        decision = await self._store.get_decision(decision_id)
        if decision is None:
            raise InvalidStateError(decision_id)
        if requested_by != decision.creator_ref:
            logger.warning(f"Delete refused: {requested_by} did not create {decision_id}")
            raise NotCreatorError(decision_id, requested_by)

        if not await self._store.delete_decision(decision_id):
            raise InvalidStateError(decision_id)
        logger.info(f"Decision {decision_id} deleted by its creator {requested_by}")

    # =========================================================================
    # VOTING
    # =========================================================================

    async def cast_vote(
        self,
        decision_id: UUID,
        user_id: str,
        value: VoteValue | str,
    ) -> VoteResult:
        vote_value = parse_vote_value(value)
        if not user_id:
            raise ValidationError("user id is required", field="user_id")

        decision = await self._store.get_decision(decision_id)
        if decision is None:
            raise InvalidStateError(decision_id)
        if not decision.is_active:
            logger.warning(f"Vote refused: decision {decision_id} is {decision.status.value}")
            raise InvalidStateError(decision_id, decision.status.value)

        if deadline_passed(decision.deadline, today(self._clock)):
            # Close it out instead of accepting a late ballot
            result = await self._lifecycle.evaluate(decision_id)
            logger.warning(f"Vote refused: decision {decision_id} deadline has passed")
            raise InvalidStateError(decision_id, result.status.value)

        if not await self._store.is_eligible_voter(decision_id, user_id):
            logger.warning(f"Vote refused: {user_id} is not a voter on {decision_id}")
            raise NotEligibleError(decision_id, user_id)

        # The write re-checks the status atomically in case the decision
        # closed after the read above
        recorded = await self._store.record_vote(
            decision_id, user_id, vote_value, only_if_active=True
        )
        if recorded is None:
            raise InvalidStateError(decision_id)

        result = await self._lifecycle.evaluate(decision_id)
        return VoteResult(
            decision_id=decision_id,
            user_id=user_id,
            value=vote_value,
            status=result.status,
            outcome=result.outcome,
            changed=result.changed,
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_decision_with_stats(self, decision_id: UUID) -> DecisionStats | None:
        snapshot = await self._store.get_decision_snapshot(decision_id)
        if snapshot is None:
            return None

        decision = snapshot.decision
        values = [vote.value for vote in snapshot.votes]
        return DecisionStats(
            decision=decision,
            voter_count=len(snapshot.voters),
            summary=VoteSummary.from_votes(snapshot.votes),
            missing_voter_ids=sorted(v.user_id for v in snapshot.missing_voters),
            outcome=outcome_for(snapshot),
            deadlock=check_deadlock(values, decision.success_policy, len(snapshot.voters)),
            days_until_deadline=days_until(decision.deadline, today(self._clock)),
            voter_ids=sorted(v.user_id for v in snapshot.voters),
        )

    async def list_active(self) -> list[DecisionRecord]:
        return await self._store.list_active_decisions()

    async def get_missing_voters(self, decision_id: UUID) -> list[str]:
        if await self._store.get_decision(decision_id) is None:
            raise InvalidStateError(decision_id)
        return sorted(v.user_id for v in await self._store.get_missing_voters(decision_id))

