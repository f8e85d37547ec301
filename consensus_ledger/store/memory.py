"""In-process key/value backend for the Entity Store.

Entities live in dictionaries keyed by decision id and by
(decision_id, user_id). One asyncio.Lock per decision partitions writers:
operations on different decisions never contend, while writes to the same
decision (and therefore the same vote key) serialize.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import replace
from uuid import UUID, uuid4

from ..core.clock import Clock, utc_now
from ..core.exceptions import InvalidStateError
from ..models import DecisionStatus, VoteValue
from .base import (
    DecisionRecord,
    DecisionSnapshot,
    EntityStore,
    NewDecision,
    VoteRecord,
    VoterRecord,
    parse_vote_value,
    unique_user_ids,
    validate_new_decision,
)

logger = logging.getLogger(__name__)


class MemoryEntityStore(EntityStore):
    """Entity Store backed by process memory."""

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock
        self._decisions: dict[UUID, DecisionRecord] = {}
        self._voters: dict[UUID, dict[str, VoterRecord]] = {}
        self._votes: dict[UUID, dict[str, VoteRecord]] = {}
        self._locks: dict[UUID, asyncio.Lock] = {}

    def _lock(self, decision_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(decision_id)
        if lock is None:
            lock = self._locks[decision_id] = asyncio.Lock()
        return lock

    def _known(self, decision_id: UUID) -> bool:
        # Checked before _lock so unknown ids never get a lock entry
        return decision_id in self._decisions

    # =========================================================================
    # DECISIONS
    # =========================================================================

    async def create_decision(self, fields: NewDecision) -> UUID:
        policy = validate_new_decision(fields)
        now = self._clock()
        decision_id = uuid4()

        async with self._lock(decision_id):
            self._decisions[decision_id] = DecisionRecord(
                id=decision_id,
                name=fields.name,
                proposal=fields.proposal,
                success_policy=policy,
                deadline=fields.deadline,
                channel_ref=fields.channel_ref,
                creator_ref=fields.creator_ref,
                message_ref=None,
                status=DecisionStatus.ACTIVE,
                created_at=now,
                updated_at=now,
            )
            self._voters[decision_id] = {}
            self._votes[decision_id] = {}

        logger.info(f"Decision created: {decision_id} ({fields.name})")
        return decision_id

    async def get_decision(self, decision_id: UUID) -> DecisionRecord | None:
        decision = self._decisions.get(decision_id)
        return replace(decision) if decision else None

    async def update_decision_message_ref(self, decision_id: UUID, ref: str) -> bool:
        if not self._known(decision_id):
            return False
        async with self._lock(decision_id):
            decision = self._decisions.get(decision_id)
            if decision is None:
                return False
            decision.message_ref = ref
            decision.updated_at = self._clock()
        return True

    async def update_decision_status(
        self,
        decision_id: UUID,
        status: DecisionStatus,
        *,
        only_if_active: bool = False,
    ) -> bool:
        if not self._known(decision_id):
            return False
        async with self._lock(decision_id):
            decision = self._decisions.get(decision_id)
            if decision is None:
                return False
            if only_if_active and decision.status != DecisionStatus.ACTIVE:
                return False
            decision.status = DecisionStatus(status)
            decision.updated_at = self._clock()
        logger.info(f"Decision {decision_id} status set to {decision.status.value}")
        return True

    async def list_active_decisions(self) -> list[DecisionRecord]:
        active = [
            replace(d) for d in self._decisions.values()
            if d.status == DecisionStatus.ACTIVE
        ]
        active.sort(key=lambda d: (d.deadline, d.created_at))
        return active

    async def delete_decision(self, decision_id: UUID) -> bool:
        if not self._known(decision_id):
            return False
        async with self._lock(decision_id):
            if self._decisions.pop(decision_id, None) is None:
                return False
            self._voters.pop(decision_id, None)
            self._votes.pop(decision_id, None)
        self._locks.pop(decision_id, None)
        logger.info(f"Decision {decision_id} deleted with its voters and votes")
        return True

    # =========================================================================
    # VOTERS
    # =========================================================================

    async def add_voters(self, decision_id: UUID, user_ids: Iterable[str]) -> int:
        candidates = unique_user_ids(user_ids)
        if not self._known(decision_id):
            return 0
        async with self._lock(decision_id):
            registry = self._voters.get(decision_id)
            if registry is None:
                return 0
            now = self._clock()
            # Build the whole batch first so the registry changes in one step
            new_rows = {
                user_id: VoterRecord(
                    decision_id=decision_id,
                    user_id=user_id,
                    required=True,
                    created_at=now,
                )
                for user_id in candidates
                if user_id not in registry
            }
            registry.update(new_rows)

        logger.info(f"Voters added to decision {decision_id}: {len(new_rows)}")
        return len(new_rows)

    async def get_voters(self, decision_id: UUID) -> list[VoterRecord]:
        return [replace(v) for v in self._voters.get(decision_id, {}).values()]

    # =========================================================================
    # VOTES
    # =========================================================================

    async def record_vote(
        self,
        decision_id: UUID,
        user_id: str,
        value: VoteValue | str,
        *,
        only_if_active: bool = False,
    ) -> VoteRecord | None:
        vote_value = parse_vote_value(value)
        if not self._known(decision_id):
            return None
        async with self._lock(decision_id):
            decision = self._decisions.get(decision_id)
            votes = self._votes.get(decision_id)
            if decision is None or votes is None:
                return None
            if only_if_active and decision.status != DecisionStatus.ACTIVE:
                raise InvalidStateError(decision_id, decision.status.value)
            vote = VoteRecord(
                decision_id=decision_id,
                user_id=user_id,
                value=vote_value,
                voted_at=self._clock(),
            )
            votes[user_id] = vote

        logger.info(f"Vote recorded: decision={decision_id} user={user_id} value={vote_value.value}")
        return replace(vote)

    async def get_votes(self, decision_id: UUID) -> list[VoteRecord]:
        return [replace(v) for v in self._votes.get(decision_id, {}).values()]

    async def get_decision_snapshot(self, decision_id: UUID) -> DecisionSnapshot | None:
        if not self._known(decision_id):
            return None
        async with self._lock(decision_id):
            decision = self._decisions.get(decision_id)
            if decision is None:
                return None
            return DecisionSnapshot(
                decision=replace(decision),
                voters=[replace(v) for v in self._voters.get(decision_id, {}).values()],
                votes=[replace(v) for v in self._votes.get(decision_id, {}).values()],
            )
