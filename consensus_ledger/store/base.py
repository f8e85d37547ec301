"""
Entity Store: storage-agnostic interface over decisions, voters and votes.

Backends implement the capability set (get / put / query / update by key and
by decision-id index) however their storage engine allows, but every backend
must uphold the same guarantees:

1. (decision, user) is unique for both voters and votes
2. record_vote is an atomic insert-or-replace (last committed write wins)
3. add_voters applies the whole batch or nothing
4. snapshots of one decision never observe a partially applied write
5. reads of a missing decision return None / empty, updates are no-ops
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID

from ..core.exceptions import ValidationError
from ..models import DecisionStatus, SuccessPolicy, VoteValue


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class NewDecision:
    """Input for creating a new decision."""
    name: str
    proposal: str
    success_policy: SuccessPolicy | str
    deadline: date
    channel_ref: str
    creator_ref: str


@dataclass
class DecisionRecord:
    """A decision as seen across the store boundary."""
    id: UUID
    name: str
    proposal: str
    success_policy: SuccessPolicy
    deadline: date
    channel_ref: str
    creator_ref: str
    message_ref: str | None
    status: DecisionStatus
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status == DecisionStatus.ACTIVE


@dataclass
class VoterRecord:
    decision_id: UUID
    user_id: str
    required: bool
    created_at: datetime


@dataclass
class VoteRecord:
    decision_id: UUID
    user_id: str
    value: VoteValue
    voted_at: datetime


@dataclass
class VoteSummary:
    """Vote counts for one decision."""
    total: int = 0
    yes: int = 0
    no: int = 0
    abstain: int = 0

    @classmethod
    def from_votes(cls, votes: Iterable[VoteRecord]) -> "VoteSummary":
        summary = cls()
        for vote in votes:
            summary.total += 1
            if vote.value == VoteValue.YES:
                summary.yes += 1
            elif vote.value == VoteValue.NO:
                summary.no += 1
            else:
                summary.abstain += 1
        return summary


@dataclass
class DecisionSnapshot:
    """A decision with its voters and votes, read as one consistent unit."""
    decision: DecisionRecord
    voters: list[VoterRecord] = field(default_factory=list)
    votes: list[VoteRecord] = field(default_factory=list)

    @property
    def missing_voters(self) -> list[VoterRecord]:
        return missing_voters(self.voters, self.votes)

    @property
    def all_voted(self) -> bool:
        """True once every registered voter has a vote (never for zero voters)."""
        return bool(self.voters) and not self.missing_voters


# =============================================================================
# SHARED HELPERS
# =============================================================================


def missing_voters(
    voters: Iterable[VoterRecord],
    votes: Iterable[VoteRecord],
) -> list[VoterRecord]:
    """Voters minus users present in the vote set, by user id."""
    voted = {vote.user_id for vote in votes}
    return [voter for voter in voters if voter.user_id not in voted]


def parse_success_policy(value: SuccessPolicy | str) -> SuccessPolicy:
    try:
        return SuccessPolicy(value)
    except ValueError:
        allowed = ", ".join(p.value for p in SuccessPolicy)
        raise ValidationError(
            f"Unrecognized success policy {value!r}; expected one of: {allowed}",
            field="success_policy",
        )


def parse_vote_value(value: VoteValue | str) -> VoteValue:
    try:
        return VoteValue(value)
    except ValueError:
        allowed = ", ".join(v.value for v in VoteValue)
        raise ValidationError(
            f"Unrecognized vote value {value!r}; expected one of: {allowed}",
            field="value",
        )


def validate_new_decision(fields: NewDecision) -> SuccessPolicy:
    """Validate creation input before any write; returns the parsed policy."""
    for name in ("name", "proposal", "channel_ref", "creator_ref"):
        value = getattr(fields, name)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{name} is required", field=name)
    if not isinstance(fields.deadline, date):
        raise ValidationError("deadline must be a calendar date", field="deadline")
    return parse_success_policy(fields.success_policy)


def unique_user_ids(user_ids: Iterable[str]) -> list[str]:
    """Drop blanks and duplicates while keeping first-seen order."""
    seen: dict[str, None] = {}
    for user_id in user_ids:
        if user_id and user_id not in seen:
            seen[user_id] = None
    return list(seen)


# =============================================================================
# ENTITY STORE
# =============================================================================


class EntityStore(ABC):
    """Durable, consistent CRUD over Decision / Voter / Vote."""

    @abstractmethod
    async def create_decision(self, fields: NewDecision) -> UUID:
        """Assign an id, set status active and timestamps; ValidationError on bad input."""

    @abstractmethod
    async def add_voters(self, decision_id: UUID, user_ids: Iterable[str]) -> int:
        """Register voters atomically, skipping existing ones. Returns rows added."""

    @abstractmethod
    async def get_decision(self, decision_id: UUID) -> DecisionRecord | None:
        ...

    @abstractmethod
    async def get_voters(self, decision_id: UUID) -> list[VoterRecord]:
        ...

    @abstractmethod
    async def record_vote(
        self,
        decision_id: UUID,
        user_id: str,
        value: VoteValue | str,
        *,
        only_if_active: bool = False,
    ) -> VoteRecord | None:
        """Insert-or-replace by (decision, user); always refreshes voted_at.

        Returns None when the decision does not exist. With only_if_active
        the write happens atomically with a status check and raises
        InvalidStateError when the decision is no longer active.
        """

    @abstractmethod
    async def get_votes(self, decision_id: UUID) -> list[VoteRecord]:
        ...

    @abstractmethod
    async def get_decision_snapshot(self, decision_id: UUID) -> DecisionSnapshot | None:
        """Decision, voters and votes from one consistent read."""

    @abstractmethod
    async def update_decision_message_ref(self, decision_id: UUID, ref: str) -> bool:
        ...

    @abstractmethod
    async def update_decision_status(
        self,
        decision_id: UUID,
        status: DecisionStatus,
        *,
        only_if_active: bool = False,
    ) -> bool:
        """Set status and bump updated_at. Returns whether a row changed.

        With only_if_active the update is a compare-and-set against the
        active status, so a terminal status can never be overwritten.
        """

    @abstractmethod
    async def list_active_decisions(self) -> list[DecisionRecord]:
        """Active decisions ordered by ascending deadline."""

    @abstractmethod
    async def delete_decision(self, decision_id: UUID) -> bool:
        """Physically remove a decision, cascading to its voters and votes."""

    async def get_missing_voters(self, decision_id: UUID) -> list[VoterRecord]:
        snapshot = await self.get_decision_snapshot(decision_id)
        if snapshot is None:
            return []
        return snapshot.missing_voters

    async def get_vote_summary(self, decision_id: UUID) -> VoteSummary:
        return VoteSummary.from_votes(await self.get_votes(decision_id))

    async def is_eligible_voter(self, decision_id: UUID, user_id: str) -> bool:
        voters = await self.get_voters(decision_id)
        return any(voter.user_id == user_id for voter in voters)
