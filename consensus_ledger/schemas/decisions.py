"""Pydantic schemas for decisions, voters, votes and reminder passes."""

from datetime import date, datetime
from uuid import UUID

from pydantic import Field

from ..models import DecisionStatus, SuccessPolicy, VoteValue
from .base import LedgerBaseModel


# =============================================================================
# REQUESTS
# =============================================================================


class DecisionCreate(LedgerBaseModel):
    """Request to open a new decision for voting."""

    name: str = Field(..., min_length=1, max_length=200)
    proposal: str = Field(..., min_length=1)
    success_policy: SuccessPolicy
    channel_ref: str = Field(..., min_length=1)
    creator_ref: str = Field(..., min_length=1)
    deadline: date | None = Field(
        default=None,
        description="Last day votes are accepted (defaults to 5 business days out)",
    )
    voter_ids: list[str] = Field(
        default_factory=list,
        description="Users whose votes are required",
    )


class VotersAdd(LedgerBaseModel):
    user_ids: list[str] = Field(..., min_length=1)


class MessageUpdate(LedgerBaseModel):
    message_ref: str = Field(..., min_length=1)


class VoteCreate(LedgerBaseModel):
    """A voter's choice."""

    user_id: str = Field(..., min_length=1)
    value: VoteValue


# =============================================================================
# RESPONSES
# =============================================================================


class DecisionResponse(LedgerBaseModel):
    id: UUID
    name: str
    proposal: str
    success_policy: SuccessPolicy
    deadline: date
    channel_ref: str
    creator_ref: str
    message_ref: str | None = None
    status: DecisionStatus
    created_at: datetime
    updated_at: datetime


class VotersAddedResponse(LedgerBaseModel):
    added: int


class OutcomeResponse(LedgerBaseModel):
    """Verdict plus the numbers behind it."""

    passed: bool
    yes_count: int
    no_count: int
    abstain_count: int
    total_votes: int
    percentage: float
    reason: str
    policy: SuccessPolicy
    required_voter_count: int
    missing_votes: int


class DeadlockResponse(LedgerBaseModel):
    is_deadlocked: bool
    reason: str
    remaining_votes: int


class VoteSummaryResponse(LedgerBaseModel):
    total: int
    yes: int
    no: int
    abstain: int


class VoteResponse(LedgerBaseModel):
    decision_id: UUID
    user_id: str
    value: VoteValue
    status: DecisionStatus
    outcome: OutcomeResponse


class DecisionStatsResponse(LedgerBaseModel):
    """Decision merged with its tally."""

    decision: DecisionResponse
    voter_count: int
    voter_ids: list[str]
    summary: VoteSummaryResponse
    missing_voter_ids: list[str]
    outcome: OutcomeResponse
    deadlock: DeadlockResponse
    days_until_deadline: int


class MissingVotersResponse(LedgerBaseModel):
    decision_id: UUID
    user_ids: list[str]


class ReminderFailureResponse(LedgerBaseModel):
    decision_id: UUID
    user_id: str
    error: str


class ReminderPassResponse(LedgerBaseModel):
    """Result of one reminder pass."""

    decisions_processed: int
    total_reminders_sent: int
    total_failed: int
    per_decision_errors: dict[str, list[str]]
    failures: list[ReminderFailureResponse]
