"""Consensus Ledger API Schemas.

Schemas are organized by domain:
- base: shared configuration and error bodies
- decisions: decisions, voters, votes, outcomes and reminder passes
"""

from .base import ErrorDetail, ErrorResponse, LedgerBaseModel
from .decisions import (
    # Requests
    DecisionCreate,
    MessageUpdate,
    VoteCreate,
    VotersAdd,
    # Responses
    DeadlockResponse,
    DecisionResponse,
    DecisionStatsResponse,
    MissingVotersResponse,
    OutcomeResponse,
    ReminderFailureResponse,
    ReminderPassResponse,
    VoteResponse,
    VotersAddedResponse,
    VoteSummaryResponse,
)

__all__ = [
    # Base
    "LedgerBaseModel",
    "ErrorDetail",
    "ErrorResponse",
    # Requests
    "DecisionCreate",
    "VotersAdd",
    "MessageUpdate",
    "VoteCreate",
    # Responses
    "DecisionResponse",
    "VotersAddedResponse",
    "OutcomeResponse",
    "DeadlockResponse",
    "VoteSummaryResponse",
    "VoteResponse",
    "DecisionStatsResponse",
    "MissingVotersResponse",
    "ReminderFailureResponse",
    "ReminderPassResponse",
]
