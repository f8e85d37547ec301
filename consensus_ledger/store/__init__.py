"""Entity Store: persistence for decisions, voters and votes."""

from .base import (
    DecisionRecord,
    DecisionSnapshot,
    EntityStore,
    NewDecision,
    VoteRecord,
    VoterRecord,
    VoteSummary,
    missing_voters,
    parse_success_policy,
    parse_vote_value,
)
from .memory import MemoryEntityStore
from .sql import SqlEntityStore

__all__ = [
    "EntityStore",
    "MemoryEntityStore",
    "SqlEntityStore",
    "NewDecision",
    "DecisionRecord",
    "DecisionSnapshot",
    "VoterRecord",
    "VoteRecord",
    "VoteSummary",
    "missing_voters",
    "parse_success_policy",
    "parse_vote_value",
]
