"""SQLAlchemy ORM Models for the consensus ledger."""

from .base import Base, TimestampMixin, UUIDMixin
from .models import (
    # Enums
    DecisionStatus,
    SuccessPolicy,
    VoteValue,
    # Entities
    Decision,
    Vote,
    Voter,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    # Enums
    "DecisionStatus",
    "SuccessPolicy",
    "VoteValue",
    # Entities
    "Decision",
    "Voter",
    "Vote",
]
