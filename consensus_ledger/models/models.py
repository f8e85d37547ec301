"""SQLAlchemy ORM models for decisions, voters and votes."""

from datetime import date, datetime
from enum import Enum as PyEnum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDMixin


# =============================================================================
# ENUMS
# =============================================================================


class SuccessPolicy(str, PyEnum):
    """Threshold rule used to decide whether a decision passes."""
    SIMPLE_MAJORITY = "simple_majority"
    SUPER_MAJORITY = "super_majority"
    UNANIMOUS = "unanimous"


class DecisionStatus(str, PyEnum):
    ACTIVE = "active"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"  # Deadline passed before resolution

    @property
    def is_terminal(self) -> bool:
        return self is not DecisionStatus.ACTIVE


class VoteValue(str, PyEnum):
    YES = "yes"
    NO = "no"
    ABSTAIN = "abstain"


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


# =============================================================================
# DECISION MODELS
# =============================================================================


class Decision(Base, UUIDMixin, TimestampMixin):
    """A proposal under vote. Retained as an audit record once closed."""

    __tablename__ = "decisions"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    proposal: Mapped[str] = mapped_column(Text, nullable=False)
    success_policy: Mapped[SuccessPolicy] = mapped_column(
        Enum(SuccessPolicy, name="success_policy", values_callable=_enum_values),
        nullable=False,
    )
    deadline: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Last calendar day (inclusive) on which votes are accepted"
    )
    channel_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    creator_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    message_ref: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Reference to the announcement message, set once posted"
    )
    status: Mapped[DecisionStatus] = mapped_column(
        Enum(DecisionStatus, name="decision_status", values_callable=_enum_values),
        default=DecisionStatus.ACTIVE,
        nullable=False,
    )

    # Relationships
    voters: Mapped[list["Voter"]] = relationship(
        back_populates="decision",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    votes: Mapped[list["Vote"]] = relationship(
        back_populates="decision",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_decisions_status_deadline", "status", "deadline"),
        Index("idx_decisions_channel", "channel_ref"),
    )


class Voter(Base, UUIDMixin):
    """A user registered as required to vote on a decision."""

    __tablename__ = "voters"

    decision_id: Mapped[UUID] = mapped_column(
        ForeignKey("decisions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    # Relationships
    decision: Mapped["Decision"] = relationship(back_populates="voters")

    __table_args__ = (
        UniqueConstraint("decision_id", "user_id", name="uq_voters_decision_user"),
        Index("idx_voters_decision", "decision_id"),
    )


class Vote(Base, UUIDMixin):
    """A user's current ballot on a decision (last write wins)."""

    __tablename__ = "votes"

    decision_id: Mapped[UUID] = mapped_column(
        ForeignKey("decisions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[VoteValue] = mapped_column(
        Enum(VoteValue, name="vote_value", values_callable=_enum_values),
        nullable=False,
    )
    voted_at: Mapped[datetime] = mapped_column(nullable=False)

    # Relationships
    decision: Mapped["Decision"] = relationship(back_populates="votes")

    __table_args__ = (
        # One vote per user per decision; re-votes update this row
        UniqueConstraint("decision_id", "user_id", name="uq_votes_decision_user"),
        Index("idx_votes_decision", "decision_id"),
    )
