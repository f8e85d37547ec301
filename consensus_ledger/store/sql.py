"""
SQLAlchemy backend for the Entity Store.

Every operation runs in its own transaction. Uniqueness of (decision, user)
is enforced by unique constraints; record_vote and add_voters rely on the
dialect's native INSERT ... ON CONFLICT so concurrent writers never race
through a read-then-write window. Supported dialects: PostgreSQL (asyncpg)
and SQLite (aiosqlite).
"""

import logging
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import String, cast, delete, literal, select, union_all, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import Clock, utc_now
from ..core.database import session_scope
from ..core.exceptions import InvalidStateError, StorageError
from ..models import Decision, DecisionStatus, Vote, Voter, VoteValue
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


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we write is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(decision: Decision) -> DecisionRecord:
    return DecisionRecord(
        id=decision.id,
        name=decision.name,
        proposal=decision.proposal,
        success_policy=decision.success_policy,
        deadline=decision.deadline,
        channel_ref=decision.channel_ref,
        creator_ref=decision.creator_ref,
        message_ref=decision.message_ref,
        status=decision.status,
        created_at=_aware(decision.created_at),
        updated_at=_aware(decision.updated_at),
    )


class SqlEntityStore(EntityStore):
    """Entity Store backed by a relational database."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utc_now,
    ):
        self._session_factory = session_factory
        self._clock = clock

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """Run one store operation atomically, translating driver errors."""
        try:
            async with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Database error during {operation}, transaction rolled back: {e}")
            raise StorageError(f"{operation} failed: {e}") from e

    @staticmethod
    def _insert(session: AsyncSession, model):
        dialect = session.bind.dialect.name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        raise StorageError(f"Unsupported database dialect: {dialect}")

    @staticmethod
    async def _exists(session: AsyncSession, decision_id: UUID) -> bool:
        result = await session.execute(
            select(Decision.id).where(Decision.id == decision_id)
        )
        return result.scalar_one_or_none() is not None

    # =========================================================================
    # DECISIONS
    # =========================================================================

    async def create_decision(self, fields: NewDecision) -> UUID:
        policy = validate_new_decision(fields)
        now = self._clock()
        decision = Decision(
            id=uuid4(),
            name=fields.name,
            proposal=fields.proposal,
            success_policy=policy,
            deadline=fields.deadline,
            channel_ref=fields.channel_ref,
            creator_ref=fields.creator_ref,
            status=DecisionStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        async with self._transaction("create_decision") as session:
            session.add(decision)
            await session.flush()

        logger.info(f"Decision created: {decision.id} ({fields.name})")
        return decision.id

    async def get_decision(self, decision_id: UUID) -> DecisionRecord | None:
        async with self._transaction("get_decision") as session:
            decision = await session.get(Decision, decision_id)
            return _to_record(decision) if decision else None

    async def update_decision_message_ref(self, decision_id: UUID, ref: str) -> bool:
        async with self._transaction("update_decision_message_ref") as session:
            result = await session.execute(
                update(Decision)
                .where(Decision.id == decision_id)
                .values(message_ref=ref, updated_at=self._clock())
            )
        return result.rowcount > 0

    async def update_decision_status(
        self,
        decision_id: UUID,
        status: DecisionStatus,
        *,
        only_if_active: bool = False,
    ) -> bool:
        query = update(Decision).where(Decision.id == decision_id)
        if only_if_active:
            query = query.where(Decision.status == DecisionStatus.ACTIVE)

        async with self._transaction("update_decision_status") as session:
            result = await session.execute(
                query.values(status=DecisionStatus(status), updated_at=self._clock())
            )

        changed = result.rowcount > 0
        if changed:
            logger.info(f"Decision {decision_id} status set to {DecisionStatus(status).value}")
        return changed

    async def list_active_decisions(self) -> list[DecisionRecord]:
        async with self._transaction("list_active_decisions") as session:
            result = await session.execute(
                select(Decision)
                .where(Decision.status == DecisionStatus.ACTIVE)
                .order_by(Decision.deadline.asc(), Decision.created_at.asc())
            )
            return [_to_record(d) for d in result.scalars().all()]

    async def delete_decision(self, decision_id: UUID) -> bool:
        async with self._transaction("delete_decision") as session:
            # Voters and votes go with it via ON DELETE CASCADE
            result = await session.execute(
                delete(Decision).where(Decision.id == decision_id)
            )
        deleted = result.rowcount > 0
        if deleted:
            logger.info(f"Decision {decision_id} deleted with its voters and votes")
        return deleted

    # =========================================================================
    # VOTERS
    # =========================================================================

    async def add_voters(self, decision_id: UUID, user_ids: Iterable[str]) -> int:
        candidates = unique_user_ids(user_ids)
        if not candidates:
            return 0

        now = self._clock()
        async with self._transaction("add_voters") as session:
            if not await self._exists(session, decision_id):
                return 0

            # One statement for the whole batch; users already registered,
            # including by a concurrent caller, are skipped by the constraint
            stmt = self._insert(session, Voter).values([
                {
                    "id": uuid4(),
                    "decision_id": decision_id,
                    "user_id": user_id,
                    "required": True,
                    "created_at": now,
                }
                for user_id in candidates
            ]).on_conflict_do_nothing(index_elements=["decision_id", "user_id"])
            result = await session.execute(stmt)

        added = max(result.rowcount, 0)
        logger.info(f"Voters added to decision {decision_id}: {added}")
        return added

    async def get_voters(self, decision_id: UUID) -> list[VoterRecord]:
        async with self._transaction("get_voters") as session:
            result = await session.execute(
                select(Voter).where(Voter.decision_id == decision_id)
            )
            return [
                VoterRecord(
                    decision_id=v.decision_id,
                    user_id=v.user_id,
                    required=v.required,
                    created_at=_aware(v.created_at),
                )
                for v in result.scalars().all()
            ]

    async def is_eligible_voter(self, decision_id: UUID, user_id: str) -> bool:
        async with self._transaction("is_eligible_voter") as session:
            result = await session.execute(
                select(Voter.id).where(
                    Voter.decision_id == decision_id,
                    Voter.user_id == user_id,
                )
            )
            return result.scalar_one_or_none() is not None

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
        voted_at = self._clock()

        async with self._transaction("record_vote") as session:
            if only_if_active:
                # Touching the decision row takes its write lock, so a
                # concurrent status change either commits first and is seen
                # here or waits until this vote is committed
                guard = await session.execute(
                    update(Decision)
                    .where(
                        Decision.id == decision_id,
                        Decision.status == DecisionStatus.ACTIVE,
                    )
                    .values(updated_at=Decision.updated_at)
                )
                if guard.rowcount == 0:
                    decision = await session.get(Decision, decision_id)
                    if decision is None:
                        return None
                    logger.warning(
                        f"Vote refused: decision {decision_id} is {decision.status.value}"
                    )
                    raise InvalidStateError(decision_id, decision.status.value)
            elif not await self._exists(session, decision_id):
                return None

            stmt = self._insert(session, Vote).values(
                id=uuid4(),
                decision_id=decision_id,
                user_id=user_id,
                value=vote_value,
                voted_at=voted_at,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["decision_id", "user_id"],
                set_={"value": stmt.excluded["value"], "voted_at": stmt.excluded["voted_at"]},
            )
            await session.execute(stmt)

        logger.info(f"Vote recorded: decision={decision_id} user={user_id} value={vote_value.value}")
        return VoteRecord(
            decision_id=decision_id,
            user_id=user_id,
            value=vote_value,
            voted_at=voted_at,
        )

    async def get_votes(self, decision_id: UUID) -> list[VoteRecord]:
        async with self._transaction("get_votes") as session:
            result = await session.execute(
                select(Vote).where(Vote.decision_id == decision_id)
            )
            return [
                VoteRecord(
                    decision_id=v.decision_id,
                    user_id=v.user_id,
                    value=v.value,
                    voted_at=_aware(v.voted_at),
                )
                for v in result.scalars().all()
            ]

    async def get_decision_snapshot(self, decision_id: UUID) -> DecisionSnapshot | None:
        async with self._transaction("get_decision_snapshot") as session:
            decision = await session.get(Decision, decision_id)
            if decision is None:
                return None

            # Voters and votes come back from a single statement so the pair
            # is one consistent read on every backend
            voters_q = select(
                literal("voter").label("kind"),
                Voter.user_id.label("user_id"),
                cast(None, String).label("value"),
                Voter.created_at.label("at"),
            ).where(Voter.decision_id == decision_id)
            votes_q = select(
                literal("vote").label("kind"),
                Vote.user_id.label("user_id"),
                cast(Vote.value, String).label("value"),
                Vote.voted_at.label("at"),
            ).where(Vote.decision_id == decision_id)
            rows = (await session.execute(union_all(voters_q, votes_q))).all()

        snapshot = DecisionSnapshot(decision=_to_record(decision))
        for kind, user_id, value, at in rows:
            if kind == "voter":
                snapshot.voters.append(VoterRecord(
                    decision_id=decision_id,
                    user_id=user_id,
                    required=True,
                    created_at=_aware(at),
                ))
            else:
                snapshot.votes.append(VoteRecord(
                    decision_id=decision_id,
                    user_id=user_id,
                    value=VoteValue(value),
                    voted_at=_aware(at),
                ))
        return snapshot
