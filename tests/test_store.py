"""
Tests for the Entity Store, run against both the memory and SQL backends.

These tests verify:
1. CREATE: validation before any write, active status, timestamps
2. VOTERS: batch registration skips existing users
3. VOTES: one row per (decision, user), last write wins
4. QUERIES: missing voters, summaries, ordering, not-found results
"""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import text

from consensus_ledger.core import (
    InvalidStateError,
    Settings,
    StorageError,
    ValidationError,
    close_db,
    create_engine,
    create_session_factory,
    init_db,
)
from consensus_ledger.models import DecisionStatus, SuccessPolicy, VoteValue
from consensus_ledger.store import EntityStore, MemoryEntityStore, SqlEntityStore


# =============================================================================
# TEST: CREATE DECISION
# =============================================================================


class TestCreateDecision:
    """Tests for create_decision."""

    async def test_new_decision_is_active(self, store: EntityStore, decision_fields, clock):
        decision_id = await store.create_decision(decision_fields(policy="unanimous"))

        decision = await store.get_decision(decision_id)
        assert decision is not None
        assert decision.status == DecisionStatus.ACTIVE
        assert decision.success_policy == SuccessPolicy.UNANIMOUS
        assert decision.message_ref is None
        assert decision.created_at == clock.now
        assert decision.updated_at == clock.now

    async def test_unknown_policy_writes_nothing(self, store: EntityStore, decision_fields):
        with pytest.raises(ValidationError) as exc_info:
            await store.create_decision(decision_fields(policy="plurality"))

        assert exc_info.value.field == "success_policy"
        assert await store.list_active_decisions() == []

    @pytest.mark.parametrize("field", ["name", "proposal", "channel_ref", "creator_ref"])
    async def test_empty_required_field_rejected(self, store: EntityStore, decision_fields, field):
        fields = decision_fields()
        setattr(fields, field, "  ")

        with pytest.raises(ValidationError) as exc_info:
            await store.create_decision(fields)
        assert exc_info.value.field == field

    async def test_unknown_id_is_not_found(self, store: EntityStore):
        missing = uuid4()

        assert await store.get_decision(missing) is None
        assert await store.get_decision_snapshot(missing) is None
        assert await store.get_voters(missing) == []
        assert await store.get_votes(missing) == []
        assert await store.get_missing_voters(missing) == []

    async def test_updates_on_unknown_id_are_noops(self, store: EntityStore):
        missing = uuid4()

        assert await store.update_decision_message_ref(missing, "M-1") is False
        assert await store.update_decision_status(missing, DecisionStatus.APPROVED) is False
        assert await store.add_voters(missing, ["U-1"]) == 0
        assert await store.record_vote(missing, "U-1", "yes") is None


# =============================================================================
# TEST: UPDATES
# =============================================================================


class TestUpdates:
    """Partial updates bump updated_at; status writes can be conditional."""

    async def test_message_ref_bumps_updated_at(self, store: EntityStore, decision_fields, clock):
        decision_id = await store.create_decision(decision_fields())
        clock.advance(minutes=5)

        assert await store.update_decision_message_ref(decision_id, "M-123") is True

        decision = await store.get_decision(decision_id)
        assert decision.message_ref == "M-123"
        assert decision.updated_at == clock.now
        assert decision.created_at < decision.updated_at

    async def test_conditional_status_write_only_from_active(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())

        assert await store.update_decision_status(
            decision_id, DecisionStatus.APPROVED, only_if_active=True
        ) is True
        assert await store.update_decision_status(
            decision_id, DecisionStatus.EXPIRED, only_if_active=True
        ) is False

        decision = await store.get_decision(decision_id)
        assert decision.status == DecisionStatus.APPROVED

    async def test_returned_records_are_copies(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())

        decision = await store.get_decision(decision_id)
        decision.status = DecisionStatus.REJECTED

        assert (await store.get_decision(decision_id)).status == DecisionStatus.ACTIVE


# =============================================================================
# TEST: VOTERS
# =============================================================================


class TestVoters:
    """Tests for add_voters and eligibility."""

    async def test_duplicates_are_skipped(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())

        assert await store.add_voters(decision_id, ["U-1", "U-2", "U-1", ""]) == 2
        assert await store.add_voters(decision_id, ["U-2", "U-3"]) == 1

        voters = await store.get_voters(decision_id)
        assert sorted(v.user_id for v in voters) == ["U-1", "U-2", "U-3"]
        assert all(v.required for v in voters)

    async def test_concurrent_registration_counts_each_user_once(
        self, store: EntityStore, decision_fields
    ):
        decision_id = await store.create_decision(decision_fields())

        counts = await asyncio.gather(
            *(store.add_voters(decision_id, ["U-1"]) for _ in range(3))
        )

        assert sum(counts) == 1
        assert [v.user_id for v in await store.get_voters(decision_id)] == ["U-1"]

    async def test_eligibility_follows_registry(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())
        await store.add_voters(decision_id, ["U-1"])

        assert await store.is_eligible_voter(decision_id, "U-1") is True
        assert await store.is_eligible_voter(decision_id, "U-9") is False

    async def test_voters_are_scoped_per_decision(self, store: EntityStore, decision_fields):
        first = await store.create_decision(decision_fields(name="First"))
        second = await store.create_decision(decision_fields(name="Second"))
        await store.add_voters(first, ["U-1"])

        assert await store.is_eligible_voter(second, "U-1") is False


# =============================================================================
# TEST: VOTES
# =============================================================================


class TestVotes:
    """One row per (decision, user); the latest write wins."""

    async def test_revote_replaces_value_and_timestamp(self, store: EntityStore, decision_fields, clock):
        decision_id = await store.create_decision(decision_fields())
        await store.add_voters(decision_id, ["U-1"])

        first = await store.record_vote(decision_id, "U-1", "yes")
        clock.advance(seconds=30)
        second = await store.record_vote(decision_id, "U-1", VoteValue.NO)

        votes = await store.get_votes(decision_id)
        assert len(votes) == 1
        assert votes[0].value == VoteValue.NO
        assert votes[0].voted_at == second.voted_at
        assert votes[0].voted_at > first.voted_at

    async def test_same_value_still_refreshes_timestamp(self, store: EntityStore, decision_fields, clock):
        decision_id = await store.create_decision(decision_fields())
        await store.record_vote(decision_id, "U-1", "yes")
        clock.advance(seconds=30)
        await store.record_vote(decision_id, "U-1", "yes")

        votes = await store.get_votes(decision_id)
        assert len(votes) == 1
        assert votes[0].voted_at == clock.now

    async def test_store_does_not_check_eligibility(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())

        assert await store.record_vote(decision_id, "U-stranger", "abstain") is not None
        assert len(await store.get_votes(decision_id)) == 1

    async def test_invalid_vote_value_rejected(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())

        with pytest.raises(ValidationError):
            await store.record_vote(decision_id, "U-1", "maybe")
        assert await store.get_votes(decision_id) == []

    async def test_concurrent_writes_to_one_key_leave_one_row(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())
        values = ["yes", "no", "abstain", "yes", "no"]

        await asyncio.gather(*(store.record_vote(decision_id, "U-1", v) for v in values))

        votes = await store.get_votes(decision_id)
        assert len(votes) == 1
        assert votes[0].value.value in values

    async def test_active_only_write_refused_once_closed(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())
        await store.update_decision_status(decision_id, DecisionStatus.REJECTED)

        with pytest.raises(InvalidStateError) as exc_info:
            await store.record_vote(decision_id, "U-1", "yes", only_if_active=True)

        assert exc_info.value.status == "rejected"
        assert await store.get_votes(decision_id) == []

    async def test_active_only_write_on_open_decision(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())

        vote = await store.record_vote(decision_id, "U-1", "no", only_if_active=True)

        assert vote.value == VoteValue.NO
        assert (await store.get_decision(decision_id)).status == DecisionStatus.ACTIVE
        assert await store.record_vote(uuid4(), "U-1", "no", only_if_active=True) is None


# =============================================================================
# TEST: QUERIES
# =============================================================================


class TestQueries:
    """Tests for missing voters, summaries, snapshots and listing."""

    async def test_missing_voters_is_set_difference(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())
        await store.add_voters(decision_id, ["U-1", "U-2", "U-3"])

        before = await store.get_missing_voters(decision_id)
        assert sorted(v.user_id for v in before) == ["U-1", "U-2", "U-3"]

        await store.record_vote(decision_id, "U-2", "yes")
        # A vote from outside the registry does not shrink the missing set
        await store.record_vote(decision_id, "U-stranger", "yes")

        after = await store.get_missing_voters(decision_id)
        assert sorted(v.user_id for v in after) == ["U-1", "U-3"]

    async def test_vote_summary(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())
        for user_id, value in [("U-1", "yes"), ("U-2", "yes"), ("U-3", "no"), ("U-4", "abstain")]:
            await store.record_vote(decision_id, user_id, value)

        summary = await store.get_vote_summary(decision_id)
        assert (summary.total, summary.yes, summary.no, summary.abstain) == (4, 2, 1, 1)

    async def test_snapshot_holds_voters_and_votes(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())
        await store.add_voters(decision_id, ["U-1", "U-2"])
        await store.record_vote(decision_id, "U-1", "no")

        snapshot = await store.get_decision_snapshot(decision_id)
        assert snapshot.decision.id == decision_id
        assert sorted(v.user_id for v in snapshot.voters) == ["U-1", "U-2"]
        assert [(v.user_id, v.value) for v in snapshot.votes] == [("U-1", VoteValue.NO)]
        assert snapshot.all_voted is False

    async def test_zero_voters_never_all_voted(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())

        snapshot = await store.get_decision_snapshot(decision_id)
        assert snapshot.all_voted is False

    async def test_active_list_is_soonest_deadline_first(self, store: EntityStore, decision_fields, clock):
        later = await store.create_decision(decision_fields(deadline=clock.today + timedelta(days=9), name="Later"))
        sooner = await store.create_decision(decision_fields(deadline=clock.today + timedelta(days=1), name="Sooner"))
        closed = await store.create_decision(decision_fields(deadline=clock.today, name="Closed"))
        await store.update_decision_status(closed, DecisionStatus.REJECTED)

        active = await store.list_active_decisions()
        assert [d.id for d in active] == [sooner, later]

    async def test_delete_cascades(self, store: EntityStore, decision_fields):
        decision_id = await store.create_decision(decision_fields())
        await store.add_voters(decision_id, ["U-1"])
        await store.record_vote(decision_id, "U-1", "yes")

        assert await store.delete_decision(decision_id) is True
        assert await store.delete_decision(decision_id) is False
        assert await store.get_decision(decision_id) is None
        assert await store.get_voters(decision_id) == []
        assert await store.get_votes(decision_id) == []


# =============================================================================
# TEST: BACKEND SPECIFICS
# =============================================================================


class TestMemoryBackend:
    """Memory-only behaviour."""

    async def test_stores_are_isolated(self, decision_fields, clock):
        first = MemoryEntityStore(clock=clock)
        second = MemoryEntityStore(clock=clock)

        decision_id = await first.create_decision(decision_fields())

        assert await second.get_decision(decision_id) is None

    async def test_unknown_ids_do_not_allocate_locks(self, memory_store: MemoryEntityStore):
        missing = uuid4()

        await memory_store.get_decision_snapshot(missing)
        await memory_store.update_decision_status(missing, DecisionStatus.EXPIRED)
        await memory_store.update_decision_message_ref(missing, "M-1")
        await memory_store.add_voters(missing, ["U-1"])
        await memory_store.record_vote(missing, "U-1", "yes")
        await memory_store.delete_decision(missing)

        assert memory_store._locks == {}


class TestSqlBackend:
    """SQL-only behaviour."""

    async def test_driver_errors_become_storage_errors(self, tmp_path, clock, decision_fields):
        engine = create_engine(Settings(database_url=f"sqlite:///{tmp_path / 'broken.db'}"))
        await init_db(engine)
        store = SqlEntityStore(create_session_factory(engine), clock=clock)
        try:
            async with engine.begin() as conn:
                await conn.execute(text("DROP TABLE votes"))

            decision_id = await store.create_decision(decision_fields())
            with pytest.raises(StorageError):
                await store.record_vote(decision_id, "U-1", "yes")
        finally:
            await close_db(engine)
