"""
Reminder Selector: who still needs a nudge, and did the nudge go out.

For each active decision (soonest deadline first) every registered voter
without a vote becomes one reminder task. Dispatch is delegated to a
ReminderNotifier; each failure is recorded and the pass moves on.
Re-notifying a voter who is still missing on a later pass is expected.
"""

import logging
from dataclasses import dataclass, field
from uuid import UUID

from ..core.clock import Clock, today, utc_now
from ..core.exceptions import ConsensusError
from ..models import DecisionStatus
from ..store.base import DecisionRecord, EntityStore
from ..utils.dates import days_until
from .lifecycle import LifecycleManager
from .notifications import ReminderNotifier, ReminderTask

logger = logging.getLogger(__name__)


@dataclass
class ReminderFailure:
    decision_id: UUID
    user_id: str
    error: str


@dataclass
class ReminderPassResult:
    decisions_processed: int = 0
    total_reminders_sent: int = 0
    total_failed: int = 0
    per_decision_errors: dict[str, list[str]] = field(default_factory=dict)
    failures: list[ReminderFailure] = field(default_factory=list)

    def _record_error(self, decision_id: UUID, message: str) -> None:
        self.per_decision_errors.setdefault(str(decision_id), []).append(message)


class ReminderSelector:
    """Selects missing voters across active decisions and dispatches reminders."""

    def __init__(
        self,
        store: EntityStore,
        notifier: ReminderNotifier,
        lifecycle: LifecycleManager | None = None,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._notifier = notifier
        self._lifecycle = lifecycle
        self._clock = clock

    def _tasks_for(self, decision: DecisionRecord, user_ids: list[str]) -> list[ReminderTask]:
        remaining = days_until(decision.deadline, today(self._clock))
        return [
            ReminderTask(
                decision_id=decision.id,
                user_id=user_id,
                decision_name=decision.name,
                deadline=decision.deadline,
                channel_ref=decision.channel_ref,
                days_until_deadline=remaining,
            )
            for user_id in user_ids
        ]

    async def _missing_for(self, decision: DecisionRecord) -> list[str]:
        voters = await self._store.get_missing_voters(decision.id)
        return sorted(voter.user_id for voter in voters)

    async def select(self) -> list[ReminderTask]:
        """Reminder tasks for every missing voter on every active decision."""
        tasks: list[ReminderTask] = []
        for decision in await self._store.list_active_decisions():
            tasks.extend(self._tasks_for(decision, await self._missing_for(decision)))
        return tasks

    async def run_reminder_pass(self) -> ReminderPassResult:
        """Dispatch one round of reminders; failures are reported, not retried."""
        result = ReminderPassResult()

        for decision in await self._store.list_active_decisions():
            try:
                if self._lifecycle is not None:
                    evaluation = await self._lifecycle.evaluate(decision.id)
                    if evaluation.status != DecisionStatus.ACTIVE:
                        logger.info(
                            f"Skipping decision {decision.id}: now {evaluation.status.value}"
                        )
                        continue
                missing = await self._missing_for(decision)
            except ConsensusError as e:
                logger.error(f"Could not compute reminders for decision {decision.id}: {e}")
                result._record_error(decision.id, str(e))
                continue

            result.decisions_processed += 1
            for task in self._tasks_for(decision, missing):
                try:
                    await self._notifier.send(task)
                except Exception as e:
                    logger.warning(
                        f"Reminder to {task.user_id} for decision {decision.id} failed: {e}"
                    )
                    result.total_failed += 1
                    result.failures.append(ReminderFailure(decision.id, task.user_id, str(e)))
                    result._record_error(decision.id, f"{task.user_id}: {e}")
                else:
                    result.total_reminders_sent += 1

        logger.info(
            f"Reminder pass: {result.decisions_processed} decisions, "
            f"{result.total_reminders_sent} sent, {result.total_failed} failed"
        )
        return result
