"""Business logic services for the consensus ledger."""

from .lifecycle import (
    LifecycleManager,
    LifecycleResult,
    MaintenanceSummary,
    deadline_passed,
    next_status,
)
from .notifications import (
    LoggingNotifier,
    ReminderDeliveryError,
    ReminderNotifier,
    ReminderTask,
    WebhookNotifier,
)
from .outcome import (
    SUPER_MAJORITY_THRESHOLD,
    Deadlock,
    Outcome,
    VoteCounts,
    check_deadlock,
    count_votes,
    evaluate,
)
from .reminders import ReminderFailure, ReminderPassResult, ReminderSelector
from .voting import DecisionService, DecisionStats, VoteResult

__all__ = [
    # Outcome Calculator
    "SUPER_MAJORITY_THRESHOLD",
    "VoteCounts",
    "Outcome",
    "Deadlock",
    "count_votes",
    "evaluate",
    "check_deadlock",
    # Lifecycle
    "LifecycleManager",
    "LifecycleResult",
    "MaintenanceSummary",
    "deadline_passed",
    "next_status",
    # Vote Capture
    "DecisionService",
    "DecisionStats",
    "VoteResult",
    # Reminders
    "ReminderSelector",
    "ReminderPassResult",
    "ReminderFailure",
    "ReminderTask",
    "ReminderNotifier",
    "ReminderDeliveryError",
    "LoggingNotifier",
    "WebhookNotifier",
]
