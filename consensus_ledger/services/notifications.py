"""
Reminder delivery channels.

A channel receives one reminder task at a time and either returns normally
(delivered) or raises (failed). Retrying is never the channel's job: a failed
reminder is reported by the pass and picked up again on the next one.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from uuid import UUID

import httpx

logger = logging.getLogger(__name__)


@dataclass
class ReminderTask:
    """One (decision, voter) pair that still needs a nudge."""
    decision_id: UUID
    user_id: str
    decision_name: str
    deadline: date
    channel_ref: str
    days_until_deadline: int

    def to_payload(self) -> dict:
        return {
            "decision_id": str(self.decision_id),
            "user_id": self.user_id,
            "decision_name": self.decision_name,
            "deadline": self.deadline.isoformat(),
            "channel_ref": self.channel_ref,
            "days_until_deadline": self.days_until_deadline,
        }


class ReminderDeliveryError(Exception):
    """A channel could not deliver a reminder."""
    pass


# =============================================================================
# CHANNELS
# =============================================================================


class ReminderNotifier(ABC):
    """Abstract base for reminder delivery channels."""

    @abstractmethod
    async def send(self, task: ReminderTask) -> None:
        """Deliver a reminder; raise on failure."""
        pass


class LoggingNotifier(ReminderNotifier):
    """Channel that only logs, for development and dry runs."""

    async def send(self, task: ReminderTask) -> None:
        logger.info(
            f"[REMINDER] To: {task.user_id}, Decision: {task.decision_name} "
            f"({task.decision_id}), Deadline: {task.deadline.isoformat()}"
        )


class WebhookNotifier(ReminderNotifier):
    """POSTs each reminder task as JSON to the messaging layer."""

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._webhook_url = webhook_url
        self._timeout = timeout_seconds
        self._client = client

    async def send(self, task: ReminderTask) -> None:
        payload = {"type": "vote_reminder", "reminder": task.to_payload()}
        if self._client is not None:
            response = await self._client.post(
                self._webhook_url, json=payload, timeout=self._timeout
            )
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self._webhook_url, json=payload, timeout=self._timeout
                )

        if response.status_code >= 300:
            raise ReminderDeliveryError(
                f"Webhook returned {response.status_code} for {task.user_id}"
            )
