"""Reminder API Routes: trigger a reminder pass on demand."""

from fastapi import APIRouter

from ..core import ConsensusError
from ..schemas import ReminderPassResponse
from .deps import ReminderSelectorDep, http_error

router = APIRouter(prefix="/reminders", tags=["reminders"])


@router.post(
    "/run",
    response_model=ReminderPassResponse,
    summary="Run one reminder pass",
    description="Nudge every missing voter on every active decision. Failures are reported, not retried.",
)
async def run_reminders(selector: ReminderSelectorDep):
    try:
        result = await selector.run_reminder_pass()
    except ConsensusError as e:
        raise http_error(e)
    return ReminderPassResponse.model_validate(result)
