"""FastAPI dependencies: services built from application state."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from ..core import (
    ConsensusError,
    InvalidStateError,
    NotCreatorError,
    NotEligibleError,
    Settings,
    StorageError,
    ValidationError,
)
from ..services import (
    DecisionService,
    LifecycleManager,
    ReminderNotifier,
    ReminderSelector,
)
from ..store import EntityStore


def get_store(request: Request) -> EntityStore:
    return request.app.state.store


def get_lifecycle(request: Request) -> LifecycleManager:
    return LifecycleManager(get_store(request), clock=request.app.state.clock)


def get_decision_service(request: Request) -> DecisionService:
    settings: Settings = request.app.state.settings
    return DecisionService(
        get_store(request),
        lifecycle=get_lifecycle(request),
        clock=request.app.state.clock,
        default_deadline_business_days=settings.default_deadline_business_days,
    )


def get_reminder_selector(request: Request) -> ReminderSelector:
    notifier: ReminderNotifier = request.app.state.notifier
    return ReminderSelector(
        get_store(request),
        notifier,
        lifecycle=get_lifecycle(request),
        clock=request.app.state.clock,
    )


DecisionServiceDep = Annotated[DecisionService, Depends(get_decision_service)]
ReminderSelectorDep = Annotated[ReminderSelector, Depends(get_reminder_selector)]


def http_error(exc: ConsensusError) -> HTTPException:
    """Translate a domain error into the matching HTTP error."""
    if isinstance(exc, ValidationError):
        detail = {"message": str(exc), "field": exc.field}
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
    if isinstance(exc, (NotEligibleError, NotCreatorError)):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, InvalidStateError):
        if exc.not_found:
            return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, StorageError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage is temporarily unavailable",
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
