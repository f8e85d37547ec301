"""API routes for the consensus ledger."""

from fastapi import APIRouter

from .decisions import router as decisions_router
from .reminders import router as reminders_router

# Main API router
api_router = APIRouter()

api_router.include_router(decisions_router)
api_router.include_router(reminders_router)

__all__ = ["api_router"]
