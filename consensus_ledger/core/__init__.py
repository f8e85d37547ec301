"""Core application utilities."""

from .clock import Clock, today, utc_now
from .config import Settings, get_settings
from .database import (
    close_db,
    create_engine,
    create_session_factory,
    init_db,
    session_scope,
)
from .exceptions import (
    ConsensusError,
    InvalidStateError,
    NotCreatorError,
    NotEligibleError,
    StorageError,
    ValidationError,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "create_engine",
    "create_session_factory",
    "session_scope",
    "init_db",
    "close_db",
    # Clock
    "Clock",
    "utc_now",
    "today",
    # Errors
    "ConsensusError",
    "ValidationError",
    "NotEligibleError",
    "NotCreatorError",
    "InvalidStateError",
    "StorageError",
]
