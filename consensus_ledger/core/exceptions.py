"""Error taxonomy for the decision and voting engine."""

from uuid import UUID


class ConsensusError(Exception):
    """Base exception for consensus ledger operations."""
    pass


class ValidationError(ConsensusError):
    """Malformed input to a creation or vote call."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotEligibleError(ConsensusError):
    """Vote attempted by a user who is not a registered voter."""

    def __init__(self, decision_id: UUID, user_id: str):
        super().__init__(
            f"User {user_id} is not a required voter for decision {decision_id}"
        )
        self.decision_id = decision_id
        self.user_id = user_id


class NotCreatorError(ConsensusError):
    """Creator-only operation attempted by someone else."""

    def __init__(self, decision_id: UUID, user_id: str):
        super().__init__(
            f"Only the creator of decision {decision_id} can do that, not {user_id}"
        )
        self.decision_id = decision_id
        self.user_id = user_id


class InvalidStateError(ConsensusError):
    """Operation attempted against a closed or nonexistent decision."""

    def __init__(self, decision_id: UUID, status: str | None = None):
        if status is None:
            message = f"Decision {decision_id} not found"
        else:
            message = f"Decision {decision_id} is {status}"
        super().__init__(message)
        self.decision_id = decision_id
        self.status = status

    @property
    def not_found(self) -> bool:
        return self.status is None


class StorageError(ConsensusError):
    """The underlying persistence call failed."""
    pass
