"""Base schemas and common types for the Consensus Ledger API."""

from pydantic import BaseModel, ConfigDict


class LedgerBaseModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,  # Build straight from store records
        populate_by_name=True,
        use_enum_values=True,
    )


# =============================================================================
# ERROR RESPONSES
# =============================================================================


class ErrorDetail(LedgerBaseModel):
    """Detailed error information."""

    field: str | None = None
    message: str
    code: str


class ErrorResponse(LedgerBaseModel):
    """Standard error response format."""

    error: str
    message: str
    details: list[ErrorDetail] = []
