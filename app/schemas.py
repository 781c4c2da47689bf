"""Merge service - Pydantic models for API responses.

Pydantic models corresponding to JSON schemas in /specs.
Used by FastAPI for OpenAPI docs and by the handler to shape bodies.
"""

from pydantic import BaseModel, ConfigDict, Field


# --- Response Models ---


class ErrorResponse(BaseModel):
    """Response for failed merge requests.

    Corresponds to specs/merge_error_response.schema.json.
    `details` is omitted from the serialized body when None.
    """

    model_config = ConfigDict(extra="forbid")

    error: str = Field(..., min_length=1, description="Human-readable error description")
    details: str | None = Field(
        default=None,
        description="Underlying failure message (transcoder diagnostics, etc.)",
    )

    def to_body(self) -> dict[str, str]:
        """Serialize for a JSON response, dropping unset details."""
        return self.model_dump(exclude_none=True)


class HealthResponse(BaseModel):
    """Response for the health check endpoint."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(default="ok", description="Service status")


__all__ = [
    "ErrorResponse",
    "HealthResponse",
]
