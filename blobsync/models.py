"""Pydantic models for API responses."""

from typing import Any

from pydantic import BaseModel, ConfigDict

# =============================================================================
# Record Models
# =============================================================================


class RecordMeta(BaseModel):
    """Sync metadata for one record. The encrypted payload is never included.

    lastModified and version are client-owned and passed through as sent.
    """
    model_config = ConfigDict(extra="ignore")

    id: str
    lastModified: Any = None
    version: Any = None


# =============================================================================
# Mutation Responses
# =============================================================================


class UpsertResponse(BaseModel):
    """Response from an upsert."""
    ok: bool = True
    count: int


class DeleteResponse(BaseModel):
    """Response from a delete. Always ok, whether or not the id existed."""
    ok: bool = True


class ErrorResponse(BaseModel):
    """Body of every error response."""
    error: str
