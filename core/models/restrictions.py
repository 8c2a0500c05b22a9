"""Field restriction models shared by the fetch loop, encoder and sync results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RestrictionReason(str, Enum):
    """Why the source system refused to serve a field."""
    SECURITY_RESTRICTION = "security_restriction"
    COMPUTE_ERROR = "compute_error"
    UNKNOWN = "unknown"


class FieldRestriction(BaseModel):
    """A field the source system refused to serve during one sync run.

    Created the first time a fetch for the field fails; kept for the rest of
    the run so later batches skip the field and the encoder can emit a marker.
    """
    field_name: str = Field(..., description="Technical field name")
    reason: RestrictionReason = Field(..., description="Classified cause of the refusal")
    discovered_at_offset: Optional[int] = Field(None, description="Fetch offset where the field first failed")
    detected_at: datetime = Field(default_factory=datetime.utcnow, description="Discovery timestamp")
    message: Optional[str] = Field(None, description="Source error excerpt")
