from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class SchoolOut(BaseModel):
    """Full school record as returned by the submission endpoint."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    name: str
    address: str
    city: str
    state: str
    contact: int
    email_id: str
    image: str
    created_at: datetime = Field(alias="createdAt")

    @field_serializer("contact")
    def _serialize_contact(self, contact: int) -> str:
        # Ten digit numbers are past what JSON consumers treat as a safe integer.
        return str(contact)


class SchoolCard(BaseModel):
    """Projection used by the listing page and ``/api/schools``."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    address: str
    city: str
    image: str


class SchoolCreatedResponse(BaseModel):
    message: str
    school: SchoolOut


class SchoolListResponse(BaseModel):
    schools: List[SchoolCard] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    issues: Optional[Dict[str, List[str]]] = None
    details: Optional[Dict[str, str]] = None


class DebugStatus(BaseModel):
    message: str
    isDebug: bool
