"""
Pydantic schemas for the record API.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# ============ Request Schemas ============

class CreateRecordRequest(BaseModel):
    """
    Example:
        {
            "owner_id": "550e8400-e29b-41d4-a716-446655440000",
            "title": "Echocardiogram",
            "category": "Cardiology",
            "record_date": "2024-03-01"
        }
    """
    owner_id: str = Field(..., description="Subject the record belongs to")
    title: str = Field(..., max_length=255)
    category: str = Field(..., max_length=100, description="Matched against a requester's specialty")
    record_date: date
    notes: Optional[str] = None
    file_url: Optional[str] = Field(None, max_length=500)

    @field_validator('title', 'category')
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


# ============ Response Schemas ============

class RecordResponse(BaseModel):
    id: str
    owner_id: str
    title: str
    category: str
    record_date: str
    notes: Optional[str] = None
    file_url: Optional[str] = None
    created_by: str
    verified: bool
    created_at: str

    class Config:
        from_attributes = True


class AccessibleRecordResponse(RecordResponse):
    """A record reached through a grant, with the grant that exposes it."""
    grant_id: Optional[str] = None
    access_expires_at: Optional[str] = None
