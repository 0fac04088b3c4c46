"""
Pydantic schemas for the grant and access-check API.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


# ============ Request Schemas ============

class CreateGrantRequest(BaseModel):
    """
    Request access to a subject's records.

    Example:
        {
            "subject_id": "550e8400-e29b-41d4-a716-446655440000",
            "purpose": "Follow-up after surgery",
            "requested_duration_days": 30,
            "scope_limited": true
        }
    """
    subject_id: str = Field(..., description="Owner of the records")
    purpose: str = Field(..., max_length=2000, description="Why access is needed")
    requested_duration_days: int = Field(..., description="Access length in days once approved")
    requester_id: Optional[str] = Field(
        None,
        description="Defaults to the caller; requesting for someone else is refused"
    )
    scope_limited: bool = Field(False, description="Ask for specialty-only access")
    note: Optional[str] = Field(None, max_length=2000)

    @field_validator('purpose')
    def validate_purpose(cls, v):
        if not v or not v.strip():
            raise ValueError("purpose is required")
        return v.strip()


class ApproveGrantRequest(BaseModel):
    scope_limited: bool = Field(
        False,
        description="Restrict access to records in the requester's specialty"
    )


# ============ Response Schemas ============

class GrantResponse(BaseModel):
    id: str
    requester_id: str
    subject_id: str
    purpose: str
    requested_duration_days: int
    note: Optional[str] = None
    status: str
    effective_status: str
    is_active: bool
    scope_limited: bool
    created_at: str
    expires_at: Optional[str] = None
    decided_at: Optional[str] = None
    decided_by: Optional[str] = None

    class Config:
        from_attributes = True


class SubjectGrantResponse(GrantResponse):
    """A grant as listed for its subject, with the requester's profile."""
    requester: Optional[Dict[str, Any]] = None


class RequesterGrantResponse(GrantResponse):
    """A grant as listed for its requester, with the subject's profile."""
    subject: Optional[Dict[str, Any]] = None


class DecisionResponse(BaseModel):
    allowed: bool
    reason: str
    grant_id: Optional[str] = None
