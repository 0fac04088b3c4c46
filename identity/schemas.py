"""
Pydantic schemas for the actor directory API.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from identity.models import Role


class UpdateProfileRequest(BaseModel):
    full_name: Optional[str] = Field(None, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    specialty: Optional[str] = Field(None, max_length=100)

    @field_validator('full_name')
    def validate_full_name(cls, v):
        if v is not None and not v.strip():
            raise ValueError("full_name must not be blank")
        return v


class ChangeRoleRequest(BaseModel):
    role: Role


class ActorResponse(BaseModel):
    id: str
    username: str
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str
    specialty: Optional[str] = None
    created_at: Optional[str] = None

    class Config:
        from_attributes = True
