"""
Pydantic schemas for the audit API.
"""

from typing import Optional

from pydantic import BaseModel


class AuditEntryResponse(BaseModel):
    id: int
    actor_id: str
    action: str
    target_subject_id: Optional[str] = None
    details: str
    timestamp: str
    origin_address: Optional[str] = None

    class Config:
        from_attributes = True
