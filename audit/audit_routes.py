"""
Audit log API endpoints (read-only).

Exposed endpoints:
- GET /api/audit - Entries visible to the caller, newest first
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from audit.recorder import AuditRecorder
from audit.schemas import AuditEntryResponse
from auth.rbac_dependencies import get_current_actor_id
from storage.database import DatabaseManager

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("", response_model=List[AuditEntryResponse])
async def query_audit(
    user_id: Optional[str] = Query(None, description="Only entries written by this actor"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    """
    Supervisors may read everything; other actors only their own entries.
    """
    entries = AuditRecorder.query(db, viewer_id=actor_id, user_id=user_id, skip=skip, limit=limit)
    return [e.to_dict() for e in entries]
