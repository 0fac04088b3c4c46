"""
Grant lifecycle and access-check API endpoints.

Exposed endpoints:
- POST /api/grants - Request access to a subject
- GET /api/grants/{id} - Get one grant
- POST /api/grants/{id}/approve - Subject (or supervisor) approves
- POST /api/grants/{id}/deny - Subject (or supervisor) denies
- POST /api/grants/{id}/revoke - Subject (or supervisor) revokes
- GET /api/grants/subject/{subject_id} - Grants over a subject
- GET /api/grants/requester/{requester_id} - Grants held by a requester
- GET /api/access/check - Decide for the caller
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from loguru import logger
from sqlalchemy.orm import Session

from auth.rbac_dependencies import get_client_ip, get_current_actor_id
from grants.schemas import (
    ApproveGrantRequest,
    CreateGrantRequest,
    DecisionResponse,
    GrantResponse,
    RequesterGrantResponse,
    SubjectGrantResponse
)
from grants.service import AuthorizationService, GrantService
from storage.database import DatabaseManager

router = APIRouter(prefix="/api/grants", tags=["grants"])
access_router = APIRouter(prefix="/api/access", tags=["access"])


@router.post("", response_model=GrantResponse, status_code=201)
async def create_grant(
    data: CreateGrantRequest,
    request: Request,
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    """
    Example request:
        {
            "subject_id": "550e8400-e29b-41d4-a716-446655440000",
            "purpose": "Second opinion",
            "requested_duration_days": 30
        }
    """
    return GrantService.create_grant(
        db,
        actor_id=actor_id,
        subject_id=data.subject_id,
        purpose=data.purpose,
        requested_duration_days=data.requested_duration_days,
        requester_id=data.requester_id,
        scope_limited=data.scope_limited,
        note=data.note,
        origin_address=get_client_ip(request)
    )


@router.get("/subject/{subject_id}", response_model=List[SubjectGrantResponse])
async def list_grants_by_subject(
    subject_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    return GrantService.list_grants_by_subject(db, actor_id, subject_id, skip=skip, limit=limit)


@router.get("/requester/{requester_id}", response_model=List[RequesterGrantResponse])
async def list_grants_by_requester(
    requester_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    return GrantService.list_grants_by_requester(db, actor_id, requester_id, skip=skip, limit=limit)


@router.get("/{grant_id}", response_model=GrantResponse)
async def get_grant(
    grant_id: str,
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    return GrantService.get_grant(db, actor_id, grant_id)


@router.post("/{grant_id}/approve", response_model=GrantResponse)
async def approve_grant(
    grant_id: str,
    request: Request,
    data: Optional[ApproveGrantRequest] = None,
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    scope_limited = data.scope_limited if data is not None else False
    result = GrantService.approve_grant(
        db, actor_id, grant_id,
        scope_limited=scope_limited,
        origin_address=get_client_ip(request)
    )
    logger.info(f"Grant {grant_id} approved via API by {actor_id}")
    return result


@router.post("/{grant_id}/deny", response_model=GrantResponse)
async def deny_grant(
    grant_id: str,
    request: Request,
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    return GrantService.deny_grant(db, actor_id, grant_id, origin_address=get_client_ip(request))


@router.post("/{grant_id}/revoke", response_model=GrantResponse)
async def revoke_grant(
    grant_id: str,
    request: Request,
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    return GrantService.revoke_grant(db, actor_id, grant_id, origin_address=get_client_ip(request))


@access_router.get("/check", response_model=DecisionResponse)
async def check_access(
    subject_id: str = Query(..., description="Owner of the target resource"),
    resource_category: Optional[str] = Query(None, description="Category of the resource, if any"),
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    """Decide for the caller without touching any resource."""
    decision = AuthorizationService.decide(
        db, actor_id, subject_id,
        resource_category=resource_category
    )
    return decision.to_dict()
