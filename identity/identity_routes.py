"""
Actor directory API endpoints.

Exposed endpoints:
- GET /api/actors/me - The caller's own profile
- GET /api/actors?role=... - List actors of a role
- GET /api/actors/{id} - One actor's profile
- PATCH /api/actors/{id} - Update display attributes
- PUT /api/actors/{id}/role - Change an actor's role (supervisor)
"""

from typing import List

from fastapi import APIRouter, Depends, Query, Request
from loguru import logger
from sqlalchemy.orm import Session

from auth.rbac_dependencies import get_client_ip, get_current_actor, get_current_actor_id, require_role
from identity.models import Actor, Role
from identity.schemas import ActorResponse, ChangeRoleRequest, UpdateProfileRequest
from identity.service import ActorService
from storage.database import DatabaseManager

router = APIRouter(prefix="/api/actors", tags=["actors"])


@router.get("/me", response_model=ActorResponse)
async def get_me(actor: Actor = Depends(get_current_actor)):
    """The authenticated actor, freshly loaded."""
    return actor.to_dict()


@router.get("", response_model=List[ActorResponse])
async def list_actors(
    role: Role = Query(..., description="subject, requester or supervisor"),
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    return ActorService.list_by_role(db, viewer_id=actor_id, role=role)


@router.get("/{target_id}", response_model=ActorResponse)
async def get_actor(
    target_id: str,
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    return ActorService.get_actor(db, viewer_id=actor_id, actor_id=target_id)


@router.patch("/{target_id}", response_model=ActorResponse)
async def update_profile(
    target_id: str,
    data: UpdateProfileRequest,
    request: Request,
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
):
    result = ActorService.update_profile(
        db,
        viewer_id=actor_id,
        actor_id=target_id,
        updates=data.model_dump(exclude_unset=True),
        origin_address=get_client_ip(request)
    )
    logger.info(f"Profile of {target_id} updated by {actor_id}")
    return result


@router.put("/{target_id}/role", response_model=ActorResponse)
async def change_role(
    target_id: str,
    data: ChangeRoleRequest,
    request: Request,
    supervisor: Actor = Depends(require_role(Role.SUPERVISOR)),
    db: Session = Depends(DatabaseManager.get_session)
):
    return ActorService.change_role(
        db,
        viewer_id=supervisor.id,
        actor_id=target_id,
        new_role=data.role,
        origin_address=get_client_ip(request)
    )
