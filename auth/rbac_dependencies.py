"""
Authentication dependencies for FastAPI.

Only the actor id is taken from the bearer token. Role checks happen in the
services against a fresh read of the identity store.
"""

from fastapi import Depends, Header, HTTPException, Request
from loguru import logger
from sqlalchemy.orm import Session

from auth.auth_manager import get_auth_manager
from identity.models import Actor, Role
from identity.service import load_actor
from storage.database import DatabaseManager

# ==================== DEPENDENCY FUNCTIONS ====================

async def verify_jwt_token(authorization: str = Header(None)) -> dict:
    """
    Dependency: Verify JWT token and return payload.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing authorization token")

    token = authorization[len("Bearer "):].strip()
    payload = get_auth_manager().verify_token(token)

    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return payload


async def get_current_actor_id(payload: dict = Depends(verify_jwt_token)) -> str:
    """Dependency: the authenticated actor id."""
    return payload["sub"]


def get_current_actor(
    actor_id: str = Depends(get_current_actor_id),
    db: Session = Depends(DatabaseManager.get_session)
) -> Actor:
    """
    Dependency: the authenticated actor, re-loaded on every request.
    """
    return load_actor(db, actor_id)


def require_role(required_role: Role):
    """
    Dependency factory: Require specific role (read from storage, not the token).
    """
    required_role = Role(required_role)

    def _require_role(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not actor.has_role(required_role):
            logger.warning(
                f"Actor {actor.id} ({actor.role}) attempted to access "
                f"{required_role.value} endpoint"
            )
            raise HTTPException(
                status_code=403,
                detail=f"Role '{required_role.value}' required"
            )
        return actor

    return _require_role

# ==================== HELPER FUNCTIONS ====================

def get_client_ip(request: Request) -> str:
    """Extract client IP from request"""
    if request.client:
        return request.client.host
    return "unknown"
