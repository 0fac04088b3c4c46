"""
Business logic for the actor directory.

Visibility rules:
- requesters are listed to everyone (so subjects can see who may ask)
- subjects are listed to requesters and supervisors
- supervisors are listed to supervisors only
- a single actor is readable by itself, a supervisor, or a requester holding
  an active grant over that actor
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit.models import AuditAction
from audit.recorder import AuditRecorder
from auth.cache_manager import actor_cache
from core.config import get_access_config
from core.exceptions import ForbiddenActorError, InvalidTargetError, NotFoundError, ValidationError
from core.timeutils import normalize
from identity.models import Actor, Role
from identity.repository import ActorRepository
from storage.database import read_guard, transaction


def load_actor(db: Session, actor_id: str) -> Actor:
    """
    Re-fetch the calling actor. Roles are never trusted from a cache or token.

    Raises:
        ForbiddenActorError: the identifier does not resolve to an actor
    """
    with read_guard("actor lookup"):
        actor = ActorRepository.get_by_id(db, actor_id)
    if actor is None:
        logger.warning(f"[IDENTITY] Unknown actor {actor_id}")
        raise ForbiddenActorError("Unknown actor", actor_id=actor_id)
    return actor


_LISTABLE_BY = {
    Role.REQUESTER: {Role.SUBJECT, Role.REQUESTER, Role.SUPERVISOR},
    Role.SUBJECT: {Role.REQUESTER, Role.SUPERVISOR},
    Role.SUPERVISOR: {Role.SUPERVISOR},
}


class ActorService:
    """
    Directory operations on actors.
    """

    @staticmethod
    def register_actor(
        db: Session,
        username: str,
        full_name: str,
        role: Role,
        email: Optional[str] = None,
        specialty: Optional[str] = None,
        phone: Optional[str] = None
    ) -> Actor:
        """
        Create an actor record. Used by seeding and by the external
        registration flow; credentials are stored elsewhere.
        """
        if not username or not username.strip():
            raise ValidationError("username is required")
        if not full_name or not full_name.strip():
            raise ValidationError("full_name is required")

        with transaction(db, "register actor"):
            if ActorRepository.get_by_username(db, username) is not None:
                raise ValidationError(f"Username already taken: {username}")
            if email and ActorRepository.get_by_email(db, email) is not None:
                raise ValidationError("Email already in use")
            try:
                actor = ActorRepository.create(
                    db,
                    username=username.strip(),
                    full_name=full_name.strip(),
                    role=role,
                    email=email,
                    specialty=specialty,
                    phone=phone
                )
            except IntegrityError as e:
                # Lost a race against a concurrent registration
                raise ValidationError("Username or email already in use") from e
        return actor

    @staticmethod
    def get_profile(db: Session, actor_id: str) -> Optional[Dict[str, Any]]:
        """Display profile for listings, served from the actor cache when warm."""
        cached = actor_cache.get_profile(actor_id)
        if cached is not None:
            return cached

        with read_guard("actor profile"):
            actor = ActorRepository.get_by_id(db, actor_id)
        if actor is None:
            return None

        profile = actor.to_profile()
        actor_cache.cache_profile(actor_id, profile, ttl=get_access_config().actor_cache_ttl)
        return profile

    @staticmethod
    def get_actor(db: Session, viewer_id: str, actor_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        from grants.service import AuthorizationService

        viewer = load_actor(db, viewer_id)
        with read_guard("actor lookup"):
            target = ActorRepository.get_by_id(db, actor_id)
        if target is None:
            raise NotFoundError(f"Actor {actor_id} not found", actor_id=viewer_id, target_id=actor_id)

        if target.has_role(Role.REQUESTER) or target.has_role(Role.SUPERVISOR):
            if viewer.role_enum not in _LISTABLE_BY[target.role_enum]:
                raise ForbiddenActorError("Access denied", actor_id=viewer.id, target_id=target.id)
        elif viewer.id != target.id and not viewer.has_role(Role.SUPERVISOR):
            decision = AuthorizationService.decide_for(db, viewer, target.id, normalize(now))
            if not decision.allowed:
                logger.warning(f"[IDENTITY] {viewer.id} denied profile of {target.id}: {decision.reason}")
                raise ForbiddenActorError("Access denied", actor_id=viewer.id, target_id=target.id)

        return target.to_dict()

    @staticmethod
    def list_by_role(db: Session, viewer_id: str, role: Role) -> List[Dict[str, Any]]:
        viewer = load_actor(db, viewer_id)
        role = Role(role)

        if viewer.role_enum not in _LISTABLE_BY[role]:
            raise ForbiddenActorError(
                f"Role '{viewer.role}' may not list {role.value} actors", actor_id=viewer.id
            )

        with read_guard("list actors"):
            actors = ActorRepository.list_by_role(db, role)
        return [a.to_dict() for a in actors]

    @staticmethod
    def update_profile(
        db: Session,
        viewer_id: str,
        actor_id: str,
        updates: Dict[str, Any],
        origin_address: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Update display attributes. Self or supervisor only. Audited as
        profile_updated.
        """
        allowed_fields = {"full_name", "email", "phone", "specialty"}
        unknown = set(updates) - allowed_fields
        if unknown:
            raise ValidationError(f"Unsupported profile fields: {sorted(unknown)}")

        changes = {k: v for k, v in updates.items() if v is not None}
        if not changes:
            raise ValidationError("No profile fields supplied")

        viewer = load_actor(db, viewer_id)
        if viewer.id != actor_id and not viewer.has_role(Role.SUPERVISOR):
            raise ForbiddenActorError("Access denied", actor_id=viewer.id, target_id=actor_id)

        with transaction(db, "update profile"):
            target = ActorRepository.get_by_id(db, actor_id)
            if target is None:
                raise NotFoundError(f"Actor {actor_id} not found", actor_id=viewer.id, target_id=actor_id)

            email = changes.get("email")
            if email:
                holder = ActorRepository.get_by_email(db, email)
                if holder is not None and holder.id != target.id:
                    raise ValidationError("Email already in use", actor_id=viewer.id, target_id=target.id)
            try:
                ActorRepository.update(db, target, **changes)
            except IntegrityError as e:
                raise ValidationError("Email already in use", actor_id=viewer.id, target_id=target.id) from e
            AuditRecorder.record(
                db,
                actor_id=viewer.id,
                action=AuditAction.PROFILE_UPDATED,
                target_subject_id=target.id if target.has_role(Role.SUBJECT) else None,
                details=f"{viewer.role} {viewer.id} updated profile of {target.id}: {', '.join(sorted(changes))}",
                origin_address=origin_address,
                timestamp=normalize(now)
            )

        actor_cache.invalidate(actor_id)
        return target.to_dict()

    @staticmethod
    def change_role(
        db: Session,
        viewer_id: str,
        actor_id: str,
        new_role: Role,
        origin_address: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Administrative role change. Supervisor only; the actor's cached data is
        invalidated so no stale role survives.
        """
        new_role = Role(new_role)
        viewer = load_actor(db, viewer_id)
        if not viewer.has_role(Role.SUPERVISOR):
            raise ForbiddenActorError("Only supervisors may change roles", actor_id=viewer.id)

        with transaction(db, "change role"):
            target = ActorRepository.get_by_id(db, actor_id)
            if target is None:
                raise InvalidTargetError(f"Actor {actor_id} not found", actor_id=viewer.id, target_id=actor_id)
            if target.role == new_role.value:
                raise ValidationError(f"Actor already has role '{new_role.value}'")

            old_role = target.role
            ActorRepository.update(db, target, role=new_role.value)
            AuditRecorder.record(
                db,
                actor_id=viewer.id,
                action=AuditAction.ROLE_CHANGED,
                target_subject_id=None,
                details=f"supervisor {viewer.id} changed role of {target.id} from {old_role} to {new_role.value}",
                origin_address=origin_address,
                timestamp=normalize(now)
            )

        actor_cache.invalidate(actor_id)
        logger.warning(f"[IDENTITY] Role of {actor_id} changed {old_role} -> {new_role.value}")
        return target.to_dict()
