"""
Business logic for access grants.

AuthorizationService loads a fresh snapshot (actor role + active grants) and
hands it to the pure decide() function.

GrantService is the grant lifecycle manager and the only writer of the
grant store:

    pending --approve--> approved --revoke--> revoked
    pending --deny-----> denied

Approve is only legal from pending; denied, revoked and expired grants are
terminal and a fresh request is needed. Every successful transition writes
exactly one audit entry in the same transaction; failed transitions write
none.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit.models import AuditAction
from audit.recorder import AuditRecorder
from core.config import get_access_config
from core.exceptions import (
    ForbiddenActorError, InvalidStateError, InvalidTargetError, NotFoundError,
    ValidationError
)
from core.timeutils import normalize
from grants.decision import Decision, REASON_ROLE_NOT_PERMITTED, decide
from grants.models import Grant, GrantStatus
from grants.repository import GrantRepository
from identity.models import Actor, Role
from identity.repository import ActorRepository
from identity.service import ActorService, load_actor
from storage.database import read_guard, transaction


class AuthorizationService:
    """
    Decide(actor, subject, category?, now) backed by the stores.
    """

    @staticmethod
    def decide(
        db: Session,
        actor_id: str,
        subject_id: str,
        now: Optional[datetime] = None,
        resource_category: Optional[str] = None,
        resource_read: bool = False
    ) -> Decision:
        """
        Look the actor up again (never a cached role) and decide.

        An unknown actor is denied rather than raised, so the function still
        always returns a decision. Storage failures propagate as
        StorageUnavailableError because no decision can be made.
        """
        with read_guard("authorization decision"):
            actor = ActorRepository.get_by_id(db, actor_id)
        if actor is None:
            return Decision.deny(REASON_ROLE_NOT_PERMITTED)
        return AuthorizationService.decide_for(
            db, actor, subject_id, normalize(now),
            resource_category=resource_category,
            resource_read=resource_read
        )

    @staticmethod
    def decide_for(
        db: Session,
        actor: Actor,
        subject_id: str,
        now: datetime,
        resource_category: Optional[str] = None,
        resource_read: bool = False
    ) -> Decision:
        grants: List[Grant] = []
        if actor.has_role(Role.REQUESTER) and actor.id != subject_id:
            with read_guard("authorization decision"):
                grants = GrantRepository.find_active(db, actor.id, subject_id, now)

        supervisor_override = True
        if resource_read:
            supervisor_override = get_access_config().supervisor_resource_access

        decision = decide(
            actor_id=actor.id,
            actor_role=actor.role_enum,
            subject_id=subject_id,
            grants=grants,
            now=now,
            resource_category=resource_category,
            declared_category=actor.specialty,
            supervisor_override=supervisor_override
        )

        if not decision.allowed:
            logger.info(f"[DECIDE] deny {actor.id} -> {subject_id}: {decision.reason}")
        return decision


def _describe(actor: Optional[Actor], fallback_id: str) -> str:
    if actor is None:
        return fallback_id
    return f"{actor.full_name} ({actor.id})"


def _validate_request(purpose: Optional[str], requested_duration_days: Any) -> str:
    if purpose is None or not str(purpose).strip():
        raise ValidationError("purpose is required")

    if isinstance(requested_duration_days, bool) or not isinstance(requested_duration_days, int):
        raise ValidationError("requested_duration_days must be an integer")
    if requested_duration_days <= 0:
        raise ValidationError("requested_duration_days must be positive")

    max_days = get_access_config().max_grant_duration_days
    if requested_duration_days > max_days:
        raise ValidationError(f"requested_duration_days may not exceed {max_days}")

    return str(purpose).strip()


class GrantService:
    """
    Grant lifecycle manager.
    """

    # ==================== CREATE ====================

    @staticmethod
    def create_grant(
        db: Session,
        actor_id: str,
        subject_id: str,
        purpose: str,
        requested_duration_days: int,
        requester_id: Optional[str] = None,
        scope_limited: bool = False,
        note: Optional[str] = None,
        origin_address: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        CreateGrant: a requester asks a subject for access.

        Args:
            actor_id: Authenticated actor
            subject_id: Owner of the records
            requester_id: Requester named in the request; defaults to the
                actor and must equal it
            scope_limited: Requested scope, advisory until approval

        Raises:
            ForbiddenActorError: actor is not a requester, or requests on
                behalf of someone else
            InvalidTargetError: subject missing or not a subject
            ValidationError: blank purpose, bad duration
            InvalidStateError: a pending request already exists for the pair
        """
        now = normalize(now)
        actor = load_actor(db, actor_id)

        if not actor.has_role(Role.REQUESTER):
            logger.warning(f"[GRANT] {actor.id} ({actor.role}) tried to request access")
            raise ForbiddenActorError("Only requesters can request access", actor_id=actor.id)

        if requester_id is not None and requester_id != actor.id:
            raise ForbiddenActorError(
                "Cannot request access on behalf of another requester",
                actor_id=actor.id, target_id=requester_id
            )

        purpose = _validate_request(purpose, requested_duration_days)

        with transaction(db, "create grant"):
            subject = ActorRepository.get_by_id(db, subject_id)
            if subject is None or not subject.has_role(Role.SUBJECT):
                raise InvalidTargetError("Subject not found", actor_id=actor.id, target_id=subject_id)

            if GrantRepository.find_pending(db, actor.id, subject.id) is not None:
                raise InvalidStateError(
                    "A pending request already exists for this subject",
                    actor_id=actor.id, target_id=subject.id
                )

            try:
                grant = GrantRepository.create(
                    db,
                    requester_id=actor.id,
                    subject_id=subject.id,
                    purpose=purpose,
                    requested_duration_days=requested_duration_days,
                    scope_limited=bool(scope_limited),
                    note=note,
                    created_at=now
                )
            except IntegrityError as e:
                # Lost a race against a concurrent request for the same pair
                raise InvalidStateError(
                    "A pending request already exists for this subject",
                    actor_id=actor.id, target_id=subject.id
                ) from e

            AuditRecorder.record(
                db,
                actor_id=actor.id,
                action=AuditAction.REQUESTED,
                target_subject_id=subject.id,
                details=(
                    f"requester {_describe(actor, actor.id)} requested access to subject "
                    f"{_describe(subject, subject.id)} for {requested_duration_days} days: {purpose}"
                ),
                origin_address=origin_address,
                timestamp=now
            )

        logger.info(f"[GRANT] {grant.id} requested by {actor.id} for {subject.id}")
        return grant.to_dict(now)

    # ==================== TRANSITIONS ====================

    @staticmethod
    def _load_for_transition(
        db: Session,
        actor: Actor,
        grant_id: str,
        expected: GrantStatus,
        verb: str
    ) -> Grant:
        grant = GrantRepository.get_by_id(db, grant_id)
        if grant is None:
            raise NotFoundError(f"Grant {grant_id} not found", actor_id=actor.id, target_id=grant_id)

        if actor.id != grant.subject_id and not actor.has_role(Role.SUPERVISOR):
            logger.warning(f"[GRANT] {actor.id} may not {verb} grant {grant.id}")
            raise ForbiddenActorError(
                f"Only the subject or a supervisor may {verb} this grant",
                actor_id=actor.id, target_id=grant.id
            )

        if grant.status != expected.value:
            raise InvalidStateError(
                f"Cannot {verb} a grant in status '{grant.status}'",
                actor_id=actor.id, target_id=grant.id
            )
        return grant

    @staticmethod
    def _apply(
        db: Session,
        actor: Actor,
        grant: Grant,
        expected: GrantStatus,
        new_status: GrantStatus,
        verb: str,
        **values: Any
    ):
        if not GrantRepository.transition(db, grant, expected, new_status, **values):
            raise InvalidStateError(
                f"Grant {grant.id} changed concurrently; cannot {verb}",
                actor_id=actor.id, target_id=grant.id
            )

    @staticmethod
    def _parties(db: Session, grant: Grant):
        requester = ActorRepository.get_by_id(db, grant.requester_id)
        subject = ActorRepository.get_by_id(db, grant.subject_id)
        return (
            _describe(requester, grant.requester_id),
            _describe(subject, grant.subject_id),
        )

    @staticmethod
    def approve_grant(
        db: Session,
        actor_id: str,
        grant_id: str,
        scope_limited: bool = False,
        origin_address: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        ApproveGrant: pending -> approved, expires_at = now + duration.

        The approver's scope_limited choice replaces whatever was requested.
        """
        now = normalize(now)
        actor = load_actor(db, actor_id)

        with transaction(db, "approve grant"):
            grant = GrantService._load_for_transition(db, actor, grant_id, GrantStatus.PENDING, "approve")
            expires_at = now + timedelta(days=grant.requested_duration_days)

            GrantService._apply(
                db, actor, grant, GrantStatus.PENDING, GrantStatus.APPROVED, "approve",
                expires_at=expires_at,
                scope_limited=bool(scope_limited),
                decided_at=now,
                decided_by=actor.id
            )

            requester, subject = GrantService._parties(db, grant)
            AuditRecorder.record(
                db,
                actor_id=actor.id,
                action=AuditAction.APPROVED,
                target_subject_id=grant.subject_id,
                details=(
                    f"{actor.role} {actor.id} approved access for requester {requester} "
                    f"to subject {subject} for {grant.requested_duration_days} days, "
                    f"scope_limited={bool(scope_limited)}, expires {expires_at.isoformat()}"
                ),
                origin_address=origin_address,
                timestamp=now
            )

        logger.info(f"[GRANT] {grant.id} approved by {actor.id} until {expires_at.isoformat()}")
        return grant.to_dict(now)

    @staticmethod
    def deny_grant(
        db: Session,
        actor_id: str,
        grant_id: str,
        origin_address: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """DenyGrant: pending -> denied."""
        now = normalize(now)
        actor = load_actor(db, actor_id)

        with transaction(db, "deny grant"):
            grant = GrantService._load_for_transition(db, actor, grant_id, GrantStatus.PENDING, "deny")
            GrantService._apply(
                db, actor, grant, GrantStatus.PENDING, GrantStatus.DENIED, "deny",
                expires_at=None,
                decided_at=now,
                decided_by=actor.id
            )

            requester, subject = GrantService._parties(db, grant)
            AuditRecorder.record(
                db,
                actor_id=actor.id,
                action=AuditAction.DENIED,
                target_subject_id=grant.subject_id,
                details=f"{actor.role} {actor.id} denied access for requester {requester} to subject {subject}",
                origin_address=origin_address,
                timestamp=now
            )

        logger.info(f"[GRANT] {grant.id} denied by {actor.id}")
        return grant.to_dict(now)

    @staticmethod
    def revoke_grant(
        db: Session,
        actor_id: str,
        grant_id: str,
        origin_address: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        RevokeGrant: approved -> revoked, effective immediately, including
        before natural expiry. expires_at is cleared with the status.
        """
        now = normalize(now)
        actor = load_actor(db, actor_id)

        with transaction(db, "revoke grant"):
            grant = GrantService._load_for_transition(db, actor, grant_id, GrantStatus.APPROVED, "revoke")
            was_active = grant.is_active(now)

            GrantService._apply(
                db, actor, grant, GrantStatus.APPROVED, GrantStatus.REVOKED, "revoke",
                expires_at=None,
                decided_at=now,
                decided_by=actor.id
            )

            requester, subject = GrantService._parties(db, grant)
            AuditRecorder.record(
                db,
                actor_id=actor.id,
                action=AuditAction.REVOKED,
                target_subject_id=grant.subject_id,
                details=(
                    f"{actor.role} {actor.id} revoked access for requester {requester} "
                    f"to subject {subject}" + ("" if was_active else " (already expired)")
                ),
                origin_address=origin_address,
                timestamp=now
            )

        logger.info(f"[GRANT] {grant.id} revoked by {actor.id}")
        return grant.to_dict(now)

    # ==================== READS ====================

    @staticmethod
    def get_grant(
        db: Session,
        actor_id: str,
        grant_id: str,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """GetGrant: visible to both parties and supervisors."""
        now = normalize(now)
        actor = load_actor(db, actor_id)

        with read_guard("get grant"):
            grant = GrantRepository.get_by_id(db, grant_id)
        if grant is None:
            raise NotFoundError(f"Grant {grant_id} not found", actor_id=actor.id, target_id=grant_id)

        if actor.id not in (grant.requester_id, grant.subject_id) and not actor.has_role(Role.SUPERVISOR):
            raise ForbiddenActorError("Access denied", actor_id=actor.id, target_id=grant.id)

        return grant.to_dict(now)

    @staticmethod
    def list_grants_by_subject(
        db: Session,
        actor_id: str,
        subject_id: str,
        skip: int = 0,
        limit: int = 100,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        ListGrantsBySubject, newest first, each with the requester's profile.
        """
        now = normalize(now)
        actor = load_actor(db, actor_id)
        if actor.id != subject_id and not actor.has_role(Role.SUPERVISOR):
            raise ForbiddenActorError("Access denied", actor_id=actor.id, target_id=subject_id)

        with read_guard("list grants by subject"):
            grants = GrantRepository.list_by_subject(db, subject_id, skip=skip, limit=min(limit, 100))
            results = []
            for grant in grants:
                data = grant.to_dict(now)
                data["requester"] = ActorService.get_profile(db, grant.requester_id)
                results.append(data)
        return results

    @staticmethod
    def list_grants_by_requester(
        db: Session,
        actor_id: str,
        requester_id: str,
        skip: int = 0,
        limit: int = 100,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        ListGrantsByRequester, newest first, each with the subject's profile.
        """
        now = normalize(now)
        actor = load_actor(db, actor_id)
        if actor.id != requester_id and not actor.has_role(Role.SUPERVISOR):
            raise ForbiddenActorError("Access denied", actor_id=actor.id, target_id=requester_id)

        with read_guard("list grants by requester"):
            grants = GrantRepository.list_by_requester(db, requester_id, skip=skip, limit=min(limit, 100))
            results = []
            for grant in grants:
                data = grant.to_dict(now)
                data["subject"] = ActorService.get_profile(db, grant.subject_id)
                results.append(data)
        return results
