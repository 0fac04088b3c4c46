"""
Resource gateway service.

Every read of record content goes through AuthorizationService first and is
audited in the same transaction as the read:

- record_created     a record was added (by the owner or a granted requester)
- record_accessed    a non-owner opened a record
- record_downloaded  anyone downloaded a record
- records_accessed   a non-owner listed a subject's records
- records_viewed     a requester listed everything their grants expose
- access_denied      any of the above was refused (with the reason)
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from audit.models import AuditAction
from audit.recorder import AuditRecorder
from core.exceptions import ForbiddenActorError, InvalidTargetError, NotFoundError, ValidationError
from core.timeutils import normalize
from grants.decision import Decision
from grants.repository import GrantRepository
from grants.service import AuthorizationService
from identity.models import Actor, Role
from identity.repository import ActorRepository
from identity.service import load_actor
from records.models import Record
from records.repository import RecordRepository
from storage.database import read_guard, transaction


def _refuse(
    db: Session,
    actor: Actor,
    subject_id: str,
    decision: Decision,
    attempted: str,
    origin_address: Optional[str],
    now: datetime
):
    """Audit a denied access, then raise ForbiddenActorError."""
    with transaction(db, "audit denied access"):
        AuditRecorder.record(
            db,
            actor_id=actor.id,
            action=AuditAction.ACCESS_DENIED,
            target_subject_id=subject_id,
            details=f"{actor.role} {actor.id} denied {attempted}: {decision.reason}",
            origin_address=origin_address,
            timestamp=now
        )
    logger.warning(f"[RECORDS] {actor.id} denied {attempted}: {decision.reason}")
    raise ForbiddenActorError(f"Access denied: {decision.reason}", actor_id=actor.id, target_id=subject_id)


class RecordService:
    """
    Record operations gated by the decision function.
    """

    @staticmethod
    def create_record(
        db: Session,
        actor_id: str,
        owner_id: str,
        title: str,
        category: str,
        record_date: date,
        notes: Optional[str] = None,
        file_url: Optional[str] = None,
        origin_address: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Add a record to a subject's file.

        The owner may always add; anyone else needs an Allow decision for the
        record's category. Records created by a requester are verified.
        """
        now = normalize(now)
        if not title or not title.strip():
            raise ValidationError("title is required")
        if not category or not category.strip():
            raise ValidationError("category is required")

        actor = load_actor(db, actor_id)

        with read_guard("create record"):
            owner = ActorRepository.get_by_id(db, owner_id)
        if owner is None or not owner.has_role(Role.SUBJECT):
            raise InvalidTargetError("Record owner must be an existing subject", actor_id=actor.id, target_id=owner_id)

        if actor.id != owner.id:
            decision = AuthorizationService.decide_for(db, actor, owner.id, now, resource_category=category.strip())
            if not decision.allowed:
                _refuse(db, actor, owner.id, decision, f"record creation for {owner.id}", origin_address, now)

        with transaction(db, "create record"):
            record = RecordRepository.create(
                db,
                owner_id=owner.id,
                title=title.strip(),
                category=category.strip(),
                record_date=record_date,
                created_by=actor.id,
                verified=actor.has_role(Role.REQUESTER),
                notes=notes,
                file_url=file_url,
                created_at=now
            )
            AuditRecorder.record(
                db,
                actor_id=actor.id,
                action=AuditAction.RECORD_CREATED,
                target_subject_id=owner.id,
                details=f"{actor.role} {actor.id} created record {record.id} for subject {owner.id}",
                origin_address=origin_address,
                timestamp=now
            )

        return record.to_dict()

    @staticmethod
    def _authorize_record(
        db: Session,
        actor: Actor,
        record_id: str,
        attempted: str,
        origin_address: Optional[str],
        now: datetime
    ) -> Record:
        with read_guard("get record"):
            record = RecordRepository.get_by_id(db, record_id)
        if record is None:
            raise NotFoundError(f"Record {record_id} not found", actor_id=actor.id, target_id=record_id)

        decision = AuthorizationService.decide_for(
            db, actor, record.owner_id, now,
            resource_category=record.category,
            resource_read=True
        )
        if not decision.allowed:
            _refuse(db, actor, record.owner_id, decision, f"{attempted} {record.id}", origin_address, now)
        return record

    @staticmethod
    def get_record(
        db: Session,
        actor_id: str,
        record_id: str,
        origin_address: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = normalize(now)
        actor = load_actor(db, actor_id)
        record = RecordService._authorize_record(db, actor, record_id, "read of record", origin_address, now)

        if actor.id != record.owner_id:
            with transaction(db, "audit record access"):
                AuditRecorder.record(
                    db,
                    actor_id=actor.id,
                    action=AuditAction.RECORD_ACCESSED,
                    target_subject_id=record.owner_id,
                    details=f"{actor.role} {actor.id} accessed record {record.id} of subject {record.owner_id}",
                    origin_address=origin_address,
                    timestamp=now
                )
        return record.to_dict()

    @staticmethod
    def download_record(
        db: Session,
        actor_id: str,
        record_id: str,
        origin_address: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Tuple[str, str]:
        """
        Returns:
            (filename, plain-text body)
        """
        now = normalize(now)
        actor = load_actor(db, actor_id)
        record = RecordService._authorize_record(db, actor, record_id, "download of record", origin_address, now)

        with transaction(db, "audit record download"):
            AuditRecorder.record(
                db,
                actor_id=actor.id,
                action=AuditAction.RECORD_DOWNLOADED,
                target_subject_id=record.owner_id,
                details=f"{actor.role} {actor.id} downloaded record {record.id}",
                origin_address=origin_address,
                timestamp=now
            )
        return f"record-{record.id}.txt", record.to_text()

    @staticmethod
    def list_records_by_owner(
        db: Session,
        actor_id: str,
        owner_id: str,
        origin_address: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        All of a subject's records the actor may see. Scope-limited requesters
        only get records in their own category.
        """
        now = normalize(now)
        actor = load_actor(db, actor_id)

        with read_guard("list records"):
            owner = ActorRepository.get_by_id(db, owner_id)
        if owner is None or not owner.has_role(Role.SUBJECT):
            raise NotFoundError(f"Subject {owner_id} not found", actor_id=actor.id, target_id=owner_id)

        decision = AuthorizationService.decide_for(db, actor, owner.id, now, resource_read=True)
        if not decision.allowed:
            _refuse(db, actor, owner.id, decision, f"records of subject {owner.id}", origin_address, now)

        with read_guard("list records"):
            records = RecordRepository.list_by_owner(db, owner.id)

        visible = [
            r for r in records
            if AuthorizationService.decide_for(
                db, actor, owner.id, now, resource_category=r.category, resource_read=True
            ).allowed
        ]

        if actor.id != owner.id:
            with transaction(db, "audit records access"):
                AuditRecorder.record(
                    db,
                    actor_id=actor.id,
                    action=AuditAction.RECORDS_ACCESSED,
                    target_subject_id=owner.id,
                    details=(
                        f"{actor.role} {actor.id} accessed {len(visible)} of {len(records)} "
                        f"records of subject {owner.id}"
                    ),
                    origin_address=origin_address,
                    timestamp=now
                )
        return [r.to_dict() for r in visible]

    @staticmethod
    def list_accessible_records(
        db: Session,
        actor_id: str,
        origin_address: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Everything a requester can currently read across all active grants,
        each record annotated with the grant that exposes it.
        """
        now = normalize(now)
        actor = load_actor(db, actor_id)
        if not actor.has_role(Role.REQUESTER):
            raise ForbiddenActorError("Only requesters have delegated records", actor_id=actor.id)

        results: List[Dict[str, Any]] = []
        with read_guard("list accessible records"):
            active = GrantRepository.list_active_for_requester(db, actor.id, now)
            active_by_id = {g.id: g for g in active}
            seen_subjects = set()
            for grant in active:
                if grant.subject_id in seen_subjects:
                    continue
                seen_subjects.add(grant.subject_id)

                for record in RecordRepository.list_by_owner(db, grant.subject_id):
                    decision = AuthorizationService.decide_for(
                        db, actor, grant.subject_id, now,
                        resource_category=record.category,
                        resource_read=True
                    )
                    if not decision.allowed:
                        continue
                    data = record.to_dict()
                    data["grant_id"] = decision.grant_id
                    exposing = active_by_id[decision.grant_id]
                    data["access_expires_at"] = exposing.expires_at.isoformat()
                    results.append(data)

        with transaction(db, "audit records view"):
            AuditRecorder.record(
                db,
                actor_id=actor.id,
                action=AuditAction.RECORDS_VIEWED,
                target_subject_id=None,
                details=(
                    f"requester {actor.id} viewed {len(results)} records across "
                    f"{len(seen_subjects)} subjects"
                ),
                origin_address=origin_address,
                timestamp=now
            )
        return results
