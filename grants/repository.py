"""
Grant store: data access for access grants.

Only GrantService writes through this repository. Methods never commit; the
service commits the grant change and its audit entry together.

Repository methods:
- create, get_by_id
- list_by_subject, list_by_requester, list_active_for_requester
- find_active (decision snapshot), find_pending
- transition (guarded compare-and-set on status + version)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import and_, desc
from sqlalchemy.orm import Session

from core.timeutils import utcnow
from grants.models import Grant, GrantStatus

logger = logging.getLogger(__name__)


class GrantRepository:
    """
    Repository for Grant database operations.
    """

    @staticmethod
    def create(
        db: Session,
        requester_id: str,
        subject_id: str,
        purpose: str,
        requested_duration_days: int,
        scope_limited: bool = False,
        note: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> Grant:
        """
        Insert a pending grant.

        Returns:
            Created Grant (flushed, not committed)
        """
        grant = Grant(
            requester_id=requester_id,
            subject_id=subject_id,
            purpose=purpose,
            requested_duration_days=requested_duration_days,
            scope_limited=scope_limited,
            note=note,
            status=GrantStatus.PENDING.value,
            created_at=created_at or utcnow(),
            version=1
        )
        db.add(grant)
        db.flush()

        logger.info(f"Created grant {grant.id} ({requester_id} -> {subject_id})")
        return grant

    @staticmethod
    def get_by_id(db: Session, grant_id: str) -> Optional[Grant]:
        return db.query(Grant).filter(Grant.id == grant_id).first()

    @staticmethod
    def list_by_subject(db: Session, subject_id: str, skip: int = 0, limit: int = 100) -> List[Grant]:
        return db.query(Grant).filter(
            Grant.subject_id == subject_id
        ).order_by(desc(Grant.created_at)).offset(skip).limit(limit).all()

    @staticmethod
    def list_by_requester(db: Session, requester_id: str, skip: int = 0, limit: int = 100) -> List[Grant]:
        return db.query(Grant).filter(
            Grant.requester_id == requester_id
        ).order_by(desc(Grant.created_at)).offset(skip).limit(limit).all()

    @staticmethod
    def find_active(db: Session, requester_id: str, subject_id: str, now: datetime) -> List[Grant]:
        """
        Approved, unexpired grants for a pair.

        status and expires_at come from the same row in one SELECT, so a
        decision never sees one without the other.
        """
        return db.query(Grant).populate_existing().filter(
            and_(
                Grant.requester_id == requester_id,
                Grant.subject_id == subject_id,
                Grant.status == GrantStatus.APPROVED.value,
                Grant.expires_at > now
            )
        ).all()

    @staticmethod
    def list_active_for_requester(db: Session, requester_id: str, now: datetime) -> List[Grant]:
        return db.query(Grant).populate_existing().filter(
            and_(
                Grant.requester_id == requester_id,
                Grant.status == GrantStatus.APPROVED.value,
                Grant.expires_at > now
            )
        ).order_by(Grant.expires_at).all()

    @staticmethod
    def find_pending(db: Session, requester_id: str, subject_id: str) -> Optional[Grant]:
        return db.query(Grant).filter(
            and_(
                Grant.requester_id == requester_id,
                Grant.subject_id == subject_id,
                Grant.status == GrantStatus.PENDING.value
            )
        ).first()

    @staticmethod
    def transition(
        db: Session,
        grant: Grant,
        expected_status: GrantStatus,
        new_status: GrantStatus,
        **values: Any
    ) -> bool:
        """
        Compare-and-set a status change.

        The UPDATE only matches if the row still has the status and version
        the caller read. Concurrent writers on the same grant therefore
        serialize: exactly one UPDATE hits, the others match zero rows.

        Returns:
            True if this call won, False if the row changed underneath it
        """
        changes: Dict[str, Any] = dict(values)
        changes["status"] = new_status.value
        changes["version"] = grant.version + 1

        updated = db.query(Grant).filter(
            and_(
                Grant.id == grant.id,
                Grant.status == expected_status.value,
                Grant.version == grant.version
            )
        ).update(changes, synchronize_session=False)

        if updated != 1:
            logger.warning(
                f"Grant {grant.id} transition {expected_status.value}->{new_status.value} "
                f"lost (version {grant.version})"
            )
            return False

        db.flush()
        db.refresh(grant)
        return True
