"""
Audit recorder: the only writer of AuditEntry rows.

record() joins the caller's transaction (flush, no commit) so an entry exists
exactly when the mutation or access it describes was committed. A failed
flush propagates; the caller's transaction rolls back with it.
"""

from datetime import datetime
from typing import List, Optional, Union

from loguru import logger
from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit.models import AuditAction, AuditEntry
from core.config import get_access_config
from core.exceptions import ForbiddenActorError, StorageUnavailableError
from core.timeutils import normalize
from identity.models import Role
from storage.database import read_guard


class AuditRecorder:
    """
    Append and query audit entries.
    """

    @staticmethod
    def record(
        db: Session,
        actor_id: str,
        action: Union[AuditAction, str],
        details: str,
        target_subject_id: Optional[str] = None,
        origin_address: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> AuditEntry:
        """
        RecordAudit: append one entry inside the current transaction.

        Raises:
            StorageUnavailableError: the write could not be flushed
        """
        action_value = AuditAction(action).value
        entry = AuditEntry(
            actor_id=actor_id,
            action=action_value,
            target_subject_id=target_subject_id,
            details=details or "",
            timestamp=normalize(timestamp),
            origin_address=origin_address
        )
        try:
            db.add(entry)
            db.flush()
        except SQLAlchemyError as e:
            logger.error(f"[AUDIT] Failed to write {action_value} for {actor_id}: {type(e).__name__}: {e}")
            raise StorageUnavailableError("Audit log unavailable", actor_id=actor_id) from e

        logger.info(f"[AUDIT] {action_value} by {actor_id} (subject={target_subject_id})")
        return entry

    @staticmethod
    def query(
        db: Session,
        viewer_id: str,
        user_id: Optional[str] = None,
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[AuditEntry]:
        """
        QueryAudit, newest first.

        Args:
            viewer_id: Actor asking; supervisors see everything
            user_id: Restrict to entries written by this actor (None = all)

        Raises:
            ForbiddenActorError: a non-supervisor asked for all entries or for
                another actor's entries
        """
        from identity.service import load_actor

        viewer = load_actor(db, viewer_id)
        is_supervisor = viewer.has_role(Role.SUPERVISOR)

        if not is_supervisor:
            if user_id is None:
                user_id = viewer.id
            elif user_id != viewer.id:
                logger.warning(f"[AUDIT] {viewer.id} denied audit log of {user_id}")
                raise ForbiddenActorError("Access denied", actor_id=viewer.id, target_id=user_id)

        max_limit = get_access_config().audit_query_limit
        limit = max_limit if limit is None else min(limit, max_limit)

        with read_guard("audit query"):
            query = db.query(AuditEntry)
            if user_id is not None:
                query = query.filter(AuditEntry.actor_id == user_id)
            return query.order_by(
                desc(AuditEntry.timestamp), desc(AuditEntry.id)
            ).offset(skip).limit(limit).all()
