"""
Append-only audit log.

One row per qualifying event, never mutated or deleted. The ORM refuses
updates and deletes on AuditEntry; the integer primary key gives each writer
a monotonic order that breaks timestamp ties.
"""

from enum import Enum

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, desc, event

from core.timeutils import utcnow
from storage.database import Base


class AuditAction(str, Enum):
    """Audit event types"""
    REQUESTED = "requested"
    APPROVED = "approved"
    DENIED = "denied"
    REVOKED = "revoked"
    RECORD_CREATED = "record_created"
    RECORD_ACCESSED = "record_accessed"
    RECORDS_ACCESSED = "records_accessed"
    RECORDS_VIEWED = "records_viewed"
    RECORD_DOWNLOADED = "record_downloaded"
    ACCESS_DENIED = "access_denied"
    PROFILE_UPDATED = "profile_updated"
    ROLE_CHANGED = "role_changed"
    # Written by the external credential store
    PASSWORD_CHANGED = "password_changed"


class AuditEntry(Base):
    """Security audit log for every access decision and state change"""

    __tablename__ = "audit_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(String(36), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    target_subject_id = Column(String(36), nullable=True, index=True)
    details = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
    origin_address = Column(String(45), nullable=True)  # IPv4 or IPv6

    __table_args__ = (
        Index("idx_audit_actor_time", actor_id, desc(timestamp)),
        Index("idx_audit_action_time", action, desc(timestamp)),
    )

    def __repr__(self):
        return f"<AuditEntry(id={self.id}, actor_id={self.actor_id}, action={self.action})>"

    def to_dict(self):
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "target_subject_id": self.target_subject_id,
            "details": self.details,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "origin_address": self.origin_address,
        }


class AuditImmutableError(RuntimeError):
    """Raised when code tries to modify or delete an audit entry."""


@event.listens_for(AuditEntry, "before_update")
def refuse_update(mapper, connection, target):
    raise AuditImmutableError(f"Audit entry {target.id} is immutable")


@event.listens_for(AuditEntry, "before_delete")
def refuse_delete(mapper, connection, target):
    raise AuditImmutableError(f"Audit entry {target.id} cannot be deleted")
