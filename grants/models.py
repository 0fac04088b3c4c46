"""
Database model for access grants.

A grant starts as a requester's request and, once approved by the subject,
is a time-boxed permission to read that subject's records.

Stored statuses: pending, approved, denied, revoked. "Expired" is never
stored; an approved grant is active only while now < expires_at, and
effective_status() derives "expired" at read time.
"""

from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer,
    String, Text, desc, text
)

from core.timeutils import utcnow
from storage.database import Base


class GrantStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    REVOKED = "revoked"


EXPIRED = "expired"


class Grant(Base):
    """
    Delegated access from a subject to a requester.

    Attributes:
        id: Unique grant identifier
        requester_id: Actor with role requester
        subject_id: Actor with role subject, owner of the records
        purpose: Why access is needed (required)
        requested_duration_days: Length of access once approved
        status: pending | approved | denied | revoked
        scope_limited: Restrict to records in the requester's specialty;
            the subject's choice at approval is authoritative
        note: Optional free text
        created_at: When the request was made
        expires_at: Set iff status is approved (approval time + duration)
        decided_at / decided_by: Last successful transition
        version: Bumped on every transition, used for guarded updates
    """

    __tablename__ = "access_grants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    requester_id = Column(String(36), ForeignKey("actors.id"), nullable=False, index=True)
    subject_id = Column(String(36), ForeignKey("actors.id"), nullable=False, index=True)

    purpose = Column(Text, nullable=False)
    requested_duration_days = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default=GrantStatus.PENDING.value)
    scope_limited = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=True)
    decided_at = Column(DateTime, nullable=True)
    decided_by = Column(String(36), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'approved', 'denied', 'revoked')", name="ck_grant_status"),
        CheckConstraint("requested_duration_days > 0", name="ck_grant_duration_positive"),
        CheckConstraint(
            "(status = 'approved' AND expires_at IS NOT NULL) OR "
            "(status != 'approved' AND expires_at IS NULL)",
            name="ck_grant_expiry_iff_approved"
        ),

        # Decision lookup: active grants for a pair
        Index("idx_grant_pair_status", requester_id, subject_id, status),

        Index("idx_grant_subject_created", subject_id, desc(created_at)),
        Index("idx_grant_requester_created", requester_id, desc(created_at)),

        # At most one pending request per pair
        Index(
            "uq_grant_pending_pair", requester_id, subject_id,
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    def is_active(self, now: datetime) -> bool:
        return (
            self.status == GrantStatus.APPROVED.value
            and self.expires_at is not None
            and now < self.expires_at
        )

    def effective_status(self, now: datetime) -> str:
        if self.status == GrantStatus.APPROVED.value and not self.is_active(now):
            return EXPIRED
        return self.status

    def __repr__(self):
        return (
            f"<Grant(id={self.id}, requester={self.requester_id}, "
            f"subject={self.subject_id}, status={self.status})>"
        )

    def to_dict(self, now: datetime = None):
        now = now or utcnow()
        return {
            "id": self.id,
            "requester_id": self.requester_id,
            "subject_id": self.subject_id,
            "purpose": self.purpose,
            "requested_duration_days": self.requested_duration_days,
            "note": self.note,
            "status": self.status,
            "effective_status": self.effective_status(now),
            "is_active": self.is_active(now),
            "scope_limited": bool(self.scope_limited),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "decided_by": self.decided_by,
        }
