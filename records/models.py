"""
Database model for protected records (resources).

A record is owned by exactly one subject and is never deleted here. Records
created by a requester are marked verified; records a subject uploads
themselves are not.
"""

import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, String, Text, desc

from core.timeutils import utcnow
from storage.database import Base


class Record(Base):
    """
    A subject's private record.

    Attributes:
        id: Unique record identifier
        owner_id: Subject who owns the record
        title: Short description
        category: Classification tag matched against a requester's specialty
        record_date: Date the record refers to
        notes: Free text body
        file_url: Pointer into the external file store
        created_by: Actor who created the record
        verified: True iff created by a requester
        created_at: Insert time
    """

    __tablename__ = "records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("actors.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False)
    record_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    file_url = Column(String(500), nullable=True)
    created_by = Column(String(36), ForeignKey("actors.id"), nullable=False)
    verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_record_owner_date", owner_id, desc(record_date)),
        Index("idx_record_owner_category", owner_id, category),
    )

    def __repr__(self):
        return f"<Record(id={self.id}, owner_id={self.owner_id}, category='{self.category}')>"

    def to_dict(self):
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "category": self.category,
            "record_date": self.record_date.isoformat() if self.record_date else None,
            "notes": self.notes,
            "file_url": self.file_url,
            "created_by": self.created_by,
            "verified": bool(self.verified),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def to_text(self) -> str:
        """Plain-text rendering served by the download endpoint."""
        return (
            f"Record: {self.title}\n"
            f"Date: {self.record_date.isoformat() if self.record_date else ''}\n"
            f"Category: {self.category}\n"
            f"Owner ID: {self.owner_id}\n"
            f"Notes: {self.notes or 'None'}\n"
            f"Verified: {'Yes' if self.verified else 'No'}\n"
        )
