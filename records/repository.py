"""
Data access layer for records (the resource store collaborator).
"""

from datetime import date, datetime
from typing import List, Optional
import logging

from sqlalchemy import desc
from sqlalchemy.orm import Session

from core.timeutils import utcnow
from records.models import Record

logger = logging.getLogger(__name__)


class RecordRepository:
    """
    Repository for Record database operations.
    """

    @staticmethod
    def create(
        db: Session,
        owner_id: str,
        title: str,
        category: str,
        record_date: date,
        created_by: str,
        verified: bool,
        notes: Optional[str] = None,
        file_url: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> Record:
        """CreateResource (flushed, not committed)"""
        record = Record(
            owner_id=owner_id,
            title=title,
            category=category,
            record_date=record_date,
            created_by=created_by,
            verified=verified,
            notes=notes,
            file_url=file_url,
            created_at=created_at or utcnow()
        )
        db.add(record)
        db.flush()

        logger.info(f"Created record {record.id} for owner {owner_id}")
        return record

    @staticmethod
    def get_by_id(db: Session, record_id: str) -> Optional[Record]:
        """GetResource"""
        return db.query(Record).filter(Record.id == record_id).first()

    @staticmethod
    def list_by_owner(db: Session, owner_id: str) -> List[Record]:
        """ListResourcesByOwner, most recent record date first"""
        return db.query(Record).filter(
            Record.owner_id == owner_id
        ).order_by(desc(Record.record_date), desc(Record.created_at)).all()
