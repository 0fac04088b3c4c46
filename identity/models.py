"""
SQLAlchemy model for actors (subjects, requesters, supervisors).

Role is a closed set. Every access check routes through the decision function
in grants.decision, never through inline role comparisons.
"""

from enum import Enum
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Index, String

from core.timeutils import utcnow
from storage.database import Base


class Role(str, Enum):
    """Fixed actor roles"""
    SUBJECT = "subject"
    REQUESTER = "requester"
    SUPERVISOR = "supervisor"


class Actor(Base):
    """
    A person who owns records, requests access to them, or supervises.

    Attributes:
        id: Unique actor identifier (uuid string)
        username: Login handle, unique
        full_name, email, phone: Display attributes
        role: 'subject', 'requester' or 'supervisor'
        specialty: Requester's declared category, matched against record
            categories on scope-limited grants
        created_at: When the actor was registered
    """

    __tablename__ = "actors"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(100), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default=Role.SUBJECT.value)
    specialty = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("role IN ('subject', 'requester', 'supervisor')", name="ck_actor_role"),
        Index("idx_actor_role", "role"),
    )

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    def has_role(self, role: Role) -> bool:
        return self.role == role.value

    def __repr__(self):
        return f"<Actor(id={self.id}, username='{self.username}', role={self.role})>"

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "specialty": self.specialty,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def to_profile(self):
        """Short form used when enriching grant listings."""
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "specialty": self.specialty,
            "role": self.role,
        }
