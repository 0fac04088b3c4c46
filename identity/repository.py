"""
Data access layer for actors (the identity store collaborator).

Repository methods never commit; the calling service owns the transaction.
"""

from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from identity.models import Actor, Role

logger = logging.getLogger(__name__)


class ActorRepository:
    """
    Repository for Actor database operations.
    """

    @staticmethod
    def create(
        db: Session,
        username: str,
        full_name: str,
        role: Role,
        email: Optional[str] = None,
        specialty: Optional[str] = None,
        phone: Optional[str] = None
    ) -> Actor:
        """
        Register an actor. Credentials live in the external credential store.
        """
        actor = Actor(
            username=username,
            full_name=full_name,
            role=Role(role).value,
            email=email,
            specialty=specialty,
            phone=phone
        )
        db.add(actor)
        db.flush()

        logger.info(f"Created actor {actor.id} ({actor.role})")
        return actor

    @staticmethod
    def get_by_id(db: Session, actor_id: str) -> Optional[Actor]:
        """GetActor: fresh read, never served from a cache."""
        if not actor_id:
            return None
        return db.query(Actor).populate_existing().filter(Actor.id == actor_id).first()

    @staticmethod
    def get_by_username(db: Session, username: str) -> Optional[Actor]:
        return db.query(Actor).filter(Actor.username == username).first()

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[Actor]:
        return db.query(Actor).filter(Actor.email == email).first()

    @staticmethod
    def list_by_role(db: Session, role: Role) -> List[Actor]:
        """ListActorsByRole"""
        return db.query(Actor).filter(
            Actor.role == Role(role).value
        ).order_by(Actor.full_name).all()

    @staticmethod
    def update(db: Session, actor: Actor, **updates) -> Actor:
        for key, value in updates.items():
            if hasattr(actor, key):
                setattr(actor, key, value)
        db.flush()

        logger.info(f"Updated actor {actor.id}: {sorted(updates)}")
        return actor
