"""
Database setup and connection management for the access-grant engine.

This module handles:
- The shared declarative Base for actors, grants, records and audit entries
- SQLAlchemy engine creation
- Session management and the single-commit transaction helper
- Database initialization
"""

from contextlib import contextmanager
from sqlalchemy import create_engine, inspect, pool, text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError
import os
from typing import Generator
import logging

import dotenv

from core.exceptions import AccessControlError, StorageUnavailableError

logger = logging.getLogger(__name__)

dotenv.load_dotenv()

Base = declarative_base()


class DatabaseConfig:
    """Configuration for database connections"""

    def __init__(self, connection_string: str = None):
        self.connection_string = connection_string or os.getenv(
            "ACCESS_DATABASE_URL",
            "sqlite://"
        )

        # Connection pooling (ignored for SQLite)
        self.pool_size = int(os.getenv("DB_POOL_SIZE", "10"))
        self.max_overflow = int(os.getenv("DB_MAX_OVERFLOW", "20"))
        self.pool_recycle = int(os.getenv("DB_POOL_RECYCLE", "1500"))

        # Echo SQL for debugging (set False in production)
        self.echo = os.getenv("DB_ECHO", "False").lower() == "true"

        logger.info(f"Access database config: pool_size={self.pool_size}, max_overflow={self.max_overflow}")


class DatabaseManager:
    """
    Manages database connections and session lifecycle.

    Usage:
        DatabaseManager.initialize()
        for session in DatabaseManager.get_session():
            ...
    """

    _engine = None
    _SessionLocal = None
    _db_type = None

    @classmethod
    def initialize(cls, config: DatabaseConfig = None):
        """
        Initialize database engine and session factory, then create tables.

        SQLite URLs get a single shared connection so an in-memory database
        is visible from every thread.
        """
        if cls._engine is not None:
            logger.warning("DatabaseManager already initialized")
            return

        if config is None:
            config = DatabaseConfig()

        # Make sure every model is registered on Base before create_all
        import identity.models  # noqa: F401
        import grants.models  # noqa: F401
        import records.models  # noqa: F401
        import audit.models  # noqa: F401

        connection_uri = config.connection_string
        logger.info("Initializing access database...")

        if connection_uri.startswith("sqlite"):
            cls._engine = create_engine(
                connection_uri,
                echo=config.echo,
                connect_args={"check_same_thread": False},
                poolclass=pool.StaticPool
            )
            cls._db_type = "sqlite"
        else:
            cls._engine = cls._create_engine(connection_uri, config)
            cls._db_type = connection_uri.split(":", 1)[0]

        cls._SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=cls._engine,
            expire_on_commit=False
        )

        cls.create_tables()
        logger.info(f"✓ Access database initialized ({cls._db_type})")

    @classmethod
    def _create_engine(cls, connection_uri: str, config: DatabaseConfig):
        """Create SQLAlchemy engine with pooling"""
        return create_engine(
            connection_uri,
            poolclass=pool.QueuePool,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_recycle=config.pool_recycle,
            pool_pre_ping=True,
            echo=config.echo,
            pool_timeout=30
        )

    @classmethod
    def create_tables(cls):
        """
        Create all tables if they don't exist (IDEMPOTENT).
        """
        if cls._engine is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        existing_tables = set(inspect(cls._engine).get_table_names())

        # Dependencies first
        table_creation_order = [
            "actors",
            "access_grants",
            "records",
            "audit_entries",
        ]

        for table_name in table_creation_order:
            table = Base.metadata.tables[table_name]
            if table_name not in existing_tables:
                table.create(cls._engine, checkfirst=True)
                logger.info(f"✓ Created table: {table_name}")
            else:
                logger.debug(f"Table already exists: {table_name}")

    @classmethod
    def dispose(cls):
        """Release the engine so initialize() can run again (tests, reloads)."""
        if cls._engine is not None:
            cls._engine.dispose()
        cls._engine = None
        cls._SessionLocal = None
        cls._db_type = None

    @classmethod
    def new_session(cls) -> Session:
        if cls._SessionLocal is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return cls._SessionLocal()

    @classmethod
    def get_session(cls) -> Generator[Session, None, None]:
        """
        FastAPI dependency for getting a database session.

        Services commit their own units of work through transaction(); this
        only guarantees rollback and close.
        """
        session = cls.new_session()
        try:
            yield session
        except Exception as e:
            try:
                session.rollback()
            except SQLAlchemyError as rollback_error:
                logger.error(f"Rollback failed: {rollback_error}")
            logger.debug(f"Session closed after error: {type(e).__name__}")
            raise
        finally:
            session.close()

    @classmethod
    def health_check(cls) -> bool:
        """Check if database is healthy"""
        try:
            if cls._SessionLocal is None:
                return False

            session = cls._SessionLocal()
            try:
                session.execute(text("SELECT 1"))
            finally:
                session.close()
            return True
        except SQLAlchemyError as e:
            logger.error(f"❌ Database health check failed: {e}")
            return False


@contextmanager
def transaction(db: Session, operation: str = "operation"):
    """
    One logical unit of work: everything inside commits together or not at all.

    Engine errors roll back and propagate unchanged. SQLAlchemy failures roll
    back and surface as StorageUnavailableError.
    """
    try:
        yield db
        db.commit()
    except AccessControlError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Storage failure during {operation}: {type(e).__name__}: {e}")
        raise StorageUnavailableError(f"Storage unavailable during {operation}") from e
    except Exception:
        db.rollback()
        raise


@contextmanager
def read_guard(operation: str = "read"):
    """Translate storage failures on read paths without opening a transaction."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Storage failure during {operation}: {type(e).__name__}: {e}")
        raise StorageUnavailableError(f"Storage unavailable during {operation}") from e
