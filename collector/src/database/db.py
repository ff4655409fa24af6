"""
Database connection and session management.
"""
import os
import time
from contextlib import contextmanager
from typing import Iterator
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from .models import Base
from ..errors import StorageError
import logging

logger = logging.getLogger(__name__)

# Columns added after the first release; applied to older databases on startup
ADDITIVE_COLUMNS = {
    "agents": [
        ("created_at", "INTEGER DEFAULT 0"),
        ("updated_at", "INTEGER DEFAULT 0"),
    ],
    "metrics": [
        ("tcp_connections", "INTEGER DEFAULT 0"),
        ("udp_connections", "INTEGER DEFAULT 0"),
    ],
}


class Database:
    """Database manager."""

    def __init__(self, db_path: str):
        """Initialize database connection."""
        in_memory = db_path == ":memory:"

        # Ensure directory exists
        db_dir = os.path.dirname(db_path)
        if db_dir and not in_memory and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)

        # Create engine
        self.db_path = db_path
        engine_kwargs = {
            "connect_args": {"check_same_thread": False},
            "echo": False,
        }
        if in_memory:
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(f"sqlite:///{db_path}", **engine_kwargs)

        @event.listens_for(self.engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")  # Write-Ahead Logging for better concurrency
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

        # Create session factory
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

        # Create tables, then bring older files up to date
        self.create_tables()
        self.upgrade_schema()

        logger.info(f"Database initialized at {db_path}")

    def create_tables(self):
        """Create all tables."""
        Base.metadata.create_all(bind=self.engine)

    def upgrade_schema(self):
        """
        Add columns missing from databases created by older releases.

        Only additive changes are made. Existing rows keep their data and get
        the column default; agents missing created_at are backfilled with now.
        """
        inspector = inspect(self.engine)
        with self.engine.begin() as conn:
            for table, columns in ADDITIVE_COLUMNS.items():
                existing = {col["name"] for col in inspector.get_columns(table)}
                for name, ddl in columns:
                    if name not in existing:
                        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}"))
                        logger.info(f"Added column {table}.{name}")

            conn.execute(
                text("UPDATE agents SET created_at = :now WHERE created_at IS NULL OR created_at = 0"),
                {"now": int(time.time())}
            )

    @contextmanager
    def session_scope(self, session: Session = None) -> Iterator[Session]:
        """
        Provide a transactional scope.

        When an outer session is passed in, it is reused and the outer scope
        owns commit and rollback.

        Raises:
            StorageError: if the database rejects the work
        """
        if session is not None:
            yield session
            return

        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        """Close database connection."""
        self.engine.dispose()
