"""
Database connection and session management.
"""
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool


class DatabaseManager:
    """Manager for database connections and sessions."""

    def __init__(self, database_url: str = "sqlite:///./metrics.db", pool_size: int = 5,
                 max_overflow: int = 10, echo: bool = False):
        self.database_url = database_url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.echo = echo
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None

    def initialize(self):
        """Initialize database engine and session factory."""
        if self.engine is None:
            if self.database_url.startswith("sqlite"):
                # SQLite configuration for development
                self.engine = create_engine(
                    self.database_url,
                    connect_args={
                        "check_same_thread": False,
                        "timeout": 20,
                    },
                    poolclass=StaticPool,
                    echo=self.echo,
                )
            else:
                self.engine = create_engine(
                    self.database_url,
                    pool_size=self.pool_size,
                    max_overflow=self.max_overflow,
                    echo=self.echo,
                )

            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=self.engine
            )

    def create_tables(self):
        """Create all database tables."""
        if self.engine is None:
            self.initialize()

        from .models import Base
        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session."""
        if self.engine is None:
            self.initialize()

        session = self.SessionLocal()  # type: ignore
        try:
            yield session
        finally:
            session.close()

    def dispose(self):
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            self.SessionLocal = None
