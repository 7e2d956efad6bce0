from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine
from sqlalchemy import text, Column, DateTime, func, TypeDecorator, CHAR
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.exc import SQLAlchemyError
import asyncio
import time
import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from core.utils.logging import structured_logger
from core.exceptions.api_exceptions import StorageException

Base = declarative_base()
CHAR_LENGTH = 255


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GUID(TypeDecorator):
    """Platform-independent GUID type.

    Uses PostgreSQL's UUID type, otherwise uses
    CHAR(36), storing as stringified UUID values with hyphens.
    """
    impl = CHAR

    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(UUID())
        else:
            return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid.UUID):
            return uuid.UUID(value)
        return value


class BaseModel(Base):
    """Base model with UUID primary key and timestamps"""
    __abstract__ = True

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)


class DatabaseManager:
    """Owns the async engine and session factory."""

    def __init__(self):
        self.engine: Optional[AsyncEngine] = None
        self.session_factory = None
        self._connection_failures = 0

    def initialize(self, database_uri: str, env_is_local: bool, engine: Optional[AsyncEngine] = None):
        """Initializes the database engine and session factory."""
        if self.engine and self.session_factory:  # Prevent re-initialization
            return

        if engine is None:
            engine = create_async_engine(
                database_uri,
                echo=env_is_local,
                pool_pre_ping=True,
                pool_recycle=3600,
            )

        session_factory = sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        self.set_engine_and_session_factory(engine, session_factory)

    def set_engine_and_session_factory(self, engine, session_factory):
        self.engine = engine
        self.session_factory = session_factory

    async def create_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self.session_factory = None

    async def health_check(self) -> dict:
        """Perform database health check."""
        if not self.engine or not self.session_factory:
            return {"status": "uninitialized", "message": "Database not initialized."}

        start_time = time.time()
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            return {
                "status": "healthy",
                "response_time_ms": round((time.time() - start_time) * 1000, 2),
                "connection_failures": self._connection_failures,
            }
        except SQLAlchemyError as e:
            self._connection_failures += 1
            structured_logger.error(
                message="Database health check failed",
                metadata={"connection_failures": self._connection_failures},
                exception=e,
            )
            return {
                "status": "unhealthy",
                "response_time_ms": round((time.time() - start_time) * 1000, 2),
                "connection_failures": self._connection_failures,
            }

    @asynccontextmanager
    async def get_session_with_retry(
        self,
        max_retries: int = 3,
        retry_delay: float = 0.5,
        backoff_factor: float = 2.0,
    ) -> AsyncGenerator[AsyncSession, None]:
        """Open a session, retrying the initial connection with exponential backoff."""
        if not self.session_factory:
            raise StorageException(message="Database session factory not initialized.")

        for attempt in range(max_retries + 1):
            session = self.session_factory()
            try:
                await session.connection()
            except SQLAlchemyError as e:
                await session.close()
                self._connection_failures += 1
                if attempt == max_retries:
                    structured_logger.error(
                        message=f"Database connection failed after {max_retries + 1} attempts",
                        metadata={"total_failures": self._connection_failures},
                        exception=e,
                    )
                    raise StorageException(
                        message="Database connection failed",
                        metadata={"attempts": max_retries + 1, "error_type": type(e).__name__},
                    )
                delay = retry_delay * (backoff_factor ** attempt)
                structured_logger.warning(
                    message=f"Database connection failed on attempt {attempt + 1}, retrying in {delay}s",
                    metadata={"attempt": attempt + 1, "max_retries": max_retries},
                    exception=e,
                )
                await asyncio.sleep(delay)
                continue

            try:
                yield session
            finally:
                await session.close()
            return


# Global database manager instance
db_manager = DatabaseManager()


def initialize_db(database_uri: str, env_is_local: bool, engine: Optional[AsyncEngine] = None):
    """Initializes the database manager with engine and session factory."""
    db_manager.initialize(database_uri, env_is_local, engine=engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with db_manager.get_session_with_retry() as session:
        yield session


async def get_db_health() -> dict:
    """Get database health status."""
    return await db_manager.health_check()
