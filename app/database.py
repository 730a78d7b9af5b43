"""Database engine, session factory and transaction helpers"""

from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.exceptions import StorageError


engine = create_async_engine(
    settings.database_url,
    echo=settings.api_debug,
    pool_pre_ping=True,
)

SessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for all models"""


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped database session"""
    async with SessionLocal() as session:
        yield session


@contextmanager
def storage_errors():
    """Surface driver and ORM errors from reads as StorageError"""
    try:
        yield
    except SQLAlchemyError as e:
        raise StorageError(str(e)) from e


@asynccontextmanager
async def transaction(db: AsyncSession):
    """
    Commit on success, roll back on any failure.

    Driver and ORM errors surface as StorageError; domain errors raised
    inside the block propagate unchanged after the rollback.
    """
    try:
        yield db
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise StorageError(str(e)) from e
    except BaseException:
        await db.rollback()
        raise


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
