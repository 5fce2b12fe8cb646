"""
Database session configuration.

This module handles database engine creation and session management
using SQLAlchemy with async support for PostgreSQL, plus the
``unit_of_work`` boundary every multi-entity write goes through.
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import Index, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    DomainValidationError,
    DuplicateKeyError,
    InvalidStateError,
    StorageError,
)

logger = logging.getLogger(__name__)

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    future=True,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()

# Value reported by PostgreSQL in the DETAIL of a unique violation
_DUPLICATE_VALUE = re.compile(r"Key \(.*\)=\((.*?)\) already exists")


def unique_key_index(name: str, column, resource: str) -> Index:
    """
    Case-insensitive unique index over ``upper(column)``.

    Keys are stored upper-cased by the services; the index makes the
    database refuse a second key that differs only in case. The index name
    is how ``unit_of_work`` recognises the violation.
    """
    return Index(name, func.upper(column), unique=True,
                 info={"resource": resource, "field": column.key})


def duplicate_key_error(exc: IntegrityError) -> Optional[DuplicateKeyError]:
    """DuplicateKeyError for a violated unique_key_index, None for any other integrity error."""
    message = str(exc.orig)
    for table in Base.metadata.tables.values():
        for index in table.indexes:
            if not (index.unique and "resource" in index.info):
                continue
            # PostgreSQL quotes the index name with ", SQLite with '
            if re.search(rf"[\"']{re.escape(index.name)}[\"']", message):
                match = _DUPLICATE_VALUE.search(message)
                return DuplicateKeyError(index.info["resource"], index.info["field"],
                                         match.group(1) if match else None)
    return None


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def unit_of_work(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block of writes as one transaction.

    Commits when the block exits cleanly. On any exception the whole
    session is rolled back, so none of the flushed writes survive, and
    database errors are translated into the application error taxonomy:

    - StaleDataError (optimistic version check) -> InvalidStateError
    - IntegrityError on a unique_key_index -> DuplicateKeyError
    - any other IntegrityError -> DomainValidationError
    - any other SQLAlchemyError -> StorageError

    Usage:
        async with unit_of_work(db):
            route.status = RouteStatus.COMPLETED
            await registry.advance_odometer(...)
    """
    try:
        yield db
        await db.commit()
    except StaleDataError as exc:
        await db.rollback()
        logger.warning("Concurrent modification detected: %s", exc)
        raise InvalidStateError("Record was modified concurrently, reload and retry") from exc
    except IntegrityError as exc:
        await db.rollback()
        logger.warning("Integrity violation: %s", exc.orig)
        duplicate = duplicate_key_error(exc)
        if duplicate is not None:
            raise duplicate from exc
        raise DomainValidationError("Integrity constraint violated", {"reason": str(exc.orig)}) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Storage failure: %s", exc)
        raise StorageError() from exc
    except BaseException:
        await db.rollback()
        raise
