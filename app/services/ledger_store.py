"""Data-access helpers shared by the settlement, refresh and transfer services.

Every helper translates SQLAlchemy failures into the ledger error taxonomy so
callers only ever see ``LedgerError`` subclasses:

* ``IntegrityError`` -> ``ConstraintViolationError``
* ``StaleDataError`` (portfolio version mismatch) -> ``ConflictError``
* connection / operational failures -> ``StoreUnavailableError``
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.services.ledger_errors import (
    ConflictError,
    ConstraintViolationError,
    LedgerError,
    NotFoundError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


def _constraint_name(exc: IntegrityError) -> str | None:
    orig = getattr(exc, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None)):
        name = getattr(candidate, "constraint_name", None)
        if name:
            return name
    return None


def translate_store_error(exc: BaseException) -> BaseException:
    """Map a storage exception to its ledger error; unknown errors are returned unchanged."""
    if isinstance(exc, LedgerError):
        return exc
    if isinstance(exc, StaleDataError):
        return ConflictError(
            "Record was modified concurrently; reload and retry",
            details={"reason": "stale_version"},
        )
    if isinstance(exc, IntegrityError):
        return ConstraintViolationError(
            "Ledger constraint violated",
            details={"constraint": _constraint_name(exc)},
        )
    if isinstance(exc, (OperationalError, InterfaceError, PoolTimeoutError, ConnectionError, OSError)):
        return StoreUnavailableError("Ledger store unavailable")
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return StoreUnavailableError("Ledger store unavailable")
    return exc


def _reraise(exc: BaseException) -> None:
    translated = translate_store_error(exc)
    if translated is exc:
        raise exc
    raise translated from exc


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit on success; roll back and raise the translated error otherwise."""
    try:
        yield db
        await db.commit()
    except Exception as exc:
        await db.rollback()
        if not isinstance(exc, LedgerError):
            logger.warning("Ledger transaction rolled back: %s", exc.__class__.__name__)
        _reraise(exc)


async def execute(db: AsyncSession, stmt, params: Mapping[str, Any] | None = None):
    try:
        if params is None:
            return await db.execute(stmt)
        return await db.execute(stmt, params)
    except (SQLAlchemyError, OSError) as exc:
        _reraise(exc)


async def get(
    db: AsyncSession,
    model: type[ModelT],
    record_id: UUID,
    *,
    company_id: UUID | None = None,
    for_update: bool = False,
    error: type[LedgerError] = NotFoundError,
) -> ModelT:
    stmt = select(model).where(model.id == record_id)
    if company_id is not None:
        stmt = stmt.where(model.company_id == company_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await execute(db, stmt)
    record = result.scalar_one_or_none()
    if record is None:
        raise error(f"{model.__name__} not found", details={"id": str(record_id)})
    return record


def query(model: type[ModelT], company_id: UUID):
    """Company-scoped select for ``model``."""
    return select(model).where(model.company_id == company_id)


async def insert(db: AsyncSession, record: ModelT) -> ModelT:
    db.add(record)
    await flush(db)
    return record


async def update(
    db: AsyncSession,
    record: ModelT,
    patch: Mapping[str, Any],
) -> ModelT:
    """Apply ``patch`` to a loaded record and flush it; store errors are translated."""
    for key, value in patch.items():
        setattr(record, key, value)
    await flush(db)
    return record


async def flush(db: AsyncSession) -> None:
    try:
        await db.flush()
    except (SQLAlchemyError, OSError) as exc:
        _reraise(exc)
