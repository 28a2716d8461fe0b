"""
SQLAlchemy implementation of the PersistenceGateway.

One short-lived session per call. Count-guarded writes run the count and the
write in a single SERIALIZABLE transaction on PostgreSQL; a serialization
failure (SQLSTATE 40001) is reported as CONFLICT so the caller can retry.
"""
import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from uuid import UUID

import structlog
from sqlalchemy import delete as sa_delete
from sqlalchemy import func, select, text
from sqlalchemy import update as sa_update
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from classifieds.application.interfaces.persistence_gateway import (
    Collection,
    CountGuard,
    DuplicateRecordError,
    Filter,
    PersistenceGateway,
    Record,
    WriteResult,
    WriteStatus,
    matches_filter,
    plain_value,
    split_filter_key,
    split_order,
)
from classifieds.config import settings
from classifieds.domain.errors import TransientStoreError
from classifieds.infrastructure.database.connection import Base
from classifieds.infrastructure.database.models import (
    ArchivedListingModel,
    ListingModel,
    NotificationModel,
    UserModel,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_MODELS: dict[Collection, type[Base]] = {
    Collection.LISTINGS: ListingModel,
    Collection.ARCHIVED_LISTINGS: ArchivedListingModel,
    Collection.NOTIFICATIONS: NotificationModel,
    Collection.USERS: UserModel,
}

_UNIQUE_KEY: dict[Collection, str] = {
    Collection.ARCHIVED_LISTINGS: "original_id",
}

_SERIALIZATION_FAILURE = "40001"


def _to_record(model: Base) -> Record:
    return {column.key: getattr(model, column.key) for column in model.__table__.columns}


def _where(model: type[Base], filter: Filter | None) -> list[Any]:
    clauses: list[Any] = []
    for key, value in (filter or {}).items():
        name, op = split_filter_key(key)
        column = getattr(model, name)
        if op == "in":
            clauses.append(column.in_([plain_value(v) for v in value]))
            continue
        value = plain_value(value)
        if op == "eq":
            clauses.append(column.is_(None) if value is None else column == value)
        elif op == "ne":
            clauses.append(column.is_not(None) if value is None else column != value)
        elif op == "lt":
            clauses.append(column < value)
        elif op == "lte":
            clauses.append(column <= value)
        elif op == "gt":
            clauses.append(column > value)
        else:
            clauses.append(column >= value)
    return clauses


def _is_serialization_failure(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == _SERIALIZATION_FAILURE


class SqlAlchemyGateway(PersistenceGateway):
    def __init__(
        self,
        engine: AsyncEngine,
        *,
        timeout: float = settings.store_timeout_seconds,
    ) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
        self._timeout = timeout
        # SQLite serialises writers on its own and rejects per-transaction levels.
        self._serializable_guards = engine.dialect.name == "postgresql"

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, collection: Collection, record_id: UUID) -> Record | None:
        async def op() -> Record | None:
            async with self._sessions() as session:
                row = await session.get(_MODELS[collection], record_id)
                return _to_record(row) if row is not None else None

        return await self._call("get", collection, op)

    async def query(
        self,
        collection: Collection,
        filter: Filter | None = None,
        *,
        order: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        model = _MODELS[collection]

        async def op() -> list[Record]:
            stmt = select(model).where(*_where(model, filter))
            if order:
                name, descending = split_order(order)
                column = getattr(model, name)
                stmt = stmt.order_by(column.desc() if descending else column.asc())
            if offset:
                stmt = stmt.offset(offset)
            if limit is not None:
                stmt = stmt.limit(limit)
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return [_to_record(row) for row in result.scalars().all()]

        return await self._call("query", collection, op)

    async def count(self, collection: Collection, filter: Filter | None = None) -> int:
        async def op() -> int:
            async with self._sessions() as session:
                return await self._count(session, collection, filter)

        return await self._call("count", collection, op)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def insert(
        self, collection: Collection, record: Record, *, guard: CountGuard | None = None
    ) -> WriteResult:
        model = _MODELS[collection]
        values = {key: plain_value(value) for key, value in record.items()}

        async def op() -> WriteResult:
            async with self._sessions() as session:
                async with session.begin():
                    observed = await self._evaluate_guard(session, guard)
                    if guard is not None and observed >= guard.limit:
                        return WriteResult(WriteStatus.GUARD_REJECTED, observed_count=observed)
                    session.add(model(**values))
                    try:
                        await session.flush()
                    except IntegrityError as exc:
                        raise DuplicateRecordError(collection, _UNIQUE_KEY.get(collection, "id")) from exc
                    return WriteResult(WriteStatus.APPLIED, record=dict(record), observed_count=observed)

        return await self._call("insert", collection, op, guarded=guard is not None)

    async def update(
        self,
        collection: Collection,
        record_id: UUID,
        patch: Record,
        *,
        expected: Filter | None = None,
        guard: CountGuard | None = None,
    ) -> WriteResult:
        model = _MODELS[collection]
        values = {key: plain_value(value) for key, value in patch.items()}

        async def op() -> WriteResult:
            async with self._sessions() as session:
                async with session.begin():
                    observed = await self._evaluate_guard(session, guard)
                    current = await session.get(model, record_id)
                    if current is None:
                        return WriteResult(WriteStatus.NOT_FOUND)
                    before = _to_record(current)
                    if not matches_filter(before, expected):
                        return WriteResult(WriteStatus.CONFLICT, record=before)
                    if guard is not None and observed >= guard.limit:
                        return WriteResult(WriteStatus.GUARD_REJECTED, observed_count=observed)

                    # The expected predicates are repeated in the WHERE clause so
                    # the compare-and-set holds without SERIALIZABLE isolation too.
                    result = await session.execute(
                        sa_update(model)
                        .where(model.id == record_id, *_where(model, expected))
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        return WriteResult(WriteStatus.CONFLICT, record=before)
                    return WriteResult(
                        WriteStatus.APPLIED, record={**before, **patch}, observed_count=observed
                    )

        return await self._call("update", collection, op, guarded=guard is not None)

    async def update_where(self, collection: Collection, filter: Filter, patch: Record) -> int:
        model = _MODELS[collection]
        values = {key: plain_value(value) for key, value in patch.items()}

        async def op() -> int:
            async with self._sessions() as session:
                async with session.begin():
                    result = await session.execute(
                        sa_update(model)
                        .where(*_where(model, filter))
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    return result.rowcount or 0

        return await self._call("update_where", collection, op)

    async def delete(
        self, collection: Collection, record_id: UUID, *, expected: Filter | None = None
    ) -> WriteResult:
        model = _MODELS[collection]

        async def op() -> WriteResult:
            async with self._sessions() as session:
                async with session.begin():
                    current = await session.get(model, record_id)
                    if current is None:
                        return WriteResult(WriteStatus.NOT_FOUND)
                    before = _to_record(current)
                    if not matches_filter(before, expected):
                        return WriteResult(WriteStatus.CONFLICT, record=before)
                    result = await session.execute(
                        sa_delete(model)
                        .where(model.id == record_id, *_where(model, expected))
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        return WriteResult(WriteStatus.CONFLICT, record=before)
                    return WriteResult(WriteStatus.APPLIED, record=before)

        return await self._call("delete", collection, op)

    async def archive_and_delete(
        self, listing_id: UUID, archive: Record, *, expected: Filter | None = None
    ) -> WriteResult:
        values = {key: plain_value(value) for key, value in archive.items()}

        async def op() -> WriteResult:
            async with self._sessions() as session:
                async with session.begin():
                    current = await session.get(ListingModel, listing_id)
                    if current is None:
                        return WriteResult(WriteStatus.NOT_FOUND)
                    before = _to_record(current)
                    if not matches_filter(before, expected):
                        return WriteResult(WriteStatus.CONFLICT, record=before)
                    result = await session.execute(
                        sa_delete(ListingModel)
                        .where(ListingModel.id == listing_id, *_where(ListingModel, expected))
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        return WriteResult(WriteStatus.CONFLICT, record=before)
                    session.add(ArchivedListingModel(**values))
                    try:
                        await session.flush()
                    except IntegrityError as exc:
                        # Raising out of begin() rolls the delete back as well.
                        raise DuplicateRecordError(Collection.ARCHIVED_LISTINGS, "original_id") from exc
                    return WriteResult(WriteStatus.APPLIED, record=dict(archive))

        return await self._call("archive_and_delete", Collection.LISTINGS, op)

    async def is_healthy(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await asyncio.wait_for(conn.execute(text("SELECT 1")), timeout=self._timeout)
            return True
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("store_health_check_failed", error=str(exc))
            return False

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _count(self, session: AsyncSession, collection: Collection, filter: Filter | None) -> int:
        model = _MODELS[collection]
        stmt = select(func.count()).select_from(model).where(*_where(model, filter))
        result = await session.execute(stmt)
        return result.scalar_one()

    async def _evaluate_guard(self, session: AsyncSession, guard: CountGuard | None) -> int | None:
        if guard is None:
            return None
        if self._serializable_guards:
            await session.connection(execution_options={"isolation_level": "SERIALIZABLE"})
        return await self._count(session, guard.collection, guard.filter)

    async def _call(
        self,
        operation: str,
        collection: Collection,
        op: Callable[[], Awaitable[T]],
        *,
        guarded: bool = False,
    ) -> T:
        try:
            return await asyncio.wait_for(op(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("store_timeout", operation=operation, collection=collection.value)
            raise TransientStoreError(f"{operation} on {collection.value} timed out") from exc
        except DBAPIError as exc:
            if guarded and _is_serialization_failure(exc):
                logger.info("store_serialization_conflict", operation=operation, collection=collection.value)
                return WriteResult(WriteStatus.CONFLICT)  # type: ignore[return-value]
            logger.warning("store_error", operation=operation, collection=collection.value, error=str(exc))
            raise TransientStoreError(f"{operation} on {collection.value} failed") from exc
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("store_error", operation=operation, collection=collection.value, error=str(exc))
            raise TransientStoreError(f"{operation} on {collection.value} failed") from exc
