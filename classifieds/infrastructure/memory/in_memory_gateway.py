"""
In-process PersistenceGateway used by tests and local development.

Each operation yields to the event loop once before touching state, so
concurrent tasks interleave between calls the way they would against a real
database, while the body of a single call (count + write included) stays
atomic.
"""
import asyncio
import copy
from datetime import datetime, timezone
from uuid import UUID

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
    split_order,
)

UNIQUE_KEYS: dict[Collection, tuple[str, ...]] = {
    Collection.ARCHIVED_LISTINGS: ("original_id",),
}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(value: object) -> tuple:
    # None sorts first; mixed types never meet within one column.
    return (value is not None, value if value is not None else _EPOCH)


class InMemoryGateway(PersistenceGateway):
    def __init__(self) -> None:
        self._tables: dict[Collection, dict[UUID, Record]] = {c: {} for c in Collection}

    async def get(self, collection: Collection, record_id: UUID) -> Record | None:
        await asyncio.sleep(0)
        record = self._tables[collection].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def query(
        self,
        collection: Collection,
        filter: Filter | None = None,
        *,
        order: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        await asyncio.sleep(0)
        rows = [r for r in self._tables[collection].values() if matches_filter(r, filter)]
        if order:
            name, descending = split_order(order)
            rows.sort(key=lambda r: _sort_key(r.get(name)), reverse=descending)
        end = offset + limit if limit is not None else None
        return [copy.deepcopy(r) for r in rows[offset:end]]

    async def count(self, collection: Collection, filter: Filter | None = None) -> int:
        await asyncio.sleep(0)
        return self._count(collection, filter)

    async def insert(
        self, collection: Collection, record: Record, *, guard: CountGuard | None = None
    ) -> WriteResult:
        await asyncio.sleep(0)
        observed = None
        if guard is not None:
            observed = self._count(guard.collection, guard.filter)
            if observed >= guard.limit:
                return WriteResult(WriteStatus.GUARD_REJECTED, observed_count=observed)

        table = self._tables[collection]
        if record["id"] in table:
            raise DuplicateRecordError(collection, "id")
        for key in UNIQUE_KEYS.get(collection, ()):
            if any(existing.get(key) == record.get(key) for existing in table.values()):
                raise DuplicateRecordError(collection, key)

        table[record["id"]] = copy.deepcopy(record)
        return WriteResult(WriteStatus.APPLIED, record=copy.deepcopy(record), observed_count=observed)

    async def update(
        self,
        collection: Collection,
        record_id: UUID,
        patch: Record,
        *,
        expected: Filter | None = None,
        guard: CountGuard | None = None,
    ) -> WriteResult:
        await asyncio.sleep(0)
        record = self._tables[collection].get(record_id)
        if record is None:
            return WriteResult(WriteStatus.NOT_FOUND)
        if not matches_filter(record, expected):
            return WriteResult(WriteStatus.CONFLICT, record=copy.deepcopy(record))

        observed = None
        if guard is not None:
            observed = self._count(guard.collection, guard.filter)
            if observed >= guard.limit:
                return WriteResult(WriteStatus.GUARD_REJECTED, observed_count=observed)

        record.update(copy.deepcopy(patch))
        return WriteResult(WriteStatus.APPLIED, record=copy.deepcopy(record), observed_count=observed)

    async def update_where(self, collection: Collection, filter: Filter, patch: Record) -> int:
        await asyncio.sleep(0)
        updated = 0
        for record in self._tables[collection].values():
            if matches_filter(record, filter):
                record.update(copy.deepcopy(patch))
                updated += 1
        return updated

    async def delete(
        self, collection: Collection, record_id: UUID, *, expected: Filter | None = None
    ) -> WriteResult:
        await asyncio.sleep(0)
        table = self._tables[collection]
        record = table.get(record_id)
        if record is None:
            return WriteResult(WriteStatus.NOT_FOUND)
        if not matches_filter(record, expected):
            return WriteResult(WriteStatus.CONFLICT, record=copy.deepcopy(record))
        del table[record_id]
        return WriteResult(WriteStatus.APPLIED, record=record)

    async def archive_and_delete(
        self, listing_id: UUID, archive: Record, *, expected: Filter | None = None
    ) -> WriteResult:
        await asyncio.sleep(0)
        live = self._tables[Collection.LISTINGS]
        record = live.get(listing_id)
        if record is None:
            return WriteResult(WriteStatus.NOT_FOUND)
        if not matches_filter(record, expected):
            return WriteResult(WriteStatus.CONFLICT, record=copy.deepcopy(record))

        archives = self._tables[Collection.ARCHIVED_LISTINGS]
        if archive["id"] in archives:
            raise DuplicateRecordError(Collection.ARCHIVED_LISTINGS, "id")
        if any(a.get("original_id") == archive.get("original_id") for a in archives.values()):
            raise DuplicateRecordError(Collection.ARCHIVED_LISTINGS, "original_id")

        archives[archive["id"]] = copy.deepcopy(archive)
        del live[listing_id]
        return WriteResult(WriteStatus.APPLIED, record=copy.deepcopy(archive))

    def _count(self, collection: Collection, filter: Filter | None) -> int:
        return sum(1 for r in self._tables[collection].values() if matches_filter(r, filter))
