"""
Storage port used by every lifecycle component.

Records are plain dicts keyed by column name. Filters are dicts whose keys are
either a bare field name (equality) or ``field__op`` where op is one of
``eq, ne, lt, lte, gt, gte, in``. Ordering is ``"field"`` or ``"-field"``.

Adapters must bound every call with a timeout and raise TransientStoreError for
timeouts and driver failures, assuming no partial state.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

Record = dict[str, Any]
Filter = dict[str, Any]

FILTER_OPERATORS = frozenset({"eq", "ne", "lt", "lte", "gt", "gte", "in"})


class Collection(str, Enum):
    LISTINGS = "listings"
    ARCHIVED_LISTINGS = "archived_listings"
    NOTIFICATIONS = "notifications"
    USERS = "users"


class WriteStatus(str, Enum):
    APPLIED = "applied"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    GUARD_REJECTED = "guard_rejected"


@dataclass(frozen=True)
class CountGuard:
    """Reject a write when ``count(collection, filter) >= limit``.

    The count and the write are evaluated atomically by the adapter.
    """

    collection: Collection
    filter: Filter
    limit: int


@dataclass(frozen=True)
class WriteResult:
    status: WriteStatus
    record: Record | None = None
    # Filled in when a CountGuard was evaluated
    observed_count: int | None = None

    @property
    def applied(self) -> bool:
        return self.status is WriteStatus.APPLIED


class DuplicateRecordError(Exception):
    """A unique key (id, archived original_id) already exists."""

    def __init__(self, collection: Collection, key: str) -> None:
        self.collection = collection
        self.key = key
        super().__init__(f"Duplicate {key} in {collection.value}")


def split_filter_key(key: str) -> tuple[str, str]:
    field_name, _, op = key.partition("__")
    op = op or "eq"
    if op not in FILTER_OPERATORS:
        raise ValueError(f"Unsupported filter operator: {op}")
    return field_name, op


def split_order(order: str) -> tuple[str, bool]:
    """Return (field, descending)."""
    if order.startswith("-"):
        return order[1:], True
    return order, False


def plain_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def matches_filter(record: Record, filter: Filter | None) -> bool:
    """Evaluate a filter against a record held in memory."""
    for key, expected in (filter or {}).items():
        name, op = split_filter_key(key)
        actual = plain_value(record.get(name))
        if op == "in":
            if actual not in [plain_value(v) for v in expected]:
                return False
            continue
        expected = plain_value(expected)
        if op == "eq":
            ok = actual == expected
        elif op == "ne":
            ok = actual != expected
        elif actual is None or expected is None:
            ok = False
        elif op == "lt":
            ok = actual < expected
        elif op == "lte":
            ok = actual <= expected
        elif op == "gt":
            ok = actual > expected
        else:
            ok = actual >= expected
        if not ok:
            return False
    return True


class PersistenceGateway(ABC):
    """Port for the durable store holding listings, archives, notifications and users."""

    @abstractmethod
    async def get(self, collection: Collection, record_id: UUID) -> Record | None:
        ...

    @abstractmethod
    async def query(
        self,
        collection: Collection,
        filter: Filter | None = None,
        *,
        order: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        ...

    @abstractmethod
    async def count(self, collection: Collection, filter: Filter | None = None) -> int:
        ...

    @abstractmethod
    async def insert(
        self, collection: Collection, record: Record, *, guard: CountGuard | None = None
    ) -> WriteResult:
        """Insert a record. Raises DuplicateRecordError on a unique-key clash."""
        ...

    @abstractmethod
    async def update(
        self,
        collection: Collection,
        record_id: UUID,
        patch: Record,
        *,
        expected: Filter | None = None,
        guard: CountGuard | None = None,
    ) -> WriteResult:
        """Conditionally patch one record.

        ``expected`` is matched against the stored record (compare-and-set);
        a mismatch yields CONFLICT, a missing record NOT_FOUND, a failed
        guard GUARD_REJECTED.
        """
        ...

    @abstractmethod
    async def update_where(self, collection: Collection, filter: Filter, patch: Record) -> int:
        ...

    @abstractmethod
    async def delete(
        self, collection: Collection, record_id: UUID, *, expected: Filter | None = None
    ) -> WriteResult:
        ...

    @abstractmethod
    async def archive_and_delete(
        self, listing_id: UUID, archive: Record, *, expected: Filter | None = None
    ) -> WriteResult:
        """Move a live listing into the archive as one atomic step.

        Inserts ``archive`` into ARCHIVED_LISTINGS and deletes the live row, or
        does neither. A missing live row yields NOT_FOUND, an ``expected``
        mismatch CONFLICT. An archive already holding this ``original_id``
        raises DuplicateRecordError with nothing changed.
        """
        ...

    async def is_healthy(self) -> bool:
        return True
