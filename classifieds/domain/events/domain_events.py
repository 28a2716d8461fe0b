from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from classifieds.domain.enums.listing_status import ListingStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArchiveReason(str, Enum):
    OWNER_DELETE = "owner_delete"
    MODERATOR_DELETE = "moderator_delete"
    EXPIRED = "expired"


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all lifecycle effects."""

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ListingCreatedEvent(DomainEvent):
    """Emitted when a listing is submitted and enters moderation."""

    listing_id: UUID = field(default_factory=uuid4)
    owner_id: UUID = field(default_factory=uuid4)
    title: str = ""
    category: str = ""
    server: str = ""


@dataclass(frozen=True)
class ListingStatusChangedEvent(DomainEvent):
    """Emitted whenever a listing moves between statuses."""

    listing_id: UUID = field(default_factory=uuid4)
    owner_id: UUID = field(default_factory=uuid4)
    title: str = ""
    from_status: ListingStatus = ListingStatus.PENDING
    to_status: ListingStatus = ListingStatus.PENDING
    # None means the system (expiration sweep) triggered the change.
    triggered_by: UUID | None = None
    reason: str | None = None


@dataclass(frozen=True)
class ListingEditedEvent(DomainEvent):
    listing_id: UUID = field(default_factory=uuid4)
    owner_id: UUID = field(default_factory=uuid4)
    changed_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class ListingArchivedEvent(DomainEvent):
    """Emitted once the archive record exists and the live listing is gone."""

    listing_id: UUID = field(default_factory=uuid4)
    owner_id: UUID = field(default_factory=uuid4)
    title: str = ""
    archived_status: ListingStatus = ListingStatus.PENDING
    reason: ArchiveReason = ArchiveReason.OWNER_DELETE
    deleted_by: UUID | None = None
