"""Conversions between domain entities and gateway records."""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from classifieds.application.interfaces.persistence_gateway import Record
from classifieds.domain.entities.archived_listing import ArchivedListing
from classifieds.domain.entities.listing import Listing
from classifieds.domain.entities.notification import Notification
from classifieds.domain.enums.listing_status import ListingStatus
from classifieds.domain.enums.notification_type import NotificationType


def _aware(value: datetime) -> datetime:
    # Some drivers (SQLite) hand back naive datetimes; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def listing_to_record(listing: Listing) -> Record:
    return {
        "id": listing.id,
        "owner_id": listing.owner_id,
        "server": listing.server,
        "category": listing.category,
        "title": listing.title,
        "description": listing.description,
        "price": listing.price,
        "currency": listing.currency,
        "phone": listing.phone,
        "discord": listing.discord,
        "image_urls": list(listing.image_urls),
        "status": listing.status.value,
        "version": listing.version,
        "created_at": listing.created_at,
        "updated_at": listing.updated_at,
    }


def listing_from_record(record: Record) -> Listing:
    return Listing(
        id=record["id"],
        owner_id=record["owner_id"],
        server=record["server"],
        category=record["category"],
        title=record["title"],
        description=record["description"],
        price=_decimal(record["price"]),
        currency=record["currency"],
        phone=record["phone"],
        discord=record.get("discord"),
        image_urls=list(record.get("image_urls") or []),
        status=ListingStatus(record["status"]),
        version=record.get("version") or 1,
        created_at=_aware(record["created_at"]),
        updated_at=_aware(record["updated_at"]),
    )


def archive_to_record(archived: ArchivedListing) -> Record:
    return {
        "id": archived.id,
        "original_id": archived.original_id,
        "owner_id": archived.owner_id,
        "server": archived.server,
        "category": archived.category,
        "title": archived.title,
        "description": archived.description,
        "price": archived.price,
        "currency": archived.currency,
        "phone": archived.phone,
        "discord": archived.discord,
        "image_urls": list(archived.image_urls),
        "status": archived.status.value,
        "created_at": archived.created_at,
        "updated_at": archived.updated_at,
        "deleted_at": archived.deleted_at,
        "deleted_by": archived.deleted_by,
    }


def archive_from_record(record: Record) -> ArchivedListing:
    return ArchivedListing(
        id=record["id"],
        original_id=record["original_id"],
        owner_id=record["owner_id"],
        server=record["server"],
        category=record["category"],
        title=record["title"],
        description=record["description"],
        price=_decimal(record["price"]),
        currency=record["currency"],
        phone=record["phone"],
        discord=record.get("discord"),
        image_urls=tuple(record.get("image_urls") or ()),
        status=ListingStatus(record["status"]),
        created_at=_aware(record["created_at"]),
        updated_at=_aware(record["updated_at"]),
        deleted_at=_aware(record["deleted_at"]),
        deleted_by=record.get("deleted_by"),
    )


def notification_to_record(notification: Notification) -> Record:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "title": notification.title,
        "message": notification.message,
        "type": notification.type.value,
        "read": notification.read,
        "listing_id": notification.listing_id,
        "created_at": notification.created_at,
    }


def notification_from_record(record: Record) -> Notification:
    return Notification(
        id=record["id"],
        user_id=record.get("user_id"),
        title=record["title"],
        message=record["message"],
        type=NotificationType(record["type"]),
        read=bool(record["read"]),
        listing_id=record.get("listing_id"),
        created_at=_aware(record["created_at"]),
    )
