"""
SQLAlchemy ORM models.

These are purely infrastructure concerns; gateway records are mapped to/from
these models inside the SQLAlchemy gateway. Column types are the portable
ones (Uuid, JSON) so the same models run on PostgreSQL and SQLite.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from classifieds.domain.enums.listing_status import ListingStatus
from classifieds.domain.enums.notification_type import NotificationType
from classifieds.infrastructure.database.connection import Base

_listing_status_enum = SAEnum(
    ListingStatus,
    name="listing_status",
    values_callable=lambda obj: [e.value for e in obj],
)

_notification_type_enum = SAEnum(
    NotificationType,
    name="notification_type",
    values_callable=lambda obj: [e.value for e in obj],
)

_json = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ListingModel(Base):
    __tablename__ = "listings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    # Content
    server: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="TRY")
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    discord: Mapped[str | None] = mapped_column(String(64), nullable=True)
    image_urls: Mapped[list] = mapped_column(_json, nullable=False, default=list)  # type: ignore[type-arg]

    # State
    status: Mapped[ListingStatus] = mapped_column(_listing_status_enum, nullable=False, index=True)
    # Bumped on every write; conditional writes compare on it
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        # Quota counts and the expiry sweep both filter on these
        Index("ix_listings_owner_status", "owner_id", "status"),
        Index("ix_listings_status_created", "status", "created_at"),
    )


class ArchivedListingModel(Base):
    __tablename__ = "archived_listings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Not a foreign key: the live row is gone by the time anyone reads this.
    original_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, unique=True)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    server: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    discord: Mapped[str | None] = mapped_column(String(64), nullable=True)
    image_urls: Mapped[list] = mapped_column(_json, nullable=False, default=list)  # type: ignore[type-arg]
    status: Mapped[ListingStatus] = mapped_column(_listing_status_enum, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    # NULL means the expiry sweep archived it
    deleted_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)


class NotificationModel(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # NULL addresses the moderator pool
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[NotificationType] = mapped_column(_notification_type_enum, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    listing_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (Index("ix_notifications_user_created", "user_id", "created_at"),)


class UserModel(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="user")
    avatar_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
