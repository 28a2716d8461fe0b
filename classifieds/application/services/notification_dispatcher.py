"""
Turns lifecycle effects into user notifications and serves the pull-model
inbox (list, unread count, mark read, delete).
"""
from collections.abc import Iterable
from enum import Enum
from uuid import UUID

import structlog

from classifieds.application.interfaces.persistence_gateway import (
    Collection,
    Filter,
    PersistenceGateway,
)
from classifieds.application.mappers import notification_from_record, notification_to_record
from classifieds.config import settings
from classifieds.domain.entities.notification import Notification
from classifieds.domain.enums.listing_status import ListingStatus
from classifieds.domain.enums.notification_type import NotificationType
from classifieds.domain.events.domain_events import (
    ArchiveReason,
    DomainEvent,
    ListingArchivedEvent,
    ListingCreatedEvent,
    ListingStatusChangedEvent,
)

logger = structlog.get_logger(__name__)


class MarkReadOutcome(str, Enum):
    ACKNOWLEDGED = "acknowledged"
    NOT_FOUND = "not_found"


class NotificationDispatcher:
    def __init__(
        self,
        gateway: PersistenceGateway,
        *,
        notify_owner_on_sold: bool = settings.notify_owner_on_sold,
    ) -> None:
        self._gateway = gateway
        self._notify_owner_on_sold = notify_owner_on_sold

    # -------------------------------------------------------------------------
    # Effect -> notification
    # -------------------------------------------------------------------------

    def build(self, effect: DomainEvent) -> Notification | None:
        """Map one effect to the notification it implies, if any."""
        if isinstance(effect, ListingCreatedEvent):
            return Notification(
                user_id=None,
                title="New listing awaiting review",
                message=f'"{effect.title}" was submitted in {effect.category} on {effect.server}.',
                type=NotificationType.ADMIN,
                listing_id=effect.listing_id,
            )

        if isinstance(effect, ListingStatusChangedEvent):
            if effect.to_status is ListingStatus.ACTIVE:
                return Notification(
                    user_id=effect.owner_id,
                    title="Listing approved",
                    message=f'Your listing "{effect.title}" has been approved and is now live.',
                    type=NotificationType.SUCCESS,
                    listing_id=effect.listing_id,
                )
            if effect.to_status is ListingStatus.REJECTED:
                message = f'Your listing "{effect.title}" was rejected by a moderator.'
                if effect.reason:
                    message = f"{message} Reason: {effect.reason}"
                return Notification(
                    user_id=effect.owner_id,
                    title="Listing rejected",
                    message=message,
                    type=NotificationType.WARNING,
                    listing_id=effect.listing_id,
                )
            if effect.to_status is ListingStatus.SOLD and self._notify_owner_on_sold:
                return Notification(
                    user_id=effect.owner_id,
                    title="Listing sold",
                    message=f'Your listing "{effect.title}" was marked as sold.',
                    type=NotificationType.SUCCESS,
                    listing_id=effect.listing_id,
                )
            return None

        if isinstance(effect, ListingArchivedEvent):
            if effect.reason is ArchiveReason.EXPIRED:
                return Notification(
                    user_id=effect.owner_id,
                    title="Listing expired",
                    message=f'Your listing "{effect.title}" expired and was archived.',
                    type=NotificationType.INFO,
                    listing_id=effect.listing_id,
                )
            if effect.reason is ArchiveReason.MODERATOR_DELETE:
                return Notification(
                    user_id=effect.owner_id,
                    title="Listing removed",
                    message=f'Your listing "{effect.title}" was removed by a moderator.',
                    type=NotificationType.WARNING,
                    listing_id=effect.listing_id,
                )
            return None

        return None

    async def deliver(self, effect: DomainEvent) -> Notification | None:
        notification = self.build(effect)
        if notification is None:
            return None
        await self._gateway.insert(Collection.NOTIFICATIONS, notification_to_record(notification))
        logger.info(
            "notification_delivered",
            notification_id=str(notification.id),
            user_id=str(notification.user_id) if notification.user_id else None,
            type=notification.type.value,
            event_type=type(effect).__name__,
        )
        return notification

    async def deliver_all(self, effects: Iterable[DomainEvent]) -> list[Notification]:
        """Best-effort delivery; a failed insert never fails the caller."""
        delivered: list[Notification] = []
        for effect in effects:
            try:
                notification = await self.deliver(effect)
            except Exception:
                logger.exception(
                    "notification_delivery_failed",
                    event_type=type(effect).__name__,
                    event_id=str(effect.event_id),
                )
                continue
            if notification is not None:
                delivered.append(notification)
        return delivered

    # -------------------------------------------------------------------------
    # Inbox
    # -------------------------------------------------------------------------

    async def list_for(
        self,
        user_id: UUID,
        *,
        include_pool: bool = False,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Notification]:
        """Newest first. ``include_pool`` merges the moderator pool in."""
        fetch = offset + limit if include_pool else limit
        records = await self._gateway.query(
            Collection.NOTIFICATIONS,
            self._filter(user_id, unread_only),
            order="-created_at",
            limit=fetch,
            offset=0 if include_pool else offset,
        )
        if include_pool:
            records += await self._gateway.query(
                Collection.NOTIFICATIONS,
                self._filter(None, unread_only),
                order="-created_at",
                limit=fetch,
            )
            notifications = sorted(
                (notification_from_record(r) for r in records),
                key=lambda n: n.created_at,
                reverse=True,
            )
            return notifications[offset : offset + limit]
        return [notification_from_record(r) for r in records]

    async def unread_count(self, user_id: UUID, *, include_pool: bool = False) -> int:
        count = await self._gateway.count(Collection.NOTIFICATIONS, self._filter(user_id, True))
        if include_pool:
            count += await self._gateway.count(Collection.NOTIFICATIONS, self._filter(None, True))
        return count

    async def mark_read(
        self, notification_id: UUID, user_id: UUID, *, include_pool: bool = False
    ) -> MarkReadOutcome:
        """A foreign id and an unknown id are indistinguishable to the caller."""
        owners: list[UUID | None] = [user_id, None] if include_pool else [user_id]
        for owner in owners:
            write = await self._gateway.update(
                Collection.NOTIFICATIONS,
                notification_id,
                {"read": True},
                expected={"user_id": owner},
            )
            if write.applied:
                return MarkReadOutcome.ACKNOWLEDGED
        return MarkReadOutcome.NOT_FOUND

    async def mark_all_read(self, user_id: UUID, *, include_pool: bool = False) -> int:
        updated = await self._gateway.update_where(
            Collection.NOTIFICATIONS, self._filter(user_id, True), {"read": True}
        )
        if include_pool:
            updated += await self._gateway.update_where(
                Collection.NOTIFICATIONS, self._filter(None, True), {"read": True}
            )
        return updated

    async def delete(self, notification_id: UUID, user_id: UUID) -> bool:
        write = await self._gateway.delete(
            Collection.NOTIFICATIONS, notification_id, expected={"user_id": user_id}
        )
        return write.applied

    @staticmethod
    def _filter(user_id: UUID | None, unread_only: bool) -> Filter:
        query: Filter = {"user_id": user_id}
        if unread_only:
            query["read"] = False
        return query
