"""
RabbitMQ event publisher.

Uses pika in a thread-pool executor so blocking I/O doesn't stall the
asyncio event loop. A new connection is opened per publish call; lifecycle
effects are low-volume.
"""
import asyncio
import json
from functools import partial

import pika
import structlog

from classifieds.application.interfaces.event_publisher import EventPublisher
from classifieds.config import settings
from classifieds.domain.events.domain_events import (
    DomainEvent,
    ListingArchivedEvent,
    ListingCreatedEvent,
    ListingEditedEvent,
    ListingStatusChangedEvent,
)

logger = structlog.get_logger(__name__)

EXCHANGE_NAME = "classifieds.events"


def event_to_routing_key(event: DomainEvent) -> str:
    if isinstance(event, ListingStatusChangedEvent):
        return f"listing.status.{event.to_status.value}"
    if isinstance(event, ListingCreatedEvent):
        return "listing.created"
    if isinstance(event, ListingEditedEvent):
        return "listing.edited"
    if isinstance(event, ListingArchivedEvent):
        return "listing.archived"
    return "event.unknown"


def serialise_event(event: DomainEvent) -> str:
    payload: dict = {  # type: ignore[type-arg]
        "event_type": event_to_routing_key(event),
        "event_id": str(event.event_id),
        "occurred_at": event.occurred_at.isoformat(),
    }

    if isinstance(event, ListingStatusChangedEvent):
        payload.update(
            {
                "listing_id": str(event.listing_id),
                "owner_id": str(event.owner_id),
                "from_status": event.from_status.value,
                "to_status": event.to_status.value,
                "triggered_by": str(event.triggered_by) if event.triggered_by else None,
                "reason": event.reason,
            }
        )
    elif isinstance(event, ListingCreatedEvent):
        payload.update(
            {
                "listing_id": str(event.listing_id),
                "owner_id": str(event.owner_id),
                "title": event.title,
                "category": event.category,
                "server": event.server,
            }
        )
    elif isinstance(event, ListingEditedEvent):
        payload.update(
            {
                "listing_id": str(event.listing_id),
                "owner_id": str(event.owner_id),
                "changed_fields": list(event.changed_fields),
            }
        )
    elif isinstance(event, ListingArchivedEvent):
        payload.update(
            {
                "listing_id": str(event.listing_id),
                "owner_id": str(event.owner_id),
                "archived_status": event.archived_status.value,
                "reason": event.reason.value,
                "deleted_by": str(event.deleted_by) if event.deleted_by else None,
            }
        )

    return json.dumps(payload, default=str)


def _blocking_publish(rabbitmq_url: str, routing_key: str, body: str) -> None:
    connection = pika.BlockingConnection(pika.URLParameters(rabbitmq_url))
    try:
        channel = connection.channel()
        channel.exchange_declare(
            exchange=EXCHANGE_NAME, exchange_type="topic", durable=True
        )
        channel.basic_publish(
            exchange=EXCHANGE_NAME,
            routing_key=routing_key,
            body=body.encode(),
            properties=pika.BasicProperties(
                delivery_mode=pika.DeliveryMode.Persistent,
                content_type="application/json",
            ),
        )
    finally:
        connection.close()


class RabbitMQPublisher(EventPublisher):
    """Publishes lifecycle effects to a RabbitMQ topic exchange."""

    def __init__(self, rabbitmq_url: str = settings.rabbitmq_url) -> None:
        self._url = rabbitmq_url

    async def publish(self, event: DomainEvent) -> None:
        routing_key = event_to_routing_key(event)
        body = serialise_event(event)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                partial(_blocking_publish, self._url, routing_key, body),
            )
            logger.debug("event_published", routing_key=routing_key, event_id=str(event.event_id))
        except Exception as exc:
            # A broker outage must not fail the transition that produced the event.
            logger.error(
                "failed_to_publish_event",
                routing_key=routing_key,
                error=str(exc),
            )

    async def is_healthy(self) -> bool:
        """Lightweight connection attempt."""
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _blocking_ping, self._url)
            return True
        except Exception as exc:
            logger.warning("rabbitmq_health_check_failed", error=str(exc))
            return False


def _blocking_ping(rabbitmq_url: str) -> None:
    connection = pika.BlockingConnection(pika.URLParameters(rabbitmq_url))
    connection.close()
