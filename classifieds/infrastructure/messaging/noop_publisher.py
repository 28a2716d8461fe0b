"""
No-op event publisher, used in tests and when no broker URL is configured.
"""
from collections import deque

import structlog

from classifieds.application.interfaces.event_publisher import EventPublisher
from classifieds.domain.events.domain_events import DomainEvent

logger = structlog.get_logger(__name__)


class NoOpEventPublisher(EventPublisher):
    """Discards all events, keeping the last few for inspection."""

    def __init__(self, keep: int = 100) -> None:
        self.discarded: deque[DomainEvent] = deque(maxlen=keep)

    async def publish(self, event: DomainEvent) -> None:
        self.discarded.append(event)
        logger.debug("noop_event_discarded", event_type=type(event).__name__)
