from abc import ABC, abstractmethod

from classifieds.domain.events.domain_events import DomainEvent


class EventPublisher(ABC):
    """Port for publishing lifecycle effects to the message bus.

    Implementations log and swallow delivery failures; a broker outage must
    never fail a lifecycle transition.
    """

    @abstractmethod
    async def publish(self, event: DomainEvent) -> None:
        ...

    async def publish_many(self, events: list[DomainEvent]) -> None:
        for event in events:
            await self.publish(event)

    async def is_healthy(self) -> bool:
        return True
