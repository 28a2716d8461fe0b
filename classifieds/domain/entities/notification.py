from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID, uuid4

from classifieds.domain.enums.notification_type import NotificationType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Notification:
    """One-way message to a user, or to the moderator pool when user_id is None."""

    id: UUID = field(default_factory=uuid4)
    user_id: UUID | None = None
    title: str = ""
    message: str = ""
    type: NotificationType = NotificationType.INFO
    read: bool = False
    listing_id: UUID | None = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def is_for_moderators(self) -> bool:
        return self.user_id is None
