from dataclasses import dataclass
from uuid import UUID

from classifieds.domain.enums.actor_role import ActorRole


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a lifecycle operation."""

    user_id: UUID
    role: ActorRole = ActorRole.USER

    @property
    def is_moderator(self) -> bool:
        return self.role is ActorRole.MODERATOR
