from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from classifieds.application.interfaces.persistence_gateway import Collection, PersistenceGateway
from classifieds.domain.enums.listing_status import ListingStatus


@dataclass
class ListingStats:
    active: int
    sold: int
    total: int


@dataclass
class UserProfile:
    id: UUID
    username: str
    role: str
    avatar_url: str | None
    created_at: datetime | None
    stats: ListingStats


class GetUserProfile:
    """Use case: public profile of a user with counts of their live listings."""

    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway

    async def execute(self, user_id: UUID) -> UserProfile | None:
        user = await self._gateway.get(Collection.USERS, user_id)
        if user is None:
            return None

        owned = {"owner_id": user_id}
        active = await self._gateway.count(
            Collection.LISTINGS, {**owned, "status": ListingStatus.ACTIVE.value}
        )
        sold = await self._gateway.count(
            Collection.LISTINGS, {**owned, "status": ListingStatus.SOLD.value}
        )
        total = await self._gateway.count(Collection.LISTINGS, owned)

        created_at = user.get("created_at")
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        return UserProfile(
            id=user["id"],
            username=user["username"],
            role=user.get("role") or "user",
            avatar_url=user.get("avatar_url"),
            created_at=created_at,
            stats=ListingStats(active=active, sold=sold, total=total),
        )
