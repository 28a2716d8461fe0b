from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class ListingStatsResponse(BaseModel):
    active: int
    sold: int
    total: int

    model_config = {"from_attributes": True}


class UserProfileResponse(BaseModel):
    id: UUID
    username: str
    role: str
    avatar_url: str | None = None
    created_at: datetime | None = None
    stats: ListingStatsResponse

    model_config = {"from_attributes": True}
