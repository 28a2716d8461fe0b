from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from classifieds.domain.enums.listing_status import ListingStatus


class CreateListingRequest(BaseModel):
    server: str
    category: str
    title: str
    description: str
    price: Decimal
    phone: str
    currency: str | None = None
    discord: str | None = None
    # Plain URLs are stored as-is; base64 data URLs are uploaded first.
    image_urls: list[str] = Field(default_factory=list)


class UpdateListingRequest(BaseModel):
    server: str | None = None
    category: str | None = None
    title: str | None = None
    description: str | None = None
    price: Decimal | None = None
    phone: str | None = None
    currency: str | None = None
    discord: str | None = None
    image_urls: list[str] | None = None


class StatusChangeRequest(BaseModel):
    status: ListingStatus


class ModerationRequest(BaseModel):
    status: ListingStatus
    reason: str | None = Field(default=None, max_length=500)


class ListingResponse(BaseModel):
    id: UUID
    owner_id: UUID
    server: str
    category: str
    title: str
    description: str
    price: Decimal
    currency: str
    phone: str
    discord: str | None = None
    image_urls: list[str]
    status: ListingStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaginatedListingsResponse(BaseModel):
    listings: list[ListingResponse]
    limit: int
    offset: int


class ArchivedListingResponse(BaseModel):
    id: UUID
    original_id: UUID
    owner_id: UUID
    server: str
    category: str
    title: str
    description: str
    price: Decimal
    currency: str
    phone: str
    discord: str | None = None
    image_urls: list[str]
    status: ListingStatus
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime
    deleted_by: UUID | None = None

    model_config = {"from_attributes": True}


class DeleteListingResponse(BaseModel):
    message: str
    archive_id: UUID


class SweepFailureResponse(BaseModel):
    listing_id: UUID
    reason: str


class SweepResponse(BaseModel):
    started: bool
    processed: int = 0
    orphans_removed: int = 0
    failed: list[SweepFailureResponse] = Field(default_factory=list)
