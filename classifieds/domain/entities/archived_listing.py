from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from classifieds.domain.entities.listing import Listing
from classifieds.domain.enums.listing_status import ListingStatus


@dataclass(frozen=True)
class ArchivedListing:
    """
    Immutable snapshot of a listing taken when it left the live collection.

    ``original_id`` points at the removed listing and is not a live key.
    ``deleted_by`` is None when the system (expiration sweep) archived it.
    """

    original_id: UUID
    owner_id: UUID
    server: str
    category: str
    title: str
    description: str
    price: Decimal
    currency: str
    phone: str
    discord: str | None
    image_urls: tuple[str, ...]
    status: ListingStatus
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime
    deleted_by: UUID | None = None
    id: UUID = field(default_factory=uuid4)

    @classmethod
    def from_listing(
        cls, listing: Listing, *, deleted_by: UUID | None, deleted_at: datetime
    ) -> "ArchivedListing":
        return cls(
            original_id=listing.id,
            owner_id=listing.owner_id,
            server=listing.server,
            category=listing.category,
            title=listing.title,
            description=listing.description,
            price=listing.price,
            currency=listing.currency,
            phone=listing.phone,
            discord=listing.discord,
            image_urls=tuple(listing.image_urls),
            status=listing.status,
            created_at=listing.created_at,
            updated_at=listing.updated_at,
            deleted_at=deleted_at,
            deleted_by=deleted_by,
        )
