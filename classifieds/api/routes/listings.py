from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from classifieds.api.dependencies import get_current_actor, get_lifecycle, get_optional_actor
from classifieds.api.error_handlers import error_to_http, unwrap
from classifieds.api.schemas.listings import (
    CreateListingRequest,
    DeleteListingResponse,
    ListingResponse,
    ModerationRequest,
    PaginatedListingsResponse,
    StatusChangeRequest,
    UpdateListingRequest,
)
from classifieds.application.use_cases.listing_lifecycle import ListingLifecycle
from classifieds.domain.entities.actor import Actor

router = APIRouter(prefix="/listings", tags=["listings"])


@router.post("", response_model=ListingResponse, status_code=status.HTTP_201_CREATED)
async def create_listing(
    body: CreateListingRequest,
    actor: Actor = Depends(get_current_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ListingResponse:
    """Submit a listing; it waits in ``pending`` until a moderator reviews it."""
    result = await lifecycle.create(actor, body.model_dump())
    return ListingResponse.model_validate(unwrap(result))


@router.get("", response_model=PaginatedListingsResponse)
async def list_listings(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> PaginatedListingsResponse:
    """Public feed: active listings, newest first."""
    listings = await lifecycle.list_public(limit=limit, offset=offset)
    return PaginatedListingsResponse(
        listings=[ListingResponse.model_validate(listing) for listing in listings],
        limit=limit,
        offset=offset,
    )


@router.get("/mine", response_model=PaginatedListingsResponse)
async def list_my_listings(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_current_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> PaginatedListingsResponse:
    listings = await lifecycle.list_for_owner(actor.user_id, limit=limit, offset=offset)
    return PaginatedListingsResponse(
        listings=[ListingResponse.model_validate(listing) for listing in listings],
        limit=limit,
        offset=offset,
    )


@router.get("/{listing_id}", response_model=ListingResponse)
async def get_listing(
    listing_id: UUID,
    actor: Actor | None = Depends(get_optional_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ListingResponse:
    result = await lifecycle.get(listing_id, viewer=actor)
    return ListingResponse.model_validate(unwrap(result))


@router.put("/{listing_id}", response_model=ListingResponse)
async def update_listing(
    listing_id: UUID,
    body: UpdateListingRequest,
    actor: Actor = Depends(get_current_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ListingResponse:
    result = await lifecycle.edit(actor, listing_id, body.model_dump(exclude_unset=True))
    return ListingResponse.model_validate(unwrap(result))


@router.put("/{listing_id}/status", response_model=ListingResponse)
async def change_listing_status(
    listing_id: UUID,
    body: StatusChangeRequest,
    actor: Actor = Depends(get_current_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ListingResponse:
    """Owner marks an active listing as sold or cancels it."""
    result = await lifecycle.change_status(actor, listing_id, body.status)
    return ListingResponse.model_validate(unwrap(result))


@router.put("/{listing_id}/approve", response_model=ListingResponse)
async def review_listing(
    listing_id: UUID,
    body: ModerationRequest,
    actor: Actor = Depends(get_current_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ListingResponse:
    """Moderator decision on a pending listing: ``active`` or ``rejected``."""
    result = await lifecycle.moderate(actor, listing_id, body.status, reason=body.reason)
    return ListingResponse.model_validate(unwrap(result))


@router.delete("/{listing_id}", response_model=DeleteListingResponse)
async def delete_listing(
    listing_id: UUID,
    actor: Actor = Depends(get_current_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> DeleteListingResponse:
    result = await lifecycle.delete(actor, listing_id)
    if result.error is not None:
        raise error_to_http(result.error)
    return DeleteListingResponse(message="Listing deleted", archive_id=result.archived.id)
