from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from classifieds.api.dependencies import get_lifecycle, get_scheduler, require_moderator
from classifieds.api.schemas.listings import (
    ArchivedListingResponse,
    ListingResponse,
    PaginatedListingsResponse,
    SweepFailureResponse,
    SweepResponse,
)
from classifieds.application.use_cases.listing_lifecycle import ListingLifecycle
from classifieds.infrastructure.scheduling.sweep_scheduler import SweepScheduler

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_moderator)])


@router.get("/listings/pending", response_model=PaginatedListingsResponse)
async def list_pending_listings(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> PaginatedListingsResponse:
    """Moderation queue, oldest submission first."""
    listings = await lifecycle.list_pending(limit=limit, offset=offset)
    return PaginatedListingsResponse(
        listings=[ListingResponse.model_validate(listing) for listing in listings],
        limit=limit,
        offset=offset,
    )


@router.get("/archive/{original_id}", response_model=ArchivedListingResponse)
async def get_archived_listing(
    original_id: UUID,
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ArchivedListingResponse:
    archived = await lifecycle.get_archived(original_id)
    if archived is None:
        raise HTTPException(status_code=404, detail="Archived listing not found")
    return ArchivedListingResponse.model_validate(archived)


@router.post("/sweep", response_model=SweepResponse)
async def trigger_sweep(scheduler: SweepScheduler = Depends(get_scheduler)) -> SweepResponse:
    """Run the expiration sweep now, unless one is already in flight."""
    report = await scheduler.run_once()
    if report is None:
        return SweepResponse(started=False)
    return SweepResponse(
        started=True,
        processed=report.processed,
        orphans_removed=report.orphans_removed,
        failed=[SweepFailureResponse(listing_id=f.listing_id, reason=f.reason) for f in report.failed],
    )
