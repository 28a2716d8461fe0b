from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from classifieds.api.dependencies import get_current_actor, get_dispatcher
from classifieds.api.schemas.notifications import (
    AcknowledgedResponse,
    MarkAllReadResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from classifieds.application.services.notification_dispatcher import (
    MarkReadOutcome,
    NotificationDispatcher,
)
from classifieds.domain.entities.actor import Actor

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_current_actor),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> list[NotificationResponse]:
    """Caller's notifications, newest first; moderators also see the review pool."""
    notifications = await dispatcher.list_for(
        actor.user_id,
        include_pool=actor.is_moderator,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    actor: Actor = Depends(get_current_actor),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> UnreadCountResponse:
    count = await dispatcher.unread_count(actor.user_id, include_pool=actor.is_moderator)
    return UnreadCountResponse(unread=count)


@router.put("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    actor: Actor = Depends(get_current_actor),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> MarkAllReadResponse:
    updated = await dispatcher.mark_all_read(actor.user_id, include_pool=actor.is_moderator)
    return MarkAllReadResponse(updated=updated)


@router.put("/{notification_id}/read", response_model=AcknowledgedResponse)
async def mark_read(
    notification_id: UUID,
    actor: Actor = Depends(get_current_actor),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> AcknowledgedResponse:
    outcome = await dispatcher.mark_read(
        notification_id, actor.user_id, include_pool=actor.is_moderator
    )
    if outcome is MarkReadOutcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return AcknowledgedResponse(message="Notification marked as read")


@router.delete("/{notification_id}", response_model=AcknowledgedResponse)
async def delete_notification(
    notification_id: UUID,
    actor: Actor = Depends(get_current_actor),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> AcknowledgedResponse:
    if not await dispatcher.delete(notification_id, actor.user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return AcknowledgedResponse(message="Notification deleted")
