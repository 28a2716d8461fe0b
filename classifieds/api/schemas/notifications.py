from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from classifieds.domain.enums.notification_type import NotificationType


class NotificationResponse(BaseModel):
    id: UUID
    user_id: UUID | None = None
    title: str
    message: str
    type: NotificationType
    read: bool
    listing_id: UUID | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UnreadCountResponse(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    updated: int


class AcknowledgedResponse(BaseModel):
    message: str
