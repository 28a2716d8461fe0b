from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from classifieds.domain.enums.listing_status import ListingStatus
from classifieds.domain.errors import InvalidStateError, ValidationError
from classifieds.domain.events.domain_events import (
    DomainEvent,
    ListingCreatedEvent,
    ListingEditedEvent,
    ListingStatusChangedEvent,
)
from classifieds.domain.state_machine.lifecycle_state_machine import LifecycleStateMachine

_state_machine = LifecycleStateMachine()

REQUIRED_TEXT_FIELDS: tuple[str, ...] = ("server", "category", "title", "description", "phone")
MUTABLE_FIELDS: frozenset[str] = frozenset(
    {
        "server",
        "category",
        "title",
        "description",
        "price",
        "currency",
        "phone",
        "discord",
        "image_urls",
    }
)
MAX_IMAGES = 5

_MAX_LENGTHS: dict[str, int] = {
    "server": 64,
    "category": 64,
    "title": 200,
    "description": 5000,
    "currency": 8,
    "phone": 32,
    "discord": 64,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_price(value: Any) -> Decimal:
    """Coerce a user-supplied price; it must be a finite number above zero."""
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError("price is required.")
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("price must be a number.") from exc
    if not price.is_finite():
        raise ValidationError("price must be a finite number.")
    if price <= 0:
        raise ValidationError("price must be greater than zero.")
    return price


def _clean_text(name: str, value: Any, *, required: bool) -> str | None:
    text = str(value).strip() if value is not None else ""
    if not text:
        if required:
            raise ValidationError(f"{name} is required.")
        return None
    limit = _MAX_LENGTHS[name]
    if len(text) > limit:
        raise ValidationError(f"{name} must be at most {limit} characters.")
    return text


def clean_image_urls(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValidationError("image_urls must be a list of URLs.")
    urls = [str(url).strip() for url in value if str(url).strip()]
    if len(urls) > MAX_IMAGES:
        raise ValidationError(f"A listing can carry at most {MAX_IMAGES} images.")
    return urls


def _clean_field(name: str, value: Any) -> Any:
    if name == "price":
        return parse_price(value)
    if name == "image_urls":
        return clean_image_urls(value)
    if name == "currency":
        currency = _clean_text(name, value, required=True)
        return currency.upper() if currency else currency
    return _clean_text(name, value, required=name in REQUIRED_TEXT_FIELDS)


@dataclass
class Listing:
    """
    A marketplace offer owned by exactly one user.

    Status changes go through transition_to() so that the state machine is
    always consulted; edits go through apply_edit(). Both record domain events
    that the application layer collects after persisting.
    """

    # Identity
    id: UUID = field(default_factory=uuid4)
    owner_id: UUID = field(default_factory=uuid4)

    # Content
    server: str = ""
    category: str = ""
    title: str = ""
    description: str = ""
    price: Decimal = Decimal("0")
    currency: str = "TRY"
    phone: str = ""
    discord: str | None = None
    image_urls: list[str] = field(default_factory=list)

    # State
    status: ListingStatus = ListingStatus.PENDING
    # Incremented by every change; the stored value guards conditional writes.
    version: int = 1

    # Timestamps
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    # Pending domain events (collected and cleared by the application layer)
    _events: list[DomainEvent] = field(default_factory=list, repr=False, compare=False)

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def submit(
        cls,
        *,
        owner_id: UUID,
        server: Any,
        category: Any,
        title: Any,
        description: Any,
        price: Any,
        phone: Any,
        currency: Any = None,
        discord: Any = None,
        image_urls: Any = None,
        default_currency: str = "TRY",
        now: datetime | None = None,
    ) -> "Listing":
        """Validate a submission and build a listing awaiting moderation."""
        now = now or _utcnow()
        listing = cls(
            owner_id=owner_id,
            server=_clean_text("server", server, required=True),
            category=_clean_text("category", category, required=True),
            title=_clean_text("title", title, required=True),
            description=_clean_text("description", description, required=True),
            price=parse_price(price),
            currency=_clean_field("currency", currency or default_currency),
            phone=_clean_text("phone", phone, required=True),
            discord=_clean_text("discord", discord, required=False),
            image_urls=clean_image_urls(image_urls),
            status=ListingStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        listing._events.append(
            ListingCreatedEvent(
                listing_id=listing.id,
                owner_id=owner_id,
                title=listing.title,
                category=listing.category,
                server=listing.server,
            )
        )
        return listing

    # -------------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------------

    def transition_to(
        self,
        new_status: ListingStatus,
        triggered_by: UUID | None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> ListingStatus:
        """Validate and apply a status transition, recording the domain event.

        Returns the previous status so callers can compare-and-set on it.
        """
        _state_machine.validate_transition(self.status, new_status)

        old_status = self.status
        self.status = new_status
        self._touch(now)

        self._events.append(
            ListingStatusChangedEvent(
                listing_id=self.id,
                owner_id=self.owner_id,
                title=self.title,
                from_status=old_status,
                to_status=new_status,
                triggered_by=triggered_by,
                reason=reason,
            )
        )
        return old_status

    def apply_edit(self, changes: Mapping[str, Any], now: datetime | None = None) -> tuple[str, ...]:
        """Apply owner edits to mutable content fields. Returns the fields that changed."""
        if not self.status.is_editable:
            raise InvalidStateError(
                f"Listing cannot be edited while it is {self.status.value}."
            )
        unknown = sorted(set(changes) - MUTABLE_FIELDS)
        if unknown:
            raise ValidationError(f"These fields cannot be edited: {', '.join(unknown)}.")

        cleaned = {name: _clean_field(name, value) for name, value in changes.items()}
        changed = tuple(
            sorted(name for name, value in cleaned.items() if getattr(self, name) != value)
        )
        if not changed:
            return changed

        for name in changed:
            setattr(self, name, cleaned[name])
        self._touch(now)
        self._events.append(
            ListingEditedEvent(listing_id=self.id, owner_id=self.owner_id, changed_fields=changed)
        )
        return changed

    def _touch(self, now: datetime | None) -> None:
        # updated_at never precedes created_at, even with a skewed clock.
        self.updated_at = max(now or _utcnow(), self.created_at)
        self.version += 1

    def write_guard(self) -> dict[str, Any]:
        """Compare-and-set predicate matching the listing as it is now.

        Take it before mutating; the write then only lands if nobody else
        changed the stored row in between.
        """
        return {"status": self.status.value, "version": self.version}

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_owned_by(self, user_id: UUID) -> bool:
        return self.owner_id == user_id

    def is_past_ttl(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.created_at >= ttl

    # -------------------------------------------------------------------------
    # Event collection
    # -------------------------------------------------------------------------

    def collect_events(self) -> list[DomainEvent]:
        """Return pending events and clear the internal buffer."""
        events = list(self._events)
        self._events.clear()
        return events
