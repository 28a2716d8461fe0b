"""Unit tests for the Listing domain entity."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from classifieds.domain.entities.archived_listing import ArchivedListing
from classifieds.domain.entities.listing import Listing, clean_image_urls, parse_price
from classifieds.domain.enums.listing_status import ListingStatus
from classifieds.domain.errors import InvalidStateError, ValidationError
from classifieds.domain.events.domain_events import (
    ListingCreatedEvent,
    ListingEditedEvent,
    ListingStatusChangedEvent,
)
from classifieds.domain.state_machine.lifecycle_state_machine import InvalidStateTransitionError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_listing(**overrides) -> Listing:  # type: ignore[no-untyped-def]
    defaults = dict(
        owner_id=uuid4(),
        server="Marmara",
        category="armor",
        title="Dragon Scale Armor",
        description="Lightly used.",
        price="250",
        phone="+90 555 111 2233",
        now=NOW,
    )
    defaults.update(overrides)
    return Listing.submit(**defaults)


class TestSubmit:
    def test_creates_in_pending_status(self) -> None:
        listing = _make_listing()
        assert listing.status == ListingStatus.PENDING
        assert listing.created_at == listing.updated_at == NOW

    def test_parses_price_to_decimal(self) -> None:
        assert _make_listing(price="99.90").price == Decimal("99.90")

    def test_defaults_currency(self) -> None:
        assert _make_listing().currency == "TRY"
        assert _make_listing(default_currency="EUR").currency == "EUR"

    def test_uppercases_currency(self) -> None:
        assert _make_listing(currency="usd").currency == "USD"

    def test_strips_text_fields(self) -> None:
        listing = _make_listing(title="  Shield  ", discord="   ")
        assert listing.title == "Shield"
        assert listing.discord is None

    def test_emits_listing_created_event(self) -> None:
        listing = _make_listing()
        events = listing.collect_events()
        assert len(events) == 1
        assert isinstance(events[0], ListingCreatedEvent)
        assert events[0].listing_id == listing.id

    def test_events_cleared_after_collect(self) -> None:
        listing = _make_listing()
        listing.collect_events()
        assert listing.collect_events() == []

    @pytest.mark.parametrize("field", ["server", "category", "title", "description", "phone"])
    def test_required_text_fields(self, field: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _make_listing(**{field: "   "})
        assert field in exc_info.value.message

    def test_title_length_limit(self) -> None:
        with pytest.raises(ValidationError):
            _make_listing(title="x" * 201)

    def test_too_many_images(self) -> None:
        with pytest.raises(ValidationError):
            _make_listing(image_urls=[f"https://cdn/{i}.png" for i in range(6)])


class TestParsePrice:
    @pytest.mark.parametrize("value", ["0", "-5", "abc", "", None, "NaN", "Infinity", True])
    def test_rejects_invalid_prices(self, value: object) -> None:
        with pytest.raises(ValidationError):
            parse_price(value)

    def test_accepts_numbers_and_strings(self) -> None:
        assert parse_price(10) == Decimal("10")
        assert parse_price(" 12.5 ") == Decimal("12.5")


class TestCleanImageUrls:
    def test_none_is_empty(self) -> None:
        assert clean_image_urls(None) == []

    def test_blank_entries_dropped(self) -> None:
        assert clean_image_urls(["https://a", "  ", ""]) == ["https://a"]

    def test_string_rejected(self) -> None:
        with pytest.raises(ValidationError):
            clean_image_urls("https://a")


class TestTransitionTo:
    def test_valid_transition_updates_status(self) -> None:
        listing = _make_listing()
        listing.transition_to(ListingStatus.ACTIVE, triggered_by=uuid4(), now=NOW + timedelta(minutes=5))
        assert listing.status == ListingStatus.ACTIVE
        assert listing.updated_at == NOW + timedelta(minutes=5)

    def test_returns_previous_status(self) -> None:
        listing = _make_listing()
        assert listing.transition_to(ListingStatus.REJECTED, triggered_by=None) == ListingStatus.PENDING

    def test_emits_status_changed_event(self) -> None:
        listing = _make_listing()
        listing.collect_events()
        moderator = uuid4()
        listing.transition_to(ListingStatus.REJECTED, triggered_by=moderator, reason="Spam")
        events = listing.collect_events()
        assert len(events) == 1
        event = events[0]
        assert isinstance(event, ListingStatusChangedEvent)
        assert event.from_status == ListingStatus.PENDING
        assert event.to_status == ListingStatus.REJECTED
        assert event.triggered_by == moderator
        assert event.reason == "Spam"

    def test_invalid_transition_raises(self) -> None:
        listing = _make_listing()
        with pytest.raises(InvalidStateTransitionError):
            listing.transition_to(ListingStatus.SOLD, triggered_by=None)
        assert listing.status == ListingStatus.PENDING

    def test_updated_at_never_precedes_created_at(self) -> None:
        listing = _make_listing()
        listing.transition_to(ListingStatus.ACTIVE, triggered_by=None, now=NOW - timedelta(hours=1))
        assert listing.updated_at == NOW


class TestApplyEdit:
    def test_changes_mutable_fields(self) -> None:
        listing = _make_listing()
        listing.collect_events()
        changed = listing.apply_edit({"title": "New title", "price": "300"}, now=NOW + timedelta(hours=1))
        assert changed == ("price", "title")
        assert listing.title == "New title"
        assert listing.price == Decimal("300")
        assert listing.updated_at == NOW + timedelta(hours=1)
        events = listing.collect_events()
        assert isinstance(events[0], ListingEditedEvent)
        assert events[0].changed_fields == ("price", "title")

    def test_unchanged_values_emit_nothing(self) -> None:
        listing = _make_listing()
        listing.collect_events()
        assert listing.apply_edit({"title": "Dragon Scale Armor"}) == ()
        assert listing.collect_events() == []
        assert listing.updated_at == NOW

    def test_immutable_fields_rejected(self) -> None:
        listing = _make_listing()
        with pytest.raises(ValidationError):
            listing.apply_edit({"status": "active"})
        with pytest.raises(ValidationError):
            listing.apply_edit({"owner_id": str(uuid4())})

    def test_invalid_price_leaves_listing_untouched(self) -> None:
        listing = _make_listing()
        with pytest.raises(ValidationError):
            listing.apply_edit({"title": "Changed", "price": "-1"})
        assert listing.title == "Dragon Scale Armor"

    def test_terminal_listing_not_editable(self) -> None:
        listing = _make_listing()
        listing.transition_to(ListingStatus.REJECTED, triggered_by=None)
        with pytest.raises(InvalidStateError):
            listing.apply_edit({"title": "Another"})


class TestVersion:
    def test_starts_at_one(self) -> None:
        listing = _make_listing()
        assert listing.version == 1
        assert listing.write_guard() == {"status": "pending", "version": 1}

    def test_every_change_bumps_version(self) -> None:
        listing = _make_listing()
        listing.transition_to(ListingStatus.ACTIVE, triggered_by=None, now=NOW)
        listing.apply_edit({"title": "Renamed"}, now=NOW)
        assert listing.version == 3
        assert listing.write_guard() == {"status": "active", "version": 3}

    def test_noop_edit_keeps_version(self) -> None:
        listing = _make_listing()
        listing.apply_edit({"title": "Dragon Scale Armor"})
        assert listing.version == 1

    def test_failed_transition_keeps_version(self) -> None:
        listing = _make_listing()
        with pytest.raises(InvalidStateTransitionError):
            listing.transition_to(ListingStatus.SOLD, triggered_by=None)
        assert listing.version == 1


class TestTtl:
    def test_past_ttl_at_exact_boundary(self) -> None:
        listing = _make_listing()
        assert listing.is_past_ttl(NOW + timedelta(hours=24), timedelta(hours=24)) is True

    def test_not_past_ttl_before_boundary(self) -> None:
        listing = _make_listing()
        assert listing.is_past_ttl(NOW + timedelta(hours=23, minutes=59), timedelta(hours=24)) is False


class TestArchivedListing:
    def test_snapshot_copies_content(self) -> None:
        listing = _make_listing(image_urls=["https://cdn/a.png"])
        archived = ArchivedListing.from_listing(listing, deleted_by=None, deleted_at=NOW)
        assert archived.original_id == listing.id
        assert archived.id != listing.id
        assert archived.title == listing.title
        assert archived.price == listing.price
        assert archived.image_urls == ("https://cdn/a.png",)
        assert archived.status == ListingStatus.PENDING
        assert archived.deleted_by is None
