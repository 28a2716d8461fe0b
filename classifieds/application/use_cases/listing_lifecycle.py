"""
Listing lifecycle orchestration.

Every mutating operation loads the listing, validates the change through the
domain entity, then writes it back as a compare-and-set on the status and
version it was loaded with. Terminating operations hand the archive snapshot
and the live delete to the gateway as one atomic step, so a listing is either
live or archived, never both; the archived effect (and its notification) is
emitted only when this call performed that step.
"""
import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import structlog

from classifieds.application.interfaces.blob_store import BlobStore, BlobStoreError, ImageUpload
from classifieds.application.interfaces.event_publisher import EventPublisher
from classifieds.application.interfaces.persistence_gateway import (
    Collection,
    DuplicateRecordError,
    PersistenceGateway,
    Record,
    WriteResult,
    WriteStatus,
)
from classifieds.application.mappers import (
    archive_from_record,
    archive_to_record,
    listing_from_record,
    listing_to_record,
)
from classifieds.application.services.notification_dispatcher import NotificationDispatcher
from classifieds.application.services.quota_guard import QuotaGuard
from classifieds.config import settings
from classifieds.domain.entities.actor import Actor
from classifieds.domain.entities.archived_listing import ArchivedListing
from classifieds.domain.entities.listing import Listing, clean_image_urls
from classifieds.domain.enums.listing_status import ListingStatus
from classifieds.domain.errors import (
    ConflictError,
    FatalError,
    InvalidStateError,
    ListingError,
    NotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    TransientStoreError,
    ValidationError,
)
from classifieds.domain.events.domain_events import (
    ArchiveReason,
    DomainEvent,
    ListingArchivedEvent,
)
from classifieds.domain.state_machine.lifecycle_state_machine import LifecycleStateMachine

logger = structlog.get_logger(__name__)

_state_machine = LifecycleStateMachine()

OWNER_STATUS_CHANGES = frozenset({ListingStatus.SOLD, ListingStatus.CANCELLED})
MODERATION_DECISIONS = frozenset({ListingStatus.ACTIVE, ListingStatus.REJECTED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _state_patch(listing: Listing) -> dict[str, Any]:
    return {"status": listing.status.value, "updated_at": listing.updated_at, "version": listing.version}


@dataclass
class LifecycleResult:
    listing: Listing | None = None
    effects: list[DomainEvent] = field(default_factory=list)
    error: ListingError | None = None
    archived: ArchivedListing | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ListingLifecycle:
    """
    Use case: drive a listing through creation, moderation, owner status
    changes, edits, deletion and expiry.

    Expected failures (validation, quota, permission, not found, conflict,
    invalid state) come back in ``LifecycleResult.error``. Only
    TransientStoreError and FatalError are raised.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        quota_guard: QuotaGuard,
        dispatcher: NotificationDispatcher,
        event_publisher: EventPublisher,
        *,
        blob_store: BlobStore | None = None,
        ttl: timedelta = timedelta(hours=settings.listing_ttl_hours),
        feed_window_by_ttl: bool = settings.feed_window_by_ttl,
        default_currency: str = settings.default_currency,
        delete_retry_attempts: int = settings.delete_retry_attempts,
        delete_retry_backoff: float = 0.1,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._gateway = gateway
        self._quota = quota_guard
        self._dispatcher = dispatcher
        self._event_publisher = event_publisher
        self._blob_store = blob_store
        self.ttl = ttl
        self._feed_window_by_ttl = feed_window_by_ttl
        self._default_currency = default_currency
        self._delete_retry_attempts = max(1, delete_retry_attempts)
        self._delete_retry_backoff = delete_retry_backoff
        self._clock = clock

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def create(self, actor: Actor, payload: Mapping[str, Any]) -> LifecycleResult:
        try:
            listing = Listing.submit(
                owner_id=actor.user_id,
                server=payload.get("server"),
                category=payload.get("category"),
                title=payload.get("title"),
                description=payload.get("description"),
                price=payload.get("price"),
                phone=payload.get("phone"),
                currency=payload.get("currency"),
                discord=payload.get("discord"),
                image_urls=payload.get("image_urls"),
                default_currency=self._default_currency,
                now=self._clock(),
            )
        except ValidationError as exc:
            logger.info("listing_rejected_invalid", owner_id=str(actor.user_id), reason=exc.message)
            return LifecycleResult(error=exc)

        if any(ImageUpload.is_data_url(value) for value in listing.image_urls):
            # Advisory only; the guarded insert below stays the real gate.
            precheck = await self._quota.check(actor.user_id)
            if not precheck.allowed:
                return LifecycleResult(error=QuotaExceededError(precheck.current_count, precheck.limit))
        listing.image_urls = await self._resolve_images(listing.image_urls)

        try:
            decision = await self._quota.reserve_on_create(actor.user_id, listing_to_record(listing))
        except DuplicateRecordError as exc:
            raise FatalError(f"Listing id collision for {listing.id}") from exc
        if not decision.allowed:
            return LifecycleResult(error=QuotaExceededError(decision.current_count, decision.limit))

        effects = await self._emit(listing.collect_events())
        logger.info(
            "listing_created",
            listing_id=str(listing.id),
            owner_id=str(listing.owner_id),
            image_count=len(listing.image_urls),
        )
        return LifecycleResult(listing=listing, effects=effects)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, listing_id: UUID, viewer: Actor | None = None) -> LifecycleResult:
        """Fetch one live listing as seen by ``viewer`` (None = anonymous).

        An active listing found past its TTL is expired on the spot and
        reported as not found.
        """
        listing = await self._load(listing_id)
        if listing is None or await self.settle_if_archived(listing_id):
            return LifecycleResult(error=NotFoundError())

        now = self._clock()
        if listing.status is ListingStatus.ACTIVE and listing.is_past_ttl(now, self.ttl):
            expired = await self.expire(listing_id, now=now)
            logger.info(
                "listing_expired_on_read",
                listing_id=str(listing_id),
                expired=expired.ok,
            )
            return LifecycleResult(error=NotFoundError())

        privileged = viewer is not None and (viewer.is_moderator or listing.is_owned_by(viewer.user_id))
        if listing.status is not ListingStatus.ACTIVE and not privileged:
            return LifecycleResult(error=NotFoundError())
        return LifecycleResult(listing=listing)

    async def list_public(self, *, limit: int = 20, offset: int = 0) -> list[Listing]:
        query: dict[str, Any] = {"status": ListingStatus.ACTIVE.value}
        if self._feed_window_by_ttl:
            query["created_at__gt"] = self._clock() - self.ttl
        records = await self._gateway.query(
            Collection.LISTINGS, query, order="-created_at", limit=limit, offset=offset
        )
        return await self._without_archived(records)

    async def list_for_owner(self, owner_id: UUID, *, limit: int = 50, offset: int = 0) -> list[Listing]:
        records = await self._gateway.query(
            Collection.LISTINGS, {"owner_id": owner_id}, order="-created_at", limit=limit, offset=offset
        )
        return await self._without_archived(records)

    async def list_pending(self, *, limit: int = 50, offset: int = 0) -> list[Listing]:
        """Moderation queue, oldest first."""
        records = await self._gateway.query(
            Collection.LISTINGS,
            {"status": ListingStatus.PENDING.value},
            order="created_at",
            limit=limit,
            offset=offset,
        )
        return await self._without_archived(records)

    async def get_archived(self, original_id: UUID) -> ArchivedListing | None:
        records = await self._gateway.query(
            Collection.ARCHIVED_LISTINGS, {"original_id": original_id}, limit=1
        )
        return archive_from_record(records[0]) if records else None

    async def settle_if_archived(self, listing_id: UUID) -> bool:
        """True when ``listing_id`` already has an archive record.

        A live row that survives next to its archive is removed on the spot,
        without effects; the archive is the authoritative outcome.
        """
        if await self.get_archived(listing_id) is None:
            return False
        write = await self._gateway.delete(Collection.LISTINGS, listing_id)
        if write.applied:
            logger.warning("listing_orphan_removed", listing_id=str(listing_id))
        return True

    # -------------------------------------------------------------------------
    # Moderation
    # -------------------------------------------------------------------------

    async def approve(self, actor: Actor, listing_id: UUID) -> LifecycleResult:
        return await self.moderate(actor, listing_id, ListingStatus.ACTIVE)

    async def reject(self, actor: Actor, listing_id: UUID, reason: str | None = None) -> LifecycleResult:
        return await self.moderate(actor, listing_id, ListingStatus.REJECTED, reason=reason)

    async def moderate(
        self,
        actor: Actor,
        listing_id: UUID,
        decision: ListingStatus,
        reason: str | None = None,
    ) -> LifecycleResult:
        if not actor.is_moderator:
            return LifecycleResult(error=PermissionDeniedError("Only moderators can review listings."))
        if decision not in MODERATION_DECISIONS:
            return LifecycleResult(error=ValidationError("status must be 'active' or 'rejected'."))

        async def attempt() -> LifecycleResult:
            listing = await self._require(listing_id)
            expected = listing.write_guard()
            listing.transition_to(decision, actor.user_id, reason=reason, now=self._clock())
            patch = _state_patch(listing)

            if decision is ListingStatus.ACTIVE:
                quota = await self._quota.check_and_reserve(listing.owner_id, listing.id, patch, expected)
                if not quota.allowed:
                    raise QuotaExceededError(quota.current_count, quota.limit)
                write = quota.write
            else:
                write = await self._gateway.update(Collection.LISTINGS, listing.id, patch, expected=expected)
            self._raise_for_write(write)

            effects = await self._emit(listing.collect_events())
            logger.info(
                "listing_moderated",
                listing_id=str(listing.id),
                decision=decision.value,
                moderator_id=str(actor.user_id),
            )
            return LifecycleResult(listing=listing, effects=effects)

        return await self._run(attempt, operation="moderate", listing_id=listing_id)

    # -------------------------------------------------------------------------
    # Owner status changes
    # -------------------------------------------------------------------------

    async def mark_sold(self, actor: Actor, listing_id: UUID) -> LifecycleResult:
        return await self.change_status(actor, listing_id, ListingStatus.SOLD)

    async def cancel(self, actor: Actor, listing_id: UUID) -> LifecycleResult:
        return await self.change_status(actor, listing_id, ListingStatus.CANCELLED)

    async def change_status(self, actor: Actor, listing_id: UUID, new_status: ListingStatus) -> LifecycleResult:
        """Owner-driven ``active -> sold | cancelled``. Moderators may also mark sold."""
        if new_status not in OWNER_STATUS_CHANGES:
            return LifecycleResult(error=ValidationError("status must be 'sold' or 'cancelled'."))

        async def attempt() -> LifecycleResult:
            listing = await self._require(listing_id)
            allowed = listing.is_owned_by(actor.user_id) or (
                new_status is ListingStatus.SOLD and actor.is_moderator
            )
            if not allowed:
                raise NotFoundError()
            expected = listing.write_guard()
            from_status = listing.transition_to(new_status, actor.user_id, now=self._clock())
            write = await self._gateway.update(
                Collection.LISTINGS, listing.id, _state_patch(listing), expected=expected
            )
            self._raise_for_write(write)

            effects = await self._emit(listing.collect_events())
            logger.info(
                "listing_status_changed",
                listing_id=str(listing.id),
                from_status=from_status.value,
                to_status=new_status.value,
                actor_id=str(actor.user_id),
            )
            return LifecycleResult(listing=listing, effects=effects)

        return await self._run(attempt, operation=new_status.value, listing_id=listing_id)

    # -------------------------------------------------------------------------
    # Edit
    # -------------------------------------------------------------------------

    async def edit(self, actor: Actor, listing_id: UUID, changes: Mapping[str, Any]) -> LifecycleResult:
        async def attempt() -> LifecycleResult:
            listing = await self._require(listing_id)
            if not listing.is_owned_by(actor.user_id):
                raise NotFoundError()
            if not listing.status.is_editable:
                raise InvalidStateError(f"Listing cannot be edited while it is {listing.status.value}.")

            cleaned = dict(changes)
            if "image_urls" in cleaned:
                cleaned["image_urls"] = await self._resolve_images(clean_image_urls(cleaned["image_urls"]))

            expected = listing.write_guard()
            changed = listing.apply_edit(cleaned, now=self._clock())
            if not changed:
                return LifecycleResult(listing=listing)

            record = listing_to_record(listing)
            patch = {name: record[name] for name in changed}
            patch["updated_at"] = listing.updated_at
            patch["version"] = listing.version
            write = await self._gateway.update(Collection.LISTINGS, listing.id, patch, expected=expected)
            self._raise_for_write(write)

            effects = await self._emit(listing.collect_events())
            logger.info("listing_edited", listing_id=str(listing.id), fields=list(changed))
            return LifecycleResult(listing=listing, effects=effects)

        return await self._run(attempt, operation="edit", listing_id=listing_id)

    # -------------------------------------------------------------------------
    # Delete / expire (archival)
    # -------------------------------------------------------------------------

    async def delete(self, actor: Actor, listing_id: UUID) -> LifecycleResult:
        """Owner delete (silent) or moderator delete (owner is notified)."""

        async def attempt() -> LifecycleResult:
            listing = await self._require(listing_id)
            if listing.is_owned_by(actor.user_id):
                reason = ArchiveReason.OWNER_DELETE
            elif actor.is_moderator:
                reason = ArchiveReason.MODERATOR_DELETE
            else:
                raise PermissionDeniedError("Only the owner or a moderator can delete this listing.")
            return await self._archive_and_remove(
                listing,
                expected=listing.write_guard(),
                deleted_by=actor.user_id,
                reason=reason,
                now=self._clock(),
            )

        return await self._run(attempt, operation="delete", listing_id=listing_id)

    async def expire(self, listing_id: UUID, now: datetime | None = None) -> LifecycleResult:
        """System transition ``active -> expired``, archived in the same step.

        A live row already marked ``expired`` (written by an older deployment
        that stored the status before archiving) is archived as it stands.
        """
        now = now or self._clock()

        async def attempt() -> LifecycleResult:
            listing = await self._require(listing_id)
            expected = listing.write_guard()
            if listing.status is ListingStatus.ACTIVE:
                if not listing.is_past_ttl(now, self.ttl):
                    raise InvalidStateError("Listing has not reached its expiry time.")
                listing.transition_to(ListingStatus.EXPIRED, None, now=now)
            elif listing.status is not ListingStatus.EXPIRED:
                raise InvalidStateError(f"Listing is {listing.status.value} and cannot expire.")

            return await self._archive_and_remove(
                listing,
                expected=expected,
                deleted_by=None,
                reason=ArchiveReason.EXPIRED,
                now=now,
            )

        return await self._run(attempt, operation="expire", listing_id=listing_id)

    async def _archive_and_remove(
        self,
        listing: Listing,
        *,
        expected: dict[str, Any],
        deleted_by: UUID | None,
        reason: ArchiveReason,
        now: datetime,
    ) -> LifecycleResult:
        """Snapshot ``listing`` and swap it out of the live collection.

        ``listing`` carries any in-memory transition (expiry) already; its
        pending events are emitted together with the archived effect once the
        gateway step has been applied.
        """
        if not _state_machine.can_archive(listing.status):
            raise InvalidStateError(f"Listing is {listing.status.value} and cannot be archived.")

        archived = ArchivedListing.from_listing(listing, deleted_by=deleted_by, deleted_at=now)
        try:
            write = await self._commit_archive(archived, expected)
        except DuplicateRecordError:
            # Archived by an earlier run whose live delete never landed.
            await self.settle_if_archived(listing.id)
            raise NotFoundError()
        self._raise_for_write(write)

        effects = listing.collect_events()
        effects.append(
            ListingArchivedEvent(
                listing_id=listing.id,
                owner_id=listing.owner_id,
                title=listing.title,
                archived_status=listing.status,
                reason=reason,
                deleted_by=deleted_by,
            )
        )
        effects = await self._emit(effects)
        logger.info(
            "listing_archived",
            listing_id=str(listing.id),
            archive_id=str(archived.id),
            reason=reason.value,
            deleted_by=str(deleted_by) if deleted_by else None,
        )
        return LifecycleResult(listing=listing, effects=effects, archived=archived)

    async def _commit_archive(self, archived: ArchivedListing, expected: dict[str, Any]) -> WriteResult:
        """Run the atomic archive step, retrying transient store failures with backoff."""
        attempt = 1
        while True:
            try:
                write = await self._gateway.archive_and_delete(
                    archived.original_id, archive_to_record(archived), expected=expected
                )
            except TransientStoreError:
                if attempt >= self._delete_retry_attempts:
                    logger.error("listing_delete_failed", listing_id=str(archived.original_id), attempts=attempt)
                    raise
                logger.warning("listing_delete_retry", listing_id=str(archived.original_id), attempt=attempt)
                await asyncio.sleep(self._delete_retry_backoff * 2 ** (attempt - 1))
                attempt += 1
                continue

            if attempt > 1 and write.status is WriteStatus.NOT_FOUND:
                # A timed-out attempt may still have committed.
                existing = await self.get_archived(archived.original_id)
                if existing is not None and existing.id == archived.id:
                    return WriteResult(WriteStatus.APPLIED, record=archive_to_record(existing))
            return write

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _run(
        self, attempt: Callable[[], Awaitable[LifecycleResult]], **log_context: Any
    ) -> LifecycleResult:
        """Run ``attempt``, retrying once on Conflict.

        If the retry finds the listing gone or moved to an incompatible state,
        the original Conflict is what the caller sees.
        """
        first = await self._attempt(attempt)
        if not isinstance(first.error, ConflictError):
            return first

        logger.info("listing_transition_conflict_retry", **{k: str(v) for k, v in log_context.items()})
        second = await self._attempt(attempt)
        if isinstance(second.error, (NotFoundError, InvalidStateError)):
            return first
        return second

    @staticmethod
    async def _attempt(attempt: Callable[[], Awaitable[LifecycleResult]]) -> LifecycleResult:
        try:
            return await attempt()
        except ListingError as exc:
            return LifecycleResult(error=exc)

    async def _load(self, listing_id: UUID) -> Listing | None:
        record = await self._gateway.get(Collection.LISTINGS, listing_id)
        return listing_from_record(record) if record is not None else None

    async def _require(self, listing_id: UUID) -> Listing:
        listing = await self._load(listing_id)
        if listing is None or await self.settle_if_archived(listing_id):
            raise NotFoundError()
        return listing

    async def _without_archived(self, records: list[Record]) -> list[Listing]:
        """Map live records to listings, dropping any that already have an archive."""
        if not records:
            return []
        archived = await self._gateway.query(
            Collection.ARCHIVED_LISTINGS, {"original_id__in": [r["id"] for r in records]}
        )
        gone = {r["original_id"] for r in archived}
        return [listing_from_record(r) for r in records if r["id"] not in gone]

    def _raise_for_write(self, write: WriteResult | None) -> None:
        """Translate a write outcome; every caller loaded the listing first."""
        if write is None or write.status is WriteStatus.APPLIED:
            return
        if write.status in (WriteStatus.CONFLICT, WriteStatus.NOT_FOUND):
            # A row that vanished after the load lost the same race as a changed one.
            raise ConflictError()
        raise QuotaExceededError(write.observed_count or 0, self._quota.limit)

    async def _emit(self, effects: list[DomainEvent]) -> list[DomainEvent]:
        if effects:
            await self._dispatcher.deliver_all(effects)
            await self._event_publisher.publish_many(effects)
        return effects

    async def _resolve_images(self, values: list[str]) -> list[str]:
        """Upload data-URL images; plain URLs pass through. Failed uploads are dropped."""
        urls: list[str] = []
        for value in values:
            if not ImageUpload.is_data_url(value):
                urls.append(value)
                continue
            if self._blob_store is None:
                logger.warning("image_upload_skipped", reason="no_blob_store")
                continue
            try:
                upload = ImageUpload.from_data_url(value)
                urls.append(await self._blob_store.put(upload.data, upload.content_type))
            except (ValueError, BlobStoreError) as exc:
                logger.warning("image_upload_failed", error=str(exc))
        return urls
