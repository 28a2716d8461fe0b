"""
Process-wide service wiring.

The gateway, blob store and publisher are built once at start-up and shared
by every request; FastAPI dependencies read them off ``app.state.container``.
"""
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncEngine

from classifieds.application.interfaces.auth_provider import AuthProvider
from classifieds.application.interfaces.blob_store import BlobStore
from classifieds.application.interfaces.event_publisher import EventPublisher
from classifieds.application.interfaces.persistence_gateway import PersistenceGateway
from classifieds.application.services.notification_dispatcher import NotificationDispatcher
from classifieds.application.services.quota_guard import QuotaGuard
from classifieds.application.use_cases.expiration_sweeper import ExpirationSweeper
from classifieds.application.use_cases.get_user_profile import GetUserProfile
from classifieds.application.use_cases.listing_lifecycle import ListingLifecycle
from classifieds.config import Settings, settings as default_settings
from classifieds.infrastructure.auth.jwt_auth_provider import JwtAuthProvider
from classifieds.infrastructure.database.connection import create_engine, create_schema
from classifieds.infrastructure.database.gateway import SqlAlchemyGateway
from classifieds.infrastructure.memory.in_memory_gateway import InMemoryGateway
from classifieds.infrastructure.messaging.noop_publisher import NoOpEventPublisher
from classifieds.infrastructure.messaging.rabbitmq_publisher import RabbitMQPublisher
from classifieds.infrastructure.scheduling.sweep_scheduler import SweepScheduler
from classifieds.infrastructure.storage.http_blob_store import HttpBlobStore


@dataclass
class ServiceContainer:
    gateway: PersistenceGateway
    auth_provider: AuthProvider
    event_publisher: EventPublisher
    blob_store: BlobStore | None
    quota_guard: QuotaGuard
    dispatcher: NotificationDispatcher
    lifecycle: ListingLifecycle
    sweeper: ExpirationSweeper
    scheduler: SweepScheduler
    profiles: GetUserProfile
    engine: AsyncEngine | None = None

    @classmethod
    def build(
        cls,
        *,
        config: Settings = default_settings,
        gateway: PersistenceGateway | None = None,
        auth_provider: AuthProvider | None = None,
        event_publisher: EventPublisher | None = None,
        blob_store: BlobStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "ServiceContainer":
        engine = None
        if gateway is None:
            engine = create_engine(config.database_url)
            gateway = SqlAlchemyGateway(engine, timeout=config.store_timeout_seconds)

        if event_publisher is None:
            event_publisher = (
                RabbitMQPublisher(config.rabbitmq_url) if config.rabbitmq_url else NoOpEventPublisher()
            )
        if blob_store is None and config.storage_api_url:
            blob_store = HttpBlobStore(
                config.storage_api_url, config.storage_api_key, config.storage_bucket
            )
        auth_provider = auth_provider or JwtAuthProvider(config.jwt_secret, config.jwt_algorithm)

        quota_guard = QuotaGuard(gateway, limit=config.max_active_listings)
        dispatcher = NotificationDispatcher(gateway, notify_owner_on_sold=config.notify_owner_on_sold)
        lifecycle_options = {"clock": clock} if clock is not None else {}
        lifecycle = ListingLifecycle(
            gateway,
            quota_guard,
            dispatcher,
            event_publisher,
            blob_store=blob_store,
            ttl=timedelta(hours=config.listing_ttl_hours),
            feed_window_by_ttl=config.feed_window_by_ttl,
            default_currency=config.default_currency,
            delete_retry_attempts=config.delete_retry_attempts,
            **lifecycle_options,
        )
        sweeper = ExpirationSweeper(gateway, lifecycle)
        scheduler = SweepScheduler(sweeper, interval_minutes=config.sweep_interval_minutes)

        return cls(
            gateway=gateway,
            auth_provider=auth_provider,
            event_publisher=event_publisher,
            blob_store=blob_store,
            quota_guard=quota_guard,
            dispatcher=dispatcher,
            lifecycle=lifecycle,
            sweeper=sweeper,
            scheduler=scheduler,
            profiles=GetUserProfile(gateway),
            engine=engine,
        )

    @classmethod
    def in_memory(cls, **overrides) -> "ServiceContainer":  # type: ignore[no-untyped-def]
        """Container backed by the in-memory gateway and the no-op publisher."""
        overrides.setdefault("gateway", InMemoryGateway())
        overrides.setdefault("event_publisher", NoOpEventPublisher())
        return cls.build(**overrides)

    async def prepare(self) -> None:
        # SQLite databases are created on the fly; PostgreSQL goes through Alembic.
        if self.engine is not None and self.engine.dialect.name == "sqlite":
            await create_schema(self.engine)

    async def aclose(self) -> None:
        self.scheduler.stop()
        if isinstance(self.blob_store, HttpBlobStore):
            await self.blob_store.aclose()
        if self.engine is not None:
            await self.engine.dispose()
