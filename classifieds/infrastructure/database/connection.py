from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from classifieds.config import settings


class Base(DeclarativeBase):
    pass


def normalise_url(url: str) -> str:
    # Convert postgresql:// to postgresql+asyncpg://
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def create_engine(url: str = settings.database_url, *, echo: bool = False) -> AsyncEngine:
    url = normalise_url(url)
    if url.startswith("sqlite"):
        # An in-memory SQLite database lives as long as its single connection.
        kwargs = {"poolclass": StaticPool} if ":memory:" in url else {}
        return create_async_engine(
            url, echo=echo, connect_args={"check_same_thread": False}, **kwargs
        )
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables. Production schemas are managed by Alembic."""
    # Models register themselves on Base.metadata at import.
    from classifieds.infrastructure.database import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
