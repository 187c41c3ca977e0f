from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.core.config import settings


def to_async_url(database_url: str) -> str:
    """Use asyncpg for postgresql:// URLs. asyncpg does not accept psycopg params
    like sslmode/channel_binding, so those are stripped; SSL goes via connect_args."""
    parsed = urlparse(database_url)
    if parsed.scheme != "postgresql":
        return database_url
    query = parse_qs(parsed.query, keep_blank_values=True)
    query.pop("sslmode", None)
    query.pop("channel_binding", None)
    new_query = urlencode(query, doseq=True)
    return urlunparse(
        ("postgresql+asyncpg", parsed.netloc, parsed.path, parsed.params, new_query, parsed.fragment)
    )


def build_engine(database_url: str) -> AsyncEngine:
    url = to_async_url(database_url)
    kwargs: dict = {"echo": settings.env == "development"}
    if url.startswith("postgresql"):
        kwargs.update(pool_pre_ping=True, pool_size=5, max_overflow=10)
        if settings.database_ssl:
            kwargs["connect_args"] = {"ssl": True}
    return create_async_engine(url, **kwargs)


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.database_url)
async_session_maker = build_session_maker(engine)


async def init_db(bind: AsyncEngine = engine) -> None:
    """Create tables if using create_all; prefer Alembic in production."""
    import app.models  # noqa: F401 - register tables

    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
