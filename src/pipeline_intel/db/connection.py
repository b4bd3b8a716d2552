"""Async SQLAlchemy engine and session factory for the CRM database."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from config.settings import settings


def _normalise_url(url: str) -> str:
    """Point the DSN at the async psycopg driver; require SSL off localhost."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix) and "+psycopg" not in url:
            url = "postgresql+psycopg://" + url[len(prefix):]
            break
    host = url.split("@")[-1].split("/")[0].split(":")[0] if "@" in url else ""
    if host and host not in ("localhost", "127.0.0.1") and "sslmode" not in url:
        url += ("&" if "?" in url else "?") + "sslmode=require"
    return url


def make_engine(url: str | None = None) -> AsyncEngine:
    return create_async_engine(_normalise_url(url or settings.database_url), echo=False, pool_pre_ping=True)


engine = make_engine()

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
