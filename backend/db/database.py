"""
Backlog Pilot database wiring.

Engine and session factory built from DATABASE_URL. Production runs on
PostgreSQL through asyncpg; any other SQLAlchemy async URL (for example
sqlite+aiosqlite) is used as given.
"""
import os
import ssl
import logging
from typing import Optional
from urllib.parse import urlparse, parse_qsl, urlencode, urlunparse

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

# libpq options asyncpg rejects as connect kwargs
_LIBPQ_ONLY_PARAMS = {"sslmode", "channel_binding"}


def convert_url_for_asyncpg(url: str) -> str:
    """Rewrite postgres:// and postgresql:// URLs to the asyncpg driver, dropping libpq-only query options"""
    if not url:
        return url

    parsed = urlparse(url)
    if not parsed.scheme.startswith("postgres"):
        return url

    query = [(k, v) for k, v in parse_qsl(parsed.query) if k not in _LIBPQ_ONLY_PARAMS]
    return urlunparse(parsed._replace(scheme="postgresql+asyncpg", query=urlencode(query)))


DATABASE_URL = convert_url_for_asyncpg(os.environ.get("DATABASE_URL", ""))
DATABASE_SSL = os.environ.get("DATABASE_SSL", "true").lower() in ("1", "true", "yes")
DATABASE_POOL_SIZE = int(os.environ.get("DATABASE_POOL_SIZE", "5"))


def build_engine(url: str) -> Optional[AsyncEngine]:
    if not url:
        return None
    if not url.startswith("postgresql+asyncpg"):
        return create_async_engine(url, echo=False)

    connect_args = {}
    if DATABASE_SSL:
        # Managed Postgres hosts present certificates we do not pin
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        connect_args["ssl"] = ssl_context

    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=DATABASE_POOL_SIZE,
        max_overflow=DATABASE_POOL_SIZE * 2,
        connect_args=connect_args,
    )


engine = build_engine(DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
) if engine else None


class Base(DeclarativeBase):
    pass


async def get_db():
    """FastAPI dependency yielding one session per request"""
    if AsyncSessionLocal is None:
        raise RuntimeError("Database not configured. Set DATABASE_URL environment variable.")

    async with AsyncSessionLocal() as session:
        yield session


async def init_db():
    """Create any missing tables. Schema changes go through alembic."""
    if engine is None:
        logger.error("DATABASE_URL is not set; skipping table creation")
        return

    from . import models  # noqa: F401  registers the tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Backlog tables ready", extra={"tables": sorted(Base.metadata.tables)})
