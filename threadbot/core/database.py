import ssl
from collections.abc import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from threadbot.config import get_settings
from threadbot.core.logging import get_logger

logger = get_logger(__name__)

settings = get_settings()

LOCAL_HOSTS = ("localhost", "127.0.0.1", "db")


def _normalize_url(url: str) -> tuple[str, dict]:
    """
    Strip libpq-only query params that asyncpg rejects.

    Hosted Postgres URLs often carry sslmode / channel_binding. asyncpg
    doesn't accept them, so they are removed and SSL is passed through
    connect_args instead. Local and sqlite URLs get no SSL context.
    """
    parsed = urlparse(url)
    if parsed.scheme.startswith("sqlite"):
        return url, {}

    params = parse_qs(parsed.query)
    for param in ["sslmode", "channel_binding", "options"]:
        params.pop(param, None)

    new_query = urlencode(params, doseq=True)
    clean_url = urlunparse(parsed._replace(query=new_query))

    hostname = parsed.hostname or ""
    if hostname in LOCAL_HOSTS:
        return clean_url, {}
    return clean_url, {"ssl": ssl.create_default_context()}


clean_url, connect_args = _normalize_url(settings.database_url)

engine_kwargs: dict = {"echo": settings.debug, "connect_args": connect_args}
if not clean_url.startswith("sqlite"):
    engine_kwargs.update(pool_pre_ping=True, pool_size=5, max_overflow=10, pool_recycle=280)

engine = create_async_engine(clean_url, **engine_kwargs)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.bind(error=str(e)).error("database_transaction_rollback")
            await session.rollback()
            raise
