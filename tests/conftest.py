"""
Pytest configuration and fixtures for Threadbot tests.

Provides:
- Async test database with SQLite (SAVEPOINT-capable)
- Test client for API testing with a fake messaging gateway
- Factory fixtures for creating test data
"""

import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from threadbot.config import Settings, get_settings
from threadbot.core.database import get_db
from threadbot.core.datetime_utils import utc_now
from threadbot.main import app
from threadbot.models import Base
from threadbot.models.linking import VerificationCode
from threadbot.models.prompt import PromptItem, PromptStatus
from threadbot.models.recipient import ContentSourceKind, Recipient, Slot
from threadbot.services.telegram import GatewayError, SentMessage, get_gateway

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_INTERNAL_KEY = "test-internal-key"
TEST_CRON_SECRET = "test-cron-secret"
TEST_WEBHOOK_SECRET = "test-webhook-secret"


# Override settings for testing
class TestSettings(Settings):
    database_url: str = TEST_DATABASE_URL
    debug: bool = True
    openai_api_key: str = "test-key"
    telegram_bot_token: str = "123:test-token"
    telegram_webhook_secret: str = TEST_WEBHOOK_SECRET
    cron_secret: str = TEST_CRON_SECRET
    cron_trusted_header: str = "x-vercel-cron"
    internal_api_key: str = TEST_INTERNAL_KEY
    base_url: str = "http://localhost:8000"
    scheduler_enabled: bool = False


def enable_savepoints(engine) -> None:
    """Let pysqlite emit BEGIN itself so SAVEPOINT / begin_nested() work."""

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


class FakeGateway:
    """Messaging gateway that records sends instead of calling Telegram."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def send(self, identity: str, text: str) -> SentMessage:
        if self.fail:
            raise GatewayError("Telegram sendMessage failed: Bad Gateway", status_code=502)
        self.sent.append((identity, text))
        return SentMessage(chat_id=identity, message_id=len(self.sent))


@pytest_asyncio.fixture
async def db_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )
    enable_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Headers authenticating the surrounding application."""
    return {"X-Internal-Key": TEST_INTERNAL_KEY}


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, gateway: FakeGateway
) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client with database and gateway overrides."""
    from threadbot.core.rate_limit import limiter

    async def override_get_db():
        yield db_session

    def override_get_settings():
        return TestSettings()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = override_get_settings
    app.dependency_overrides[get_gateway] = lambda: gateway

    # Reset rate limiter storage before each test
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def recipient_factory(db_session: AsyncSession):
    """Factory for creating linked, active recipients."""

    async def _create_recipient(
        account_id: str = None,
        gateway_identity: str | None = "",
        timezone: str = "UTC",
        morning_time: str = "09:00",
        evening_time: str = "18:00",
        is_active: bool = True,
        content_source: ContentSourceKind = ContentSourceKind.GENERATED,
        notion_token: str | None = None,
        notion_database_id: str | None = None,
    ) -> Recipient:
        if account_id is None:
            account_id = f"acct-{uuid.uuid4().hex[:8]}"
        if gateway_identity == "":
            gateway_identity = str(uuid.uuid4().int % 10**9)

        recipient = Recipient(
            account_id=account_id,
            gateway_identity=gateway_identity,
            timezone=timezone,
            morning_time=morning_time,
            evening_time=evening_time,
            is_active=is_active,
            content_source=content_source,
            notion_token=notion_token,
            notion_database_id=notion_database_id,
        )
        db_session.add(recipient)
        await db_session.flush()
        return recipient

    return _create_recipient


@pytest_asyncio.fixture
async def prompt_factory(db_session: AsyncSession):
    """Factory for creating generated prompt items."""

    async def _create_prompt(
        account_id: str,
        prompt_date: date = date(2026, 1, 5),
        slot: Slot = Slot.MORNING,
        prompts: list[str] = None,
        theme: str | None = "Shipping side projects",
        name: str | None = "Day 1",
        response: str | None = None,
    ) -> PromptItem:
        if prompts is None:
            prompts = ["What did you ship?", "What blocked you?"]

        item = PromptItem(
            account_id=account_id,
            date=prompt_date,
            slot=slot,
            name=name,
            theme=theme,
            prompts=prompts,
            status=PromptStatus.SCHEDULED,
            response=response,
        )
        db_session.add(item)
        await db_session.flush()
        return item

    return _create_prompt


@pytest_asyncio.fixture
async def code_factory(db_session: AsyncSession):
    """Factory for creating verification codes directly."""

    async def _create_code(
        account_id: str = "acct-link",
        code: str = "482913",
        expired: bool = False,
        consumed: bool = False,
        now: datetime = None,
    ) -> VerificationCode:
        now = now or utc_now()
        verification = VerificationCode(
            account_id=account_id,
            code=code,
            expires_at=now + timedelta(minutes=-1 if expired else 10),
            consumed_at=now if consumed else None,
        )
        db_session.add(verification)
        await db_session.flush()
        return verification

    return _create_code
