"""Pytest configuration and fixtures."""
import json

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from app.database import Base, get_db
from app.models.user import User
from app.models.creator_profile import CreatorProfile
from app.models.subscription import Subscription
from app.services.webhook_auth import WebhookVerificationConfig, get_verification_config
from main import app
from stripe_events import WEBHOOK_SECRET, WEBHOOK_URL, sign_payload


@pytest.fixture
async def test_db():
    """Create test database."""
    TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    AsyncSessionLocal = sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with AsyncSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def client(test_db):
    """Create test client bound to the test database and a known signing secret."""
    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_verification_config] = lambda: WebhookVerificationConfig(
        signing_secret=WEBHOOK_SECRET, tolerance_seconds=300
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def send_event(client):
    """Post a signed event to the webhook endpoint."""
    async def _send(event: dict, signature: str | None = None, raw: str | None = None):
        payload = raw if raw is not None else json.dumps(event)
        headers = {"content-type": "application/json"}
        sig = sign_payload(payload) if signature is None else signature
        if sig:
            headers["stripe-signature"] = sig
        return await client.post(WEBHOOK_URL, content=payload, headers=headers)
    return _send


@pytest.fixture
async def creator(test_db):
    """Creator with a verified payout account."""
    user = User(uuid="creator-1", name="Creator", email="creator@example.com")
    profile = CreatorProfile(
        user_id="creator-1",
        stripe_account_id="acct_creator1",
        payouts_enabled=True,
        onboarding_complete=True,
        subscriber_count=5,
        lifetime_earnings_cents=10_000,
    )
    test_db.add_all([user, profile])
    await test_db.commit()
    await test_db.refresh(profile)
    return profile


@pytest.fixture
async def onboarding_creator(test_db):
    """Creator who has not connected a payout account yet."""
    user = User(uuid="creator-2", name="New Creator", email="newcreator@example.com")
    profile = CreatorProfile(user_id="creator-2", subscriber_count=0, lifetime_earnings_cents=0)
    test_db.add_all([user, profile])
    await test_db.commit()
    await test_db.refresh(profile)
    return profile


@pytest.fixture
async def subscriber(test_db):
    user = User(uuid="subscriber-1", name="Fan", email="fan@example.com")
    test_db.add(user)
    await test_db.commit()
    await test_db.refresh(user)
    return user


@pytest.fixture
async def active_subscription(test_db, creator, subscriber):
    subscription = Subscription(
        stripe_subscription_id="sub_live1",
        subscriber_id=subscriber.uuid,
        creator_id=creator.user_id,
        status="active",
    )
    test_db.add(subscription)
    await test_db.commit()
    await test_db.refresh(subscription)
    return subscription
