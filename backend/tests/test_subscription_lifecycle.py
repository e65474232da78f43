"""Tests for subscription state transitions and subscriber counts."""
from datetime import datetime
from unittest.mock import patch

import pytest
from sqlalchemy import select

from app.models.subscription import Subscription
from app.services.errors import WebhookPayloadError
from app.services.subscription_lifecycle import map_stripe_status
from stripe_events import make_event, stripe_subscription


def _checkout(email="fan@example.com", creator_id="creator-1", mode="subscription", subscription="sub_new1"):
    session = {
        "id": "cs_1",
        "object": "checkout.session",
        "mode": mode,
        "subscription": subscription,
        "customer_details": {"email": email},
        "metadata": {},
    }
    if creator_id:
        session["metadata"]["creator_id"] = creator_id
    return session


async def _subscription(db, stripe_subscription_id):
    result = await db.execute(
        select(Subscription)
        .where(Subscription.stripe_subscription_id == stripe_subscription_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@pytest.mark.parametrize("stripe_status,expected", [
    ("active", "active"),
    ("trialing", "active"),
    ("past_due", "past_due"),
    ("unpaid", "past_due"),
    ("paused", "past_due"),
    ("incomplete", "incomplete"),
    ("canceled", "cancelled"),
    ("incomplete_expired", "cancelled"),
])
def test_map_stripe_status(stripe_status, expected):
    assert map_stripe_status(stripe_status) == expected


def test_map_unknown_status_raises():
    with pytest.raises(WebhookPayloadError):
        map_stripe_status("mystery")


@pytest.mark.asyncio
async def test_checkout_creates_subscription(send_event, test_db, creator, subscriber):
    with patch("stripe.Subscription.retrieve", return_value=stripe_subscription()) as mock_retrieve:
        response = await send_event(make_event("checkout.session.completed", _checkout()))

    assert response.status_code == 200
    assert response.json()["status"] == "processed"
    mock_retrieve.assert_called_once_with("sub_new1")

    subscription = await _subscription(test_db, "sub_new1")
    assert subscription.status == "active"
    assert subscription.subscriber_id == subscriber.uuid
    assert subscription.creator_id == "creator-1"
    assert subscription.expires_at == datetime.utcfromtimestamp(1_800_000_000)

    await test_db.refresh(creator)
    assert creator.subscriber_count == 6


@pytest.mark.asyncio
async def test_replayed_checkout_counts_subscriber_once(send_event, test_db, creator, subscriber):
    event = make_event("checkout.session.completed", _checkout())

    with patch("stripe.Subscription.retrieve", return_value=stripe_subscription()):
        first = await send_event(event)
        second = await send_event(event)

    assert first.json()["status"] == "processed"
    assert second.json()["status"] == "already_processed"

    result = await test_db.execute(select(Subscription))
    assert len(result.scalars().all()) == 1
    await test_db.refresh(creator)
    assert creator.subscriber_count == 6


@pytest.mark.asyncio
async def test_checkout_period_end_from_subscription_items(send_event, test_db, creator, subscriber):
    retrieved = {"id": "sub_new1", "status": "active", "items": {"data": [{"current_period_end": 1_700_000_000}]}}

    with patch("stripe.Subscription.retrieve", return_value=retrieved):
        await send_event(make_event("checkout.session.completed", _checkout()))

    subscription = await _subscription(test_db, "sub_new1")
    assert subscription.expires_at == datetime.utcfromtimestamp(1_700_000_000)


@pytest.mark.asyncio
async def test_one_time_checkout_ignored(send_event, test_db, creator, subscriber):
    with patch("stripe.Subscription.retrieve") as mock_retrieve:
        response = await send_event(make_event("checkout.session.completed", _checkout(mode="payment", subscription=None)))

    assert response.json()["status"] == "ignored"
    mock_retrieve.assert_not_called()


@pytest.mark.asyncio
async def test_checkout_without_creator_returns_422(send_event, test_db, creator, subscriber):
    with patch("stripe.Subscription.retrieve", return_value=stripe_subscription()):
        response = await send_event(make_event("checkout.session.completed", _checkout(creator_id=None)))

    assert response.status_code == 422
    assert await _subscription(test_db, "sub_new1") is None


@pytest.mark.asyncio
async def test_checkout_for_unknown_subscriber_returns_500(send_event, test_db, creator):
    with patch("stripe.Subscription.retrieve", return_value=stripe_subscription()):
        response = await send_event(make_event("checkout.session.completed", _checkout(email="nobody@example.com")))

    assert response.status_code == 500
    assert await _subscription(test_db, "sub_new1") is None
    await test_db.refresh(creator)
    assert creator.subscriber_count == 5


@pytest.mark.asyncio
async def test_checkout_for_unknown_creator_returns_500(send_event, test_db, subscriber):
    with patch("stripe.Subscription.retrieve", return_value=stripe_subscription()):
        response = await send_event(make_event("checkout.session.completed", _checkout(creator_id="ghost")))

    assert response.status_code == 500
    assert await _subscription(test_db, "sub_new1") is None


@pytest.mark.asyncio
async def test_payment_failed_marks_past_due(send_event, test_db, active_subscription):
    invoice = {"id": "in_failed", "object": "invoice", "subscription": "sub_live1"}

    first = await send_event(make_event("invoice.payment_failed", invoice))
    second = await send_event(make_event("invoice.payment_failed", invoice))

    assert first.json()["status"] == "processed"
    assert second.json()["status"] == "ignored"
    subscription = await _subscription(test_db, "sub_live1")
    assert subscription.status == "past_due"


@pytest.mark.asyncio
async def test_payment_failed_for_unknown_subscription_returns_500(send_event, test_db, creator):
    invoice = {"id": "in_failed", "object": "invoice", "subscription": "sub_missing"}
    response = await send_event(make_event("invoice.payment_failed", invoice))
    assert response.status_code == 500


@pytest.mark.asyncio
async def test_update_reactivates_and_extends(send_event, test_db, active_subscription):
    await send_event(make_event("invoice.payment_failed", {"id": "in_failed", "subscription": "sub_live1"}))

    response = await send_event(make_event(
        "customer.subscription.updated",
        stripe_subscription("sub_live1", status="active", period_end=1_900_000_000),
    ))

    assert response.json()["status"] == "processed"
    subscription = await _subscription(test_db, "sub_live1")
    assert subscription.status == "active"
    assert subscription.expires_at == datetime.utcfromtimestamp(1_900_000_000)


@pytest.mark.asyncio
async def test_resumed_subscription_becomes_active(send_event, test_db, active_subscription):
    await send_event(make_event("customer.subscription.updated", stripe_subscription("sub_live1", status="paused")))
    assert (await _subscription(test_db, "sub_live1")).status == "past_due"

    response = await send_event(make_event("customer.subscription.resumed", stripe_subscription("sub_live1")))

    assert response.json()["status"] == "processed"
    assert (await _subscription(test_db, "sub_live1")).status == "active"


@pytest.mark.asyncio
async def test_unknown_stripe_status_returns_422(send_event, test_db, active_subscription):
    response = await send_event(make_event(
        "customer.subscription.updated", stripe_subscription("sub_live1", status="mystery")
    ))

    assert response.status_code == 422
    assert (await _subscription(test_db, "sub_live1")).status == "active"


@pytest.mark.asyncio
async def test_cancel_decrements_count_once(send_event, test_db, creator, active_subscription):
    event = make_event("customer.subscription.deleted", stripe_subscription("sub_live1", status="canceled"))

    first = await send_event(event)
    second = await send_event(event)

    assert first.json()["status"] == "processed"
    assert second.json()["status"] == "already_processed"
    assert (await _subscription(test_db, "sub_live1")).status == "cancelled"
    await test_db.refresh(creator)
    assert creator.subscriber_count == 4


@pytest.mark.asyncio
async def test_update_to_canceled_is_a_cancellation(send_event, test_db, creator, active_subscription):
    response = await send_event(make_event(
        "customer.subscription.updated", stripe_subscription("sub_live1", status="canceled")
    ))

    assert response.json()["status"] == "processed"
    assert (await _subscription(test_db, "sub_live1")).status == "cancelled"
    await test_db.refresh(creator)
    assert creator.subscriber_count == 4


@pytest.mark.asyncio
async def test_cancelled_subscription_stays_cancelled(send_event, test_db, creator, active_subscription):
    await send_event(make_event("customer.subscription.deleted", stripe_subscription("sub_live1", status="canceled")))

    # A late update delivered out of order must not resurrect it
    response = await send_event(make_event(
        "customer.subscription.updated", stripe_subscription("sub_live1", status="active")
    ))

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert (await _subscription(test_db, "sub_live1")).status == "cancelled"
    await test_db.refresh(creator)
    assert creator.subscriber_count == 4


@pytest.mark.asyncio
async def test_subscriber_count_never_negative(send_event, test_db, onboarding_creator, subscriber):
    test_db.add(Subscription(
        stripe_subscription_id="sub_orphan",
        subscriber_id=subscriber.uuid,
        creator_id=onboarding_creator.user_id,
        status="active",
    ))
    await test_db.commit()

    response = await send_event(make_event(
        "customer.subscription.deleted", stripe_subscription("sub_orphan", status="canceled")
    ))

    assert response.json()["status"] == "processed"
    await test_db.refresh(onboarding_creator)
    assert onboarding_creator.subscriber_count == 0


@pytest.mark.asyncio
async def test_cancel_unknown_subscription_returns_500(send_event, creator):
    response = await send_event(make_event(
        "customer.subscription.deleted", stripe_subscription("sub_missing", status="canceled")
    ))
    assert response.status_code == 500
