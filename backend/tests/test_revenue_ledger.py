"""Tests for invoice payments and refunds posted to the revenue ledger."""
from datetime import datetime
from unittest.mock import patch, MagicMock

import pytest
from sqlalchemy import select

from app.models.revenue_ledger import RevenueLedgerEntry
from stripe_events import make_event, paid_invoice


async def _ledger(db, invoice_id="in_1"):
    result = await db.execute(
        select(RevenueLedgerEntry)
        .where(RevenueLedgerEntry.stripe_invoice_id == invoice_id)
        .order_by(RevenueLedgerEntry.created_at)
    )
    return result.scalars().all()


@pytest.mark.asyncio
async def test_invoice_payment_records_split_and_transfers(send_event, test_db, creator, active_subscription):
    with patch("stripe.Transfer.create") as mock_transfer:
        mock_transfer.return_value = MagicMock(id="tr_1")
        response = await send_event(make_event("invoice.payment_succeeded", paid_invoice()))

    assert response.status_code == 200
    assert response.json() == {"received": True, "status": "processed"}

    entries = await _ledger(test_db)
    assert len(entries) == 1
    entry = entries[0]
    assert entry.entry_type == "payment"
    assert entry.idempotency_key == "in_1"
    assert entry.subscription_id == active_subscription.uuid
    assert entry.creator_id == "creator-1"
    assert entry.currency == "usd"
    assert (entry.gross_amount, entry.processor_fee, entry.platform_commission, entry.creator_earning) == (
        1000, 59, 188, 753
    )

    await test_db.refresh(creator)
    assert creator.lifetime_earnings_cents == 10_000 + 753

    mock_transfer.assert_called_once()
    kwargs = mock_transfer.call_args.kwargs
    assert kwargs["amount"] == 753
    assert kwargs["currency"] == "usd"
    assert kwargs["destination"] == "acct_creator1"
    assert kwargs["transfer_group"] == "sub_live1"
    assert kwargs["idempotency_key"] == "transfer-in_1"
    assert kwargs["metadata"] == {
        "creator_id": "creator-1",
        "invoice_id": "in_1",
        "subscription_id": "sub_live1",
    }


@pytest.mark.asyncio
async def test_replayed_invoice_is_applied_once(send_event, test_db, creator, active_subscription):
    first = make_event("invoice.payment_succeeded", paid_invoice(), event_id="evt_first")
    # Stripe may also send the same invoice under a new event id
    second = make_event("invoice.payment_succeeded", paid_invoice(), event_id="evt_second")

    with patch("stripe.Transfer.create") as mock_transfer:
        mock_transfer.return_value = MagicMock(id="tr_1")
        responses = [await send_event(first), await send_event(first), await send_event(second)]

    assert [r.json()["status"] for r in responses] == ["processed", "already_processed", "already_processed"]
    assert all(r.status_code == 200 for r in responses)
    assert len(await _ledger(test_db)) == 1
    assert mock_transfer.call_count == 1

    await test_db.refresh(creator)
    assert creator.lifetime_earnings_cents == 10_000 + 753


@pytest.mark.asyncio
async def test_invoice_subscription_read_from_parent_details(send_event, test_db, creator, active_subscription):
    invoice = paid_invoice(subscription=None)
    invoice["parent"] = {
        "type": "subscription_details",
        "subscription_details": {"subscription": "sub_live1"},
    }

    with patch("stripe.Transfer.create") as mock_transfer:
        mock_transfer.return_value = MagicMock(id="tr_1")
        response = await send_event(make_event("invoice.payment_succeeded", invoice))

    assert response.json()["status"] == "processed"
    assert len(await _ledger(test_db)) == 1


@pytest.mark.asyncio
async def test_invoice_without_subscription_ignored(send_event, test_db, creator):
    with patch("stripe.Transfer.create") as mock_transfer:
        response = await send_event(make_event("invoice.payment_succeeded", paid_invoice(subscription=None)))

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    mock_transfer.assert_not_called()


@pytest.mark.asyncio
async def test_commission_rate_comes_from_settings(send_event, test_db, creator, active_subscription, monkeypatch):
    from decimal import Decimal
    from app.config import settings

    monkeypatch.setattr(settings, "PLATFORM_COMMISSION_RATE", Decimal("0.10"))

    with patch("stripe.Transfer.create") as mock_transfer:
        mock_transfer.return_value = MagicMock(id="tr_1")
        await send_event(make_event("invoice.payment_succeeded", paid_invoice(total=2000, amount_paid=1912)))

    entry = (await _ledger(test_db))[0]
    assert entry.platform_commission == 191  # 191.2
    assert entry.creator_earning == 1721
    assert mock_transfer.call_args.kwargs["amount"] == 1721


async def _pay_invoice(send_event):
    with patch("stripe.Transfer.create") as mock_transfer:
        mock_transfer.return_value = MagicMock(id="tr_1")
        response = await send_event(make_event("invoice.payment_succeeded", paid_invoice()))
    assert response.json()["status"] == "processed"


def _refunded_charge(amount_refunded, charge_id="ch_1", invoice="in_1"):
    return {"id": charge_id, "object": "charge", "invoice": invoice, "amount_refunded": amount_refunded, "currency": "usd"}


@pytest.mark.asyncio
async def test_partial_then_full_refund(send_event, test_db, creator, active_subscription):
    await _pay_invoice(send_event)

    response = await send_event(make_event("charge.refunded", _refunded_charge(300)))
    assert response.json()["status"] == "processed"

    response = await send_event(make_event("charge.refunded", _refunded_charge(1000)))
    assert response.json()["status"] == "processed"

    entries = await _ledger(test_db)
    refunds = [e for e in entries if e.entry_type == "refund"]
    assert sorted(e.gross_amount for e in refunds) == [-700, -300]
    assert sum(e.gross_amount for e in entries) == 0
    for e in refunds:
        assert e.processor_fee + e.platform_commission + e.creator_earning == e.gross_amount
        assert e.subscription_id == active_subscription.uuid

    # Refunds are recorded on the ledger only
    await test_db.refresh(creator)
    assert creator.lifetime_earnings_cents == 10_000 + 753


@pytest.mark.asyncio
async def test_replayed_refund_is_applied_once(send_event, test_db, creator, active_subscription):
    await _pay_invoice(send_event)
    event = make_event("charge.refunded", _refunded_charge(300))

    first = await send_event(event)
    second = await send_event(event)

    assert first.json()["status"] == "processed"
    assert second.json()["status"] == "already_processed"
    assert len([e for e in await _ledger(test_db) if e.entry_type == "refund"]) == 1


@pytest.mark.asyncio
async def test_refund_for_unknown_invoice_ignored(send_event, test_db, creator):
    response = await send_event(make_event("charge.refunded", _refunded_charge(300, invoice="in_unknown")))

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert await _ledger(test_db, "in_unknown") == []


@pytest.mark.asyncio
async def test_refund_without_invoice_ignored(send_event):
    response = await send_event(make_event("charge.refunded", _refunded_charge(300, invoice=None)))
    assert response.json()["status"] == "ignored"


@pytest.mark.asyncio
async def test_ledger_entries_are_timestamped(send_event, test_db, creator, active_subscription):
    await _pay_invoice(send_event)
    entry = (await _ledger(test_db))[0]
    assert isinstance(entry.created_at, datetime)
