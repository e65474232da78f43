"""Tests for webhook signature verification and its configuration."""
import json
import logging
import time
from unittest.mock import patch

import pytest

from app.config import Settings
from app.schemas.webhooks import EventKind
from app.services.errors import WebhookAuthenticationError
from app.services.webhook_auth import WebhookVerificationConfig, authenticate_event
from stripe_events import WEBHOOK_SECRET, make_event, sign_payload

CONFIG = WebhookVerificationConfig(signing_secret=WEBHOOK_SECRET, tolerance_seconds=300)


def _payload(event_type="invoice.payment_succeeded"):
    return json.dumps(make_event(event_type, {"id": "in_1"}, event_id="evt_1"))


def test_valid_signature_returns_event():
    payload = _payload()
    event = authenticate_event(payload.encode(), sign_payload(payload), CONFIG)

    assert event.id == "evt_1"
    assert event.kind is EventKind.INVOICE_PAYMENT_SUCCEEDED
    assert event.data.object == {"id": "in_1"}


def test_unknown_event_type_has_no_kind():
    payload = _payload("customer.created")
    event = authenticate_event(payload.encode(), sign_payload(payload), CONFIG)
    assert event.kind is None


def test_missing_signature_rejected():
    with pytest.raises(WebhookAuthenticationError):
        authenticate_event(_payload().encode(), None, CONFIG)


def test_wrong_secret_rejected():
    payload = _payload()
    with pytest.raises(WebhookAuthenticationError):
        authenticate_event(payload.encode(), sign_payload(payload, secret="whsec_other"), CONFIG)


def test_tampered_body_rejected():
    payload = _payload()
    signature = sign_payload(payload)
    tampered = payload.replace("in_1", "in_2")
    with pytest.raises(WebhookAuthenticationError):
        authenticate_event(tampered.encode(), signature, CONFIG)


def test_stale_timestamp_rejected():
    payload = _payload()
    signature = sign_payload(payload, timestamp=int(time.time()) - 3600)
    with pytest.raises(WebhookAuthenticationError):
        authenticate_event(payload.encode(), signature, CONFIG)


def test_garbage_signature_header_rejected():
    with pytest.raises(WebhookAuthenticationError):
        authenticate_event(_payload().encode(), "not-a-signature", CONFIG)


def test_missing_secret_fails_closed():
    payload = _payload()
    config = WebhookVerificationConfig(signing_secret="")
    with pytest.raises(WebhookAuthenticationError):
        authenticate_event(payload.encode(), sign_payload(payload), config)


def test_signed_non_json_body_rejected():
    payload = "this is not json"
    with pytest.raises(WebhookAuthenticationError):
        authenticate_event(payload.encode(), sign_payload(payload), CONFIG)


def test_signed_body_without_envelope_fields_rejected():
    payload = json.dumps({"hello": "world"})
    with pytest.raises(WebhookAuthenticationError):
        authenticate_event(payload.encode(), sign_payload(payload), CONFIG)


def test_disabled_verification_skips_signature_and_warns(caplog):
    config = WebhookVerificationConfig(signing_secret="", verification_disabled=True)
    caplog.set_level(logging.WARNING, logger="app.services.webhook_auth")

    event = authenticate_event(_payload().encode(), None, config)

    assert event.id == "evt_1"
    assert "without signature verification" in caplog.text


def test_config_refuses_disabled_verification_in_production():
    settings = Settings(ENVIRONMENT="production", WEBHOOK_VERIFICATION_DISABLED=True)
    with pytest.raises(RuntimeError):
        WebhookVerificationConfig.from_settings(settings)


def test_config_allows_disabled_verification_in_development(caplog):
    settings = Settings(ENVIRONMENT="development", WEBHOOK_VERIFICATION_DISABLED=True)
    caplog.set_level(logging.WARNING, logger="app.services.webhook_auth")

    config = WebhookVerificationConfig.from_settings(settings)

    assert config.verification_disabled is True
    assert "DISABLED" in caplog.text


def test_config_logs_missing_secret(caplog):
    settings = Settings(STRIPE_WEBHOOK_SECRET="", STRIPE_WEBHOOK_TOLERANCE_SECONDS=120)
    caplog.set_level(logging.ERROR, logger="app.services.webhook_auth")

    config = WebhookVerificationConfig.from_settings(settings)

    assert config.signing_secret == ""
    assert config.tolerance_seconds == 120
    assert "STRIPE_WEBHOOK_SECRET is not configured" in caplog.text


def test_signature_checked_against_decoded_body():
    payload = _payload()

    with patch("stripe.WebhookSignature.verify_header", return_value=True) as mock_verify:
        authenticate_event(payload.encode(), sign_payload(payload), CONFIG)

    signed_body = mock_verify.call_args.args[0]
    assert isinstance(signed_body, str)
    assert signed_body == payload


def test_non_ascii_body_verifies():
    payload = json.dumps(make_event("customer.created", {"id": "cus_1", "name": "Zoë"}), ensure_ascii=False)
    event = authenticate_event(payload.encode("utf-8"), sign_payload(payload), CONFIG)
    assert event.data.object["name"] == "Zoë"


def test_invalid_utf8_body_rejected():
    with pytest.raises(WebhookAuthenticationError):
        authenticate_event(b'{"id": "\xff\xfe"}', "t=1,v1=abc", CONFIG)
