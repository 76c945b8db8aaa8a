import json

import pytest

from core.settings import PaymentSettings
from domain.common.exceptions import DomainValidationException
from infrastructure.external.payments.exceptions import PaymentSignatureError, WebhookReplayError
from infrastructure.external.payments.forumpay_client import ForumPayClient
from infrastructure.external.payments.signing import (
    compute_signature,
    parse_timestamp,
    signature_matches,
    timestamp_within,
)


SECRET = "whsec_forumpay"
NOW = 1_760_000_000.0
BODY = json.dumps({"payment_id": "fp_x", "status": "confirmed", "tx_hash": "0xabc", "event_id": "evt_9"}).encode()


def _client(**webhook) -> ForumPayClient:
    settings = PaymentSettings(webhook={"secret": SECRET, **webhook}, forumpay={"mode": "mock"})
    return ForumPayClient(settings=settings, clock=lambda: NOW)


def test_signature_helpers():
    ts = str(int(NOW))
    sig = compute_signature(SECRET, ts, BODY)
    assert len(sig) == 64
    assert compute_signature(SECRET, ts, BODY.decode()) == sig
    assert signature_matches(sig, ts, BODY, SECRET)
    assert signature_matches(f"sha256={sig.upper()}", ts, BODY, SECRET)
    assert not signature_matches(sig, ts, BODY + b" ", SECRET)
    assert not signature_matches(sig, str(int(NOW) + 1), BODY, SECRET)
    assert not signature_matches(sig, None, BODY, SECRET)
    assert not signature_matches(None, ts, BODY, SECRET)


def test_timestamp_helpers():
    assert parse_timestamp("1760000000") == NOW
    assert parse_timestamp("1760000000000") == NOW
    assert parse_timestamp("yesterday") is None
    assert timestamp_within(str(int(NOW) - 300), 300, now=NOW)
    assert not timestamp_within(str(int(NOW) - 301), 300, now=NOW)
    assert not timestamp_within(None, 300, now=NOW)


def test_verify_accepts_valid_delivery():
    c = _client()
    assert c.verify_event(compute_signature(SECRET, str(int(NOW)), BODY), BODY, str(int(NOW)), SECRET) is True


def test_verify_rejects_bad_signature():
    c = _client()
    with pytest.raises(PaymentSignatureError):
        c.verify_event(compute_signature("other", str(int(NOW)), BODY), BODY, str(int(NOW)), SECRET)


def test_verify_rejects_missing_signature():
    c = _client()
    with pytest.raises(PaymentSignatureError) as exc_info:
        c.verify_event(None, BODY, str(int(NOW)), SECRET)
    assert exc_info.value.message == "Missing webhook signature"


@pytest.mark.parametrize("timestamp", [None, "garbage", str(int(NOW) - 3600), str(int(NOW) + 3600)])
def test_verify_rejects_stale_or_missing_timestamp(timestamp):
    c = _client()
    with pytest.raises(WebhookReplayError):
        c.verify_event(compute_signature(SECRET, str(timestamp), BODY), BODY, timestamp, SECRET)


def test_verify_rejects_captured_signature_with_refreshed_timestamp():
    c = _client()
    captured_at = str(int(NOW) - 3600)
    signature = compute_signature(SECRET, captured_at, BODY)
    with pytest.raises(PaymentSignatureError):
        c.verify_event(signature, BODY, str(int(NOW)), SECRET)
    with pytest.raises(WebhookReplayError):
        c.verify_event(signature, BODY, captured_at, SECRET)


def test_unsigned_posture():
    settings = PaymentSettings(webhook={"allow_unsigned": True}, forumpay={"mode": "mock"})
    dev = ForumPayClient(settings=settings)
    assert dev.verify_event(None, BODY, None, None) is True

    prod = ForumPayClient(settings=settings, is_production=True)
    with pytest.raises(PaymentSignatureError):
        prod.verify_event(None, BODY, None, None)

    strict = ForumPayClient(settings=PaymentSettings(forumpay={"mode": "mock"}))
    with pytest.raises(PaymentSignatureError):
        strict.verify_event(None, BODY, None, None)


def test_parse_event_fields():
    evt = _client().parse_event(BODY)
    assert evt.processor_invoice_id == "fp_x"
    assert evt.processor_status == "confirmed"
    assert evt.tx_hash == "0xabc"
    assert evt.event_id == "evt_9"


def test_parse_event_synthesizes_event_id():
    evt = _client().parse_event(b'{"payment_id": "fp_x", "status": "Processing"}')
    assert evt.processor_status == "processing"
    assert evt.event_id == "fp_x:processing"
    assert evt.tx_hash is None

    evt = _client().parse_event(b'{"id": 7, "payment_id": "fp_x", "status": "waiting"}')
    assert evt.event_id == "7"


@pytest.mark.parametrize("raw", [b"", b"not json", b"[1, 2]", b'{"status": "confirmed"}', b'{"payment_id": "fp_x"}'])
def test_parse_event_rejects_malformed(raw):
    with pytest.raises(DomainValidationException):
        _client().parse_event(raw)
