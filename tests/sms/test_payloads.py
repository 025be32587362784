"""Tests for webhook body decoding, classification and signatures."""

import json
from datetime import datetime, timezone

import pytest

from kisheka.domain.enums import WebhookPayloadKind
from kisheka.domain.errors import InvalidPayloadError
from kisheka.sms.contracts import DeliveryStatusReport, InboundMessage, InvalidPayload
from kisheka.sms.payloads import (
    classify_payload,
    compute_signature,
    decode_body,
    verify_signature,
)


class TestDecodeBody:
    def test_json_body(self):
        raw = json.dumps({"from": "+254712345678", "text": "ACCEPT"}).encode()
        assert decode_body(raw, "application/json; charset=utf-8") == {
            "from": "+254712345678",
            "text": "ACCEPT",
        }

    def test_form_body_keeps_known_fields_only(self):
        raw = b"from=%2B254712345678&text=ACCEPT+PO-001&to=22384&extra=ignored"
        body = decode_body(raw, "application/x-www-form-urlencoded")
        assert body == {"from": "+254712345678", "text": "ACCEPT PO-001", "to": "22384"}

    def test_missing_content_type_treated_as_form(self):
        assert decode_body(b"from=0712&text=1", None) == {"from": "0712", "text": "1"}

    def test_malformed_json_raises(self):
        with pytest.raises(InvalidPayloadError):
            decode_body(b"{not json", "application/json")

    def test_json_array_raises(self):
        with pytest.raises(InvalidPayloadError):
            decode_body(b"[1, 2]", "application/json")


class TestClassifyPayload:
    def test_incoming_sms(self):
        payload = classify_payload({
            "from": " +254712345678 ",
            "to": "22384",
            "text": "ACCEPT",
            "date": "2026-10-18T09:30:00Z",
            "id": "ATXid_1",
        })
        assert isinstance(payload, InboundMessage)
        assert payload.kind == WebhookPayloadKind.INCOMING_SMS
        assert payload.sender == "+254712345678"
        assert payload.received_at == datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)
        assert payload.external_message_id == "ATXid_1"

    def test_incoming_sms_without_date_uses_now(self):
        payload = classify_payload({"from": "+254712345678", "text": "HELP"})
        assert payload.received_at.tzinfo is not None

    def test_delivery_report(self):
        payload = classify_payload({
            "id": "ATXid_9",
            "phoneNumber": "+254712345678",
            "status": "Failed",
            "failureReason": "InsufficientCredit",
            "retryCount": "2",
            "networkCode": "63902",
        })
        assert isinstance(payload, DeliveryStatusReport)
        assert payload.message_id == "ATXid_9"
        assert payload.status == "Failed"
        assert payload.failure_reason == "InsufficientCredit"
        assert payload.retry_count == 2
        assert payload.network_code == "63902"

    def test_delivery_report_wins_over_incoming_fields(self):
        payload = classify_payload({
            "id": "ATXid_9", "phoneNumber": "+254700000000", "status": "Success",
            "from": "+254700000000", "text": "hi",
        })
        assert payload.kind == WebhookPayloadKind.DELIVERY_STATUS

    @pytest.mark.parametrize("body", [
        {},
        {"from": "+254712345678"},
        {"text": "ACCEPT"},
        {"phoneNumber": "+254712345678", "status": "Success"},
    ])
    def test_invalid(self, body):
        payload = classify_payload(body)
        assert isinstance(payload, InvalidPayload)
        assert payload.kind == WebhookPayloadKind.INVALID


class TestSignature:
    def test_matching_signature(self):
        body = {"from": "+254712345678", "text": "ACCEPT"}
        signature = compute_signature(body, "s3cret")
        assert verify_signature(body, signature, "s3cret") is True

    def test_mismatched_signature(self):
        body = {"from": "+254712345678", "text": "ACCEPT"}
        assert verify_signature(body, "deadbeef", "s3cret") is False

    def test_skipped_without_secret(self):
        body = {"text": "ACCEPT"}
        assert verify_signature(body, "deadbeef", "") is True
        assert verify_signature(body, None, None) is True

    @pytest.mark.parametrize("signature", [None, ""])
    def test_missing_signature_fails_when_secret_configured(self, signature):
        body = {"from": "+254712345678", "text": "ACCEPT"}
        assert verify_signature(body, signature, "s3cret") is False
