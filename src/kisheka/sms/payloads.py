"""Webhook payload decoding and classification — DETERMINISTIC only.

Africa's Talking posts form-encoded bodies; local tools and tests often post
JSON. Both are decoded into a flat dict and then classified by field
presence into exactly one of InboundMessage, DeliveryStatusReport or
InvalidPayload before anything else looks at them.
"""

import hashlib
import hmac
import json
from datetime import datetime, timezone
from urllib.parse import parse_qsl

from kisheka.domain.enums import WebhookPayloadKind
from kisheka.domain.errors import InvalidPayloadError

from .contracts import DeliveryStatusReport, InboundMessage, InvalidPayload, WebhookPayload

# Fields Africa's Talking may send, for incoming SMS and for delivery reports
FORM_FIELDS = (
    "from", "to", "text", "date", "linkId",
    "phoneNumber", "status", "id", "failureReason", "retryCount", "networkCode",
)


def decode_body(raw_body: bytes, content_type: str | None) -> dict:
    """Decode a JSON or form-encoded webhook body into a dict.

    Raises:
        InvalidPayloadError: If the body cannot be decoded.
    """
    text = raw_body.decode("utf-8", errors="replace") if raw_body else ""
    if content_type and "application/json" in content_type.lower():
        try:
            body = json.loads(text or "{}")
        except json.JSONDecodeError as exc:
            raise InvalidPayloadError(f"Failed to parse webhook payload: {exc.msg}") from exc
        if not isinstance(body, dict):
            raise InvalidPayloadError("Failed to parse webhook payload: expected an object")
        return body

    params = dict(parse_qsl(text, keep_blank_values=True))
    return {name: params.get(name) for name in FORM_FIELDS if name in params}


def classify_payload(body: dict) -> WebhookPayload:
    """Decide what kind of callback a decoded body is.

    ``phoneNumber`` + ``status`` + ``id`` is a delivery report;
    ``from`` + ``text`` is an incoming SMS; anything else is invalid.
    """
    if body.get("phoneNumber") and body.get("status") and body.get("id"):
        return DeliveryStatusReport(
            kind=WebhookPayloadKind.DELIVERY_STATUS,
            message_id=str(body["id"]),
            phone_number=str(body["phoneNumber"]).strip(),
            status=str(body["status"]),
            failure_reason=body.get("failureReason") or None,
            retry_count=_to_int(body.get("retryCount")),
            network_code=str(body["networkCode"]) if body.get("networkCode") else None,
        )

    if body.get("from") and body.get("text"):
        return InboundMessage(
            kind=WebhookPayloadKind.INCOMING_SMS,
            sender=str(body["from"]).strip(),
            raw_text=str(body["text"]),
            received_at=_parse_received_at(body.get("date")),
            recipient=str(body["to"]).strip() if body.get("to") else None,
            external_message_id=str(body["id"]) if body.get("id") else None,
        )

    return InvalidPayload(
        kind=WebhookPayloadKind.INVALID,
        reason="neither incoming SMS nor delivery status",
        fields=tuple(sorted(key for key, value in body.items() if value)),
    )


def compute_signature(body: dict, secret: str) -> str:
    """Hex HMAC-SHA256 of the compact JSON form of the decoded body."""
    payload = json.dumps(body, separators=(",", ":"), ensure_ascii=False)
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def verify_signature(body: dict, signature: str | None, secret: str | None) -> bool:
    """True when no secret is configured or the signature matches.

    With a secret configured, a missing signature fails verification.
    """
    if not secret:
        return True
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(body, secret), signature)


def _to_int(value) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_received_at(value) -> datetime:
    if value:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            pass
    return datetime.now(timezone.utc)
