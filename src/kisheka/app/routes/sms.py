"""SMS webhook routes — inbound supplier replies and delivery reports from Africa's Talking.

Africa's Talking posts to the same URL for two kinds of callbacks:
- incoming SMS (``from`` + ``text``): a supplier replying to a purchase order
- delivery reports (``phoneNumber`` + ``status`` + ``id``): status of a message we sent

Incoming replies always get exactly one reply SMS; delivery reports never do.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from kisheka.app.config import get_settings
from kisheka.domain.enums import WebhookPayloadKind
from kisheka.domain.errors import InvalidPayloadError, KishekaError
from kisheka.infra.database import get_db
from kisheka.services.communication_service import CommunicationService
from kisheka.services.sms_service import SMSService
from kisheka.services.supplier_reply_processor import build_reply_processor
from kisheka.sms.payloads import classify_payload, decode_body, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sms", tags=["sms"])

SIGNATURE_HEADER = "x-africastalking-signature"
WEBHOOK_PATH = "/api/sms/webhook"


def get_sms_service() -> SMSService:
    """Outbound SMS gateway (overridden in tests)."""
    return SMSService()


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _success(data: dict, message: str) -> dict:
    return {"success": True, "data": data, "message": message}


@router.post("/webhook")
async def africastalking_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    sms_service: SMSService = Depends(get_sms_service),
):
    """Handle an Africa's Talking callback.

    Incoming SMS payload (form-encoded or JSON):
        from, to, text, date, id, linkId

    Delivery report payload:
        id, phoneNumber, status, failureReason, retryCount, networkCode
    """
    settings = get_settings()

    # ── Decode ───────────────────────────────────────────────────────
    raw_body = await request.body()
    try:
        body = decode_body(raw_body, request.headers.get("content-type"))
    except InvalidPayloadError as e:
        logger.warning("Undecodable SMS webhook body: %s", e.message)
        return _error(status.HTTP_400_BAD_REQUEST, "Failed to parse webhook payload")

    # ── Validate signature ───────────────────────────────────────────
    signature = request.headers.get(SIGNATURE_HEADER)
    if not verify_signature(body, signature, settings.africastalking_webhook_secret):
        logger.warning("Invalid Africa's Talking webhook signature")
        return _error(status.HTTP_401_UNAUTHORIZED, "Invalid webhook signature")

    payload = classify_payload(body)

    # ── Delivery report: record status, never reply ──────────────────
    if payload.kind == WebhookPayloadKind.DELIVERY_STATUS:
        logger.info("Delivery report for message %s: %s", payload.message_id, payload.status)
        purchase_order_id = await CommunicationService(db).record_delivery_status(payload)
        return _success(
            {
                "type": "delivery_status",
                "message_id": payload.message_id,
                "phone_number": payload.phone_number,
                "status": payload.status,
                "failure_reason": payload.failure_reason,
                "purchase_order_id": purchase_order_id,
            },
            "Delivery status report processed",
        )

    if payload.kind == WebhookPayloadKind.INVALID:
        logger.warning("Invalid SMS webhook payload (fields: %s)", ", ".join(payload.fields) or "none")
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "Invalid webhook payload: neither incoming SMS nor delivery status",
        )

    # ── Incoming supplier reply ──────────────────────────────────────
    processor = build_reply_processor(db, sms_service)
    try:
        result = await processor.handle(payload)
    except KishekaError as e:
        logger.error("SMS webhook failed for %s: %s", payload.sender, e.message)
        return _error(e.status_code, "Failed to process SMS webhook")
    except Exception as e:
        logger.exception("SMS webhook crashed for %s: %s", payload.sender, e)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process SMS webhook")

    if result.guard_failed:
        return _error(status.HTTP_400_BAD_REQUEST, result.message)

    return _success(result.to_dict(), result.message)


@router.get("/webhook")
async def webhook_health(request: Request):
    """Reachability check for configuring the callback URL in Africa's Talking."""
    settings = get_settings()
    expected = f"{settings.app_url.rstrip('/')}{WEBHOOK_PATH}" if settings.app_url else None
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "message": "SMS webhook endpoint is accessible",
        "webhook_url": str(request.url),
        "method": "POST",
        "configured_webhook_url": settings.africastalking_webhook_url or None,
        "expected_webhook_url": expected,
        "sms_configured": settings.sms_configured,
    }
