"""SMS service via Africa's Talking messaging API.

Endpoints used:
- POST {base_url}/messaging — send outbound SMS (form-encoded, ApiKey header)

A recipient status code of 101 means the message was accepted for delivery.
"""

import asyncio
import logging
import re

import httpx

from kisheka.app.config import get_settings

logger = logging.getLogger(__name__)

ACCEPTED_STATUS_CODE = 101

# Retry transient gateway failures
RETRYABLE_STATUS = {429, 500, 502, 503, 504}
MAX_ATTEMPTS = 3


def format_phone_number(phone: str | None, default_country_code: str = "+254") -> str | None:
    """Normalize a phone number to E.164 using the default country code.

    ``0712 345 678`` -> ``+254712345678``; ``254712345678`` -> ``+254712345678``.
    """
    if not phone:
        return None
    cleaned = re.sub(r"[^\d+]", "", phone)
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith("0"):
        return default_country_code + cleaned[1:]
    if cleaned.startswith(default_country_code.lstrip("+")):
        return "+" + cleaned
    return default_country_code + cleaned


class SMSService:
    """Send SMS messages via Africa's Talking."""

    def __init__(self, retry_delay: float = 2.0):
        self.settings = get_settings()
        self.base_url = self.settings.africastalking_base_url.rstrip("/")
        self.retry_delay = retry_delay

    async def send_sms(self, to_number: str, message: str) -> dict:
        """Send one SMS. Never raises; failures come back as ``{"ok": False, ...}``."""
        if not self.settings.sms_enabled:
            logger.info("SMS disabled — message not sent to %s", to_number)
            return {"ok": False, "error": "sms_disabled", "skipped": True, "message": message}

        if not self.settings.sms_configured:
            logger.warning("Africa's Talking not configured — message not sent to %s", to_number)
            return {"ok": False, "error": "africastalking_not_configured", "message": message}

        if not to_number or not message:
            return {"ok": False, "error": "missing_recipient_or_message", "message": message}

        recipient = format_phone_number(to_number, self.settings.default_country_code)
        payload = {
            "username": self.settings.africastalking_username,
            "to": recipient,
            "message": message,
        }
        if self.settings.africastalking_sender_id:
            payload["from"] = self.settings.africastalking_sender_id

        url = f"{self.base_url}/messaging"
        logger.info("Africa's Talking send: to=%s msg_len=%d", recipient, len(message))

        for attempt in range(MAX_ATTEMPTS):
            try:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    resp = await client.post(
                        url,
                        data=payload,
                        headers={
                            "ApiKey": self.settings.africastalking_api_key,
                            "Accept": "application/json",
                        },
                    )

                if resp.status_code in RETRYABLE_STATUS and attempt < MAX_ATTEMPTS - 1:
                    wait = self.retry_delay * (attempt + 1)
                    logger.warning(
                        "Africa's Talking %d — retrying in %.1fs (attempt %d/%d)",
                        resp.status_code, wait, attempt + 1, MAX_ATTEMPTS,
                    )
                    await asyncio.sleep(wait)
                    continue

                if not 200 <= resp.status_code < 300:
                    logger.error("Africa's Talking SMS failed (%d): %s", resp.status_code, resp.text[:300])
                    return {
                        "ok": False,
                        "error": f"http_{resp.status_code}",
                        "status": resp.status_code,
                        "message": message,
                    }

                return self._parse_response(resp, recipient, message)

            except httpx.TimeoutException:
                logger.error("Africa's Talking timed out for %s", recipient)
                return {"ok": False, "error": "timeout", "message": message}
            except httpx.HTTPError as e:
                logger.error("Africa's Talking httpx error: %s", e)
                return {"ok": False, "error": str(e), "message": message}

        return {"ok": False, "error": "max_retries", "message": message}

    @staticmethod
    def _parse_response(resp: httpx.Response, recipient: str, message: str) -> dict:
        try:
            data = resp.json()
        except ValueError:
            logger.error("Africa's Talking returned non-JSON body: %s", resp.text[:300])
            return {"ok": False, "error": "invalid_response", "message": message}

        recipients = (data.get("SMSMessageData") or {}).get("Recipients") or []
        first = recipients[0] if recipients else {}
        if first.get("statusCode") == ACCEPTED_STATUS_CODE:
            logger.info("SMS sent to %s (message_id=%s)", recipient, first.get("messageId"))
            return {
                "ok": True,
                "message_id": first.get("messageId"),
                "status": first.get("status"),
                "provider": "africas_talking",
            }

        error = first.get("status") or (data.get("SMSMessageData") or {}).get("Message") or "send_failed"
        logger.error("Africa's Talking rejected SMS to %s: %s", recipient, error)
        return {"ok": False, "error": error, "message": message}
