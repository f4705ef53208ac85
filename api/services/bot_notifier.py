"""
Rider Notification Service — Telegram messages about fleet events.

Riders that registered a Telegram ID are told when a vehicle is handed over
or taken back and when a KYC document is decided.
Failures are logged but never raise: fire-and-forget.
"""

import logging
from typing import Any

import httpx

from config import settings

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"

DOCUMENT_LABELS = {
    "aadhaar": "Aadhaar card",
    "pan": "PAN card",
    "dl": "Driving licence",
    "selfie": "Selfie",
    "rc": "Vehicle RC",
    "bank_passbook": "Bank passbook",
}


async def send_message(
    telegram_id: int,
    text: str,
    reply_markup: dict | None = None,
    parse_mode: str = "HTML",
) -> bool:
    """
    Send a Telegram message to one rider via the Bot API.

    Args:
        telegram_id: Recipient's Telegram user ID.
        text: Message text (HTML formatting supported).
        reply_markup: Optional inline keyboard markup dict.
        parse_mode: Telegram parse mode (default: HTML).

    Returns:
        True if the message was delivered to Telegram, False otherwise.
    """
    token = settings.TELEGRAM_BOT_TOKEN
    if not token:
        logger.debug("TELEGRAM_BOT_TOKEN not configured, skipping notification to %s", telegram_id)
        return False

    url = f"{TELEGRAM_API}/bot{token}/sendMessage"
    payload: dict[str, Any] = {
        "chat_id": telegram_id,
        "text": text,
        "parse_mode": parse_mode,
    }
    if reply_markup:
        payload["reply_markup"] = reply_markup

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(url, json=payload)
        if resp.status_code == 200:
            logger.info("Notification sent: telegram_id=%s, text_preview='%s'", telegram_id, text[:80])
            return True
        logger.warning(
            "Notification failed: telegram_id=%s, status=%s, body=%s",
            telegram_id,
            resp.status_code,
            resp.text[:200],
        )
        return False
    except httpx.HTTPError as e:
        logger.error("Notification error: telegram_id=%s, error=%s", telegram_id, str(e))
        return False


# ── Notification Templates ─────────────────────────────────

async def notify_vehicle_assigned(telegram_id: int, full_name: str, registration_number: str) -> bool:
    text = (
        f"🛵 <b>Vehicle Assigned</b>\n\n"
        f"Hi {full_name}, vehicle <code>{registration_number}</code> is now assigned to you.\n"
        f"Please inspect it at the hub before your first ride."
    )
    return await send_message(telegram_id, text)


async def notify_vehicle_unassigned(telegram_id: int, registration_number: str) -> bool:
    text = (
        f"🔁 <b>Vehicle Returned</b>\n\n"
        f"Vehicle <code>{registration_number}</code> is no longer assigned to you."
    )
    return await send_message(telegram_id, text)


async def notify_kyc_decision(
    telegram_id: int,
    document_type: str,
    decision: str,
    notes: str | None = None,
) -> bool:
    """Verified or rejected; rejections carry the reviewer's notes."""
    label = DOCUMENT_LABELS.get(document_type, document_type)
    if decision == "verified":
        text = f"✅ <b>KYC Update</b>\n\nYour {label} has been verified."
    else:
        text = (
            f"❌ <b>KYC Update</b>\n\n"
            f"Your {label} was rejected.\n"
            f"Reason: {notes or 'No specific reason provided.'}\n\n"
            f"Please upload a new copy."
        )
    return await send_message(telegram_id, text)
