"""Operator alerts for the WhatsApp agent, delivered to a Telegram chat.

Alerts are raised from the request path and the complaint sweep, so sending
is async and never blocks the event loop. Delivery is best effort.
"""

from typing import Optional

import httpx

from wa_agent.config import settings
from wa_agent.logging_config import get_logger

logger = get_logger("alert_service")

ALERT_TIMEOUT_SECONDS = 10
SERVICE_NAME = "wa-agent"

LEVEL_MARKERS = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}

# Identity fields shown first, with operator-facing labels.
IDENTITY_FIELDS = (
    ("company_id", "tenant"),
    ("phone", "phone"),
    ("conversation_id", "conversation"),
)


def format_alert(level: str, message: str, context: Optional[dict] = None) -> str:
    """Telegram Markdown body: level header, message, then tenant/phone and the remaining fields."""
    text = f"{LEVEL_MARKERS.get(level, '📢')} *{level}* · {SERVICE_NAME}\n\n{message}"

    remaining = dict(context or {})
    lines = [f"  {label}: {remaining.pop(key)}" for key, label in IDENTITY_FIELDS if key in remaining]
    lines.extend(f"  {key}: {value}" for key, value in remaining.items())
    if lines:
        text += "\n\n```\n" + "\n".join(lines) + "\n```"
    return text


async def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Send alert to Telegram.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict (company_id, phone, conversation_id, ...)

    Returns:
        True if sent successfully
    """
    if not settings.alert_bot_token or not settings.alert_chat_id:
        logger.warning(f"Alert not configured: {level} - {message}", extra={"context": context or {}})
        return False

    try:
        async with httpx.AsyncClient(timeout=ALERT_TIMEOUT_SECONDS) as client:
            response = await client.post(
                f"https://api.telegram.org/bot{settings.alert_bot_token}/sendMessage",
                json={
                    "chat_id": settings.alert_chat_id,
                    "text": format_alert(level, message, context),
                    "parse_mode": "Markdown",
                },
            )
            return response.status_code == 200
    except httpx.HTTPError as e:
        logger.error(f"Failed to send alert: {e}")
        return False


async def alert_critical(message: str, context: Optional[dict] = None) -> bool:
    """Shortcut for CRITICAL level alert."""
    return await send_alert("CRITICAL", message, context)


async def alert_warning(message: str, context: Optional[dict] = None) -> bool:
    """Shortcut for WARNING level alert."""
    return await send_alert("WARNING", message, context)
