from typing import Optional
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from wa_agent.config import settings
from wa_agent.errors import TransportError
from wa_agent.logging_config import get_logger
from wa_agent.models import WhatsAppSettings

logger = get_logger("transport")


class WhatsAppTransport:
    """Per-tenant WhatsApp gateway client (``/send/text`` and ``/message/presence``)."""

    def __init__(self, base_url: str, token: str, timeout_seconds: Optional[float] = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds or settings.transport_timeout_seconds

    def _headers(self) -> dict:
        return {"token": self.token, "Content-Type": "application/json"}

    async def send_text(self, phone: str, text: str) -> dict:
        """Send one text message. Raises ``TransportError`` on any failure."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"{self.base_url}/send/text",
                    headers=self._headers(),
                    json={"number": phone, "text": text},
                )
        except httpx.HTTPError as exc:
            raise TransportError(f"Send failed: {exc}") from exc

        if response.status_code >= 300:
            raise TransportError(
                f"Send rejected: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            return {}

    async def send_presence(self, phone: str, presence: str) -> bool:
        """Best effort typing indicator; never raises."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"{self.base_url}/message/presence",
                    headers=self._headers(),
                    json={"phone": phone, "presence": presence},
                )
        except httpx.HTTPError as exc:
            logger.warning(f"Presence failed: {exc}")
            return False

        if response.status_code >= 300:
            logger.warning(f"Presence rejected: {response.status_code}")
            return False
        return True


def get_transport(db: Session, company_id: UUID) -> Optional[WhatsAppTransport]:
    """Transport for the tenant's active WhatsApp connection, if configured."""
    row = (
        db.query(WhatsAppSettings)
        .filter(WhatsAppSettings.company_id == company_id, WhatsAppSettings.active.is_(True))
        .first()
    )
    if not row or not row.base_url or not row.token:
        return None
    return WhatsAppTransport(base_url=row.base_url, token=row.token)
