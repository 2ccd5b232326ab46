from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class InboundEvent(BaseModel):
    """Canonical inbound WhatsApp message after normalization."""

    company_id: UUID
    phone: str
    text: str
    sender_name: Optional[str] = None


class WebhookResponse(BaseModel):
    ok: bool = True
    skipped: Optional[str] = None
    conversation_id: Optional[UUID] = None
    reply: Optional[str] = None
    chunks_sent: Optional[int] = None
