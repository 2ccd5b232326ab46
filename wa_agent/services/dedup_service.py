from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from wa_agent.logging_config import get_logger
from wa_agent.models import Message

logger = get_logger("dedup")

# Providers redeliver the same event within seconds.
DEDUP_WINDOW_SECONDS = 15


def is_duplicate_incoming(
    db: Session,
    conversation_id: UUID,
    content: str,
    now: Optional[datetime] = None,
) -> bool:
    """True if an identical incoming message was stored for the conversation inside the window."""
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(seconds=DEDUP_WINDOW_SECONDS)

    duplicate = (
        db.query(Message.id)
        .filter(
            Message.conversation_id == conversation_id,
            Message.direction == "incoming",
            Message.content == content,
            Message.created_at >= since,
        )
        .first()
    )
    if duplicate:
        logger.info(
            "Duplicate incoming message",
            extra={"context": {"conversation_id": str(conversation_id)}},
        )
    return duplicate is not None
