import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from wa_agent.models import Conversation, Message

STATUS_ACTIVE = "active"
STATUS_HANDOFF = "handoff"
STATUS_CLOSED = "closed"
OPEN_STATUSES = (STATUS_ACTIVE, STATUS_HANDOFF)

INTENT_COMPLAINT_PENDING = "complaint_pending"


def find_or_create_active(
    db: Session,
    company_id: UUID,
    phone: str,
    client_name: Optional[str] = None,
) -> Conversation:
    """Find the most recent open conversation for (company, phone) or create a new active one.

    A conversation in handoff is still open, so a handed-off thread keeps
    resolving to itself instead of spawning a fresh bot conversation.
    """
    conversation = (
        db.query(Conversation)
        .filter(
            Conversation.company_id == company_id,
            Conversation.phone == phone,
            Conversation.status.in_(OPEN_STATUSES),
        )
        .order_by(Conversation.created_at.desc())
        .first()
    )

    if not conversation:
        now = datetime.now(timezone.utc)
        conversation = Conversation(
            company_id=company_id,
            phone=phone,
            client_name=client_name,
            status=STATUS_ACTIVE,
            handoff_requested=False,
            last_message_at=now,
            created_at=now,
            updated_at=now,
        )
        db.add(conversation)
        db.flush()
    elif client_name and not conversation.client_name:
        conversation.client_name = client_name

    return conversation


def touch_activity(db: Session, conversation: Conversation) -> None:
    now = datetime.now(timezone.utc)
    conversation.last_message_at = now
    conversation.updated_at = now
    db.flush()


def request_handoff(db: Session, conversation: Conversation) -> None:
    """Escalate to a human. Nothing in this service clears the flag again."""
    conversation.handoff_requested = True
    conversation.status = STATUS_HANDOFF
    conversation.updated_at = datetime.now(timezone.utc)
    db.flush()


def is_handoff_active(conversation: Conversation) -> bool:
    return bool(conversation.handoff_requested) or conversation.status == STATUS_HANDOFF


def mark_intent(db: Session, conversation: Conversation, intent: Optional[str]) -> None:
    conversation.current_intent = intent
    conversation.updated_at = datetime.now(timezone.utc)
    db.flush()


def clear_intent(db: Session, conversation_id: UUID) -> None:
    db.query(Conversation).filter(Conversation.id == conversation_id).update(
        {"current_intent": None, "updated_at": datetime.now(timezone.utc)},
        synchronize_session=False,
    )
    db.flush()


def save_message(
    db: Session,
    conversation: Conversation,
    direction: str,
    content: str,
    message_type: str = "text",
    delivery_status: Optional[str] = None,
) -> Message:
    """Append a message to the conversation transcript."""
    message = Message(
        conversation_id=conversation.id,
        company_id=conversation.company_id,
        direction=direction,
        message_type=message_type,
        content=content,
        delivery_status=delivery_status,
        created_at=datetime.now(timezone.utc),
    )
    db.add(message)
    db.flush()
    return message


class ConversationLocks:
    """In-process mutexes keyed by (company, phone).

    Serializes deliveries for the same customer inside one worker process so
    find-or-create and the dedup check never interleave. Other processes are
    not covered.
    """

    def __init__(self) -> None:
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._waiters: dict[tuple[str, str], int] = {}

    @asynccontextmanager
    async def hold(self, company_id: UUID, phone: str):
        key = (str(company_id), phone)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


conversation_locks = ConversationLocks()
