import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, Text, Uuid
from sqlalchemy.orm import relationship

from wa_agent.database import Base


class Conversation(Base):
    __tablename__ = "whatsapp_conversations"
    __table_args__ = (Index("ix_whatsapp_conversations_company_phone", "company_id", "phone"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=False)
    phone = Column(Text, nullable=False)  # digits only
    client_name = Column(Text)
    status = Column(Text, nullable=False, default="active")  # active, handoff, closed
    handoff_requested = Column(Boolean, nullable=False, default=False)
    current_intent = Column(Text)  # e.g. complaint_pending
    last_message_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True))

    messages = relationship("Message", back_populates="conversation", order_by="Message.created_at")
