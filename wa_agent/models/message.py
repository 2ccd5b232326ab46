import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import relationship

from wa_agent.database import Base


class Message(Base):
    __tablename__ = "whatsapp_messages"
    __table_args__ = (Index("ix_whatsapp_messages_conversation_created", "conversation_id", "created_at"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey("whatsapp_conversations.id"), nullable=False)
    company_id = Column(Uuid, nullable=False)
    direction = Column(Text, nullable=False)  # incoming, outgoing
    message_type = Column(Text, nullable=False, default="text")  # text, audio
    content = Column(Text)
    delivery_status = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)

    conversation = relationship("Conversation", back_populates="messages")
