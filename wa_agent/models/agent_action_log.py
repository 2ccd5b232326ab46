import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Text, Uuid

from wa_agent.database import Base, JSONType


class AgentActionLog(Base):
    __tablename__ = "whatsapp_agent_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=False)
    conversation_id = Column(Uuid, ForeignKey("whatsapp_conversations.id"))
    action = Column(Text, nullable=False)
    details = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
