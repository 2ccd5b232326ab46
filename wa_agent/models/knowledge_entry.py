import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid

from wa_agent.database import Base


class KnowledgeEntry(Base):
    __tablename__ = "whatsapp_knowledge_base"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=False)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    category = Column(Text, default="geral")
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True))
