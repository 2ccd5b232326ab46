import uuid

from sqlalchemy import Boolean, Column, Text, Uuid

from wa_agent.database import Base


class AgentSettings(Base):
    __tablename__ = "whatsapp_agent_settings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=False, unique=True)
    enabled = Column(Boolean, nullable=False, default=False)
    greeting_message = Column(Text)
    openai_api_key = Column(Text)  # per-tenant override of LLM_API_KEY


class WhatsAppSettings(Base):
    __tablename__ = "whatsapp_settings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=False, unique=True)
    base_url = Column(Text)
    token = Column(Text)
    instance_id = Column(Text)
    active = Column(Boolean, nullable=False, default=True)
