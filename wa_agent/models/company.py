import uuid

from sqlalchemy import Column, DateTime, Integer, Text, Uuid

from wa_agent.database import Base


class Company(Base):
    __tablename__ = "companies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    address = Column(Text)
    phone = Column(Text)
    created_at = Column(DateTime(timezone=True))


class CompanySettings(Base):
    __tablename__ = "company_settings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=False, unique=True)
    slot_interval = Column(Integer, nullable=False, default=30)  # minutes
    max_capacity_per_slot = Column(Integer, nullable=False, default=1)
