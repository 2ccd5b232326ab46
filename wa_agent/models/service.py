import uuid

from sqlalchemy import Boolean, Column, Integer, Numeric, Text, Uuid

from wa_agent.database import Base


class Service(Base):
    __tablename__ = "services"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text)
    duration = Column(Integer, nullable=False, default=30)  # minutes
    price = Column(Numeric(10, 2))
    active = Column(Boolean, nullable=False, default=True)


class Staff(Base):
    __tablename__ = "staff"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=False)
    name = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
