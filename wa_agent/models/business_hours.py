import uuid

from sqlalchemy import Boolean, Column, Integer, Time, Uuid

from wa_agent.database import Base


class BusinessHours(Base):
    __tablename__ = "business_hours"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    open_time = Column(Time, nullable=False)
    close_time = Column(Time, nullable=False)
    is_open = Column(Boolean, nullable=False, default=True)
