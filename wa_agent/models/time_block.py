import uuid

from sqlalchemy import Column, Date, ForeignKey, Text, Time, Uuid

from wa_agent.database import Base


class TimeBlock(Base):
    __tablename__ = "time_blocks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=False)
    block_date = Column(Date, nullable=False)
    start_time = Column(Time)  # null start/end = full-day block
    end_time = Column(Time)
    staff_id = Column(Uuid, ForeignKey("staff.id"))
    reason = Column(Text)
