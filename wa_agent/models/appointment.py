import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, Text, Time, Uuid
from sqlalchemy.orm import relationship

from wa_agent.database import Base


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=False)
    client_name = Column(Text, nullable=False)
    client_phone = Column(Text, nullable=False)
    appointment_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(Text, nullable=False, default="pending")  # pending, confirmed, canceled
    service_id = Column(Uuid, ForeignKey("services.id"))
    staff_id = Column(Uuid, ForeignKey("staff.id"))
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))

    service = relationship("Service")
    staff = relationship("Staff")
