import uuid

from sqlalchemy import Column, DateTime, Text, Uuid

from wa_agent.database import Base


class ComplaintTicket(Base):
    __tablename__ = "complaint_tickets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=False)
    phone = Column(Text, nullable=False)
    client_name = Column(Text)
    location_name = Column(Text)  # condominium, store or address mentioned
    problem_type = Column(Text, nullable=False, default="Outros")
    priority = Column(Text, nullable=False, default="normal")  # urgente, alta, normal, baixa
    description = Column(Text, nullable=False)
    notes = Column(Text)
    status = Column(Text, nullable=False, default="aberto")
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True))
