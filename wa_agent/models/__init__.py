from wa_agent.models.agent_action_log import AgentActionLog
from wa_agent.models.agent_settings import AgentSettings, WhatsAppSettings
from wa_agent.models.appointment import Appointment
from wa_agent.models.business_hours import BusinessHours
from wa_agent.models.company import Company, CompanySettings
from wa_agent.models.complaint_ticket import ComplaintTicket
from wa_agent.models.conversation import Conversation
from wa_agent.models.knowledge_entry import KnowledgeEntry
from wa_agent.models.message import Message
from wa_agent.models.service import Service, Staff
from wa_agent.models.time_block import TimeBlock

__all__ = [
    "Company",
    "CompanySettings",
    "BusinessHours",
    "Service",
    "Staff",
    "TimeBlock",
    "Appointment",
    "AgentSettings",
    "WhatsAppSettings",
    "KnowledgeEntry",
    "Conversation",
    "Message",
    "AgentActionLog",
    "ComplaintTicket",
]
