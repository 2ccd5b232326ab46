from wa_agent.schemas.complaint import ComplaintDetails, ComplaintSweepResponse
from wa_agent.schemas.webhook import InboundEvent, WebhookResponse

__all__ = ["InboundEvent", "WebhookResponse", "ComplaintDetails", "ComplaintSweepResponse"]
