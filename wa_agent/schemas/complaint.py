from typing import Optional

from pydantic import BaseModel, field_validator

PROBLEM_TYPES = (
    "Reclamação de Produto",
    "Reclamação da Loja",
    "Reclamação de Atendimento",
    "Problema de Entrega",
    "Solicitação de Reembolso",
    "Problema Técnico",
    "Problema de Infraestrutura",
    "Reclamação de Serviço",
    "Outros",
)
PRIORITIES = ("urgente", "alta", "normal", "baixa")


class ComplaintDetails(BaseModel):
    client_name: Optional[str] = None
    location_name: Optional[str] = None
    problem_type: str = "Outros"
    priority: str = "normal"
    description: str = "Reclamação registrada via WhatsApp"
    notes: Optional[str] = None

    @field_validator("problem_type", mode="before")
    @classmethod
    def _known_problem_type(cls, value):
        if not value or value not in PROBLEM_TYPES:
            return "Outros"
        return value

    @field_validator("priority", mode="before")
    @classmethod
    def _known_priority(cls, value):
        normalized = (value or "").strip().lower() if isinstance(value, str) else ""
        return normalized if normalized in PRIORITIES else "normal"

    @field_validator("description", mode="before")
    @classmethod
    def _non_empty_description(cls, value):
        if not isinstance(value, str) or not value.strip():
            return "Reclamação registrada via WhatsApp"
        return value.strip()

    @field_validator("client_name", "location_name", "notes", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if not isinstance(value, str):
            return None
        value = value.strip()
        if not value or value.lower() == "null":
            return None
        return value


class ComplaintSweepResponse(BaseModel):
    ok: bool = True
    processed: int
    failed: int
    total: int
