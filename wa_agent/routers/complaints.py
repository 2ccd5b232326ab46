from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from wa_agent.config import settings
from wa_agent.database import get_db
from wa_agent.schemas.complaint import ComplaintSweepResponse
from wa_agent.services.agent_service import get_llm_provider
from wa_agent.services.complaint_service import process_pending_complaints
from wa_agent.services.llm import LLMProvider

router = APIRouter()


def get_sweep_llm() -> Optional[LLMProvider]:
    """Platform LLM for extraction; None falls back to the deterministic summary."""
    if not settings.llm_api_key:
        return None
    return get_llm_provider()


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.sweep_admin_token
    if not expected:
        return
    if not provided or provided != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


@router.post("/complaints/process", response_model=ComplaintSweepResponse)
async def process_complaints(
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    db: Session = Depends(get_db),
    llm: Optional[LLMProvider] = Depends(get_sweep_llm),
):
    """Run the complaint extraction sweep now."""
    _require_admin_token(x_admin_token)
    result = await process_pending_complaints(db, llm)
    return ComplaintSweepResponse(processed=result.processed, failed=result.failed, total=result.total)
