from typing import Callable, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.requests import ClientDisconnect

from wa_agent.database import get_db, get_session_factory
from wa_agent.errors import LLMError
from wa_agent.logging_config import get_logger
from wa_agent.schemas.webhook import WebhookResponse
from wa_agent.services.alert_service import alert_critical
from wa_agent.services.pipeline import process_inbound
from wa_agent.services.webhook_normalizer import normalize_webhook

logger = get_logger("webhook")

router = APIRouter()


async def _read_body(request: Request) -> Optional[bytes]:
    try:
        return await request.body()
    except ClientDisconnect:
        logger.info("Webhook client disconnected during body read")
        return None


def _error_response(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": message})


async def _handle_webhook(
    request: Request,
    db: Session,
    session_factory: Callable[[], Session],
    path_company_id: Optional[str] = None,
):
    raw = await _read_body(request)
    normalized = normalize_webhook(
        raw,
        path_company_id=path_company_id,
        query_company_id=request.query_params.get("company_id"),
    )
    if normalized.skipped:
        logger.info(
            "Webhook skipped",
            extra={"context": {"reason": normalized.skipped, "company_id": path_company_id}},
        )
        return WebhookResponse(skipped=normalized.skipped)

    event = normalized.event
    context = {"company_id": str(event.company_id), "phone": event.phone}
    try:
        result = await process_inbound(event, db, session_factory)
    except LLMError as exc:
        db.rollback()
        logger.error(f"LLM unavailable: {exc}", extra={"context": context})
        await alert_critical("LLM unavailable, message left unanswered", {**context, "error": str(exc)[:200]})
        return _error_response(str(exc))
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Database error while processing webhook", extra={"context": context}, exc_info=True)
        await alert_critical("Database error on webhook", {**context, "error": str(exc)[:200]})
        return _error_response("Database error")
    except Exception as exc:
        db.rollback()
        logger.error(f"Unexpected webhook failure: {exc}", extra={"context": context}, exc_info=True)
        await alert_critical("Unexpected webhook failure", {**context, "error": str(exc)[:200]})
        return _error_response("Internal error")

    if result.skipped:
        logger.info("Webhook skipped", extra={"context": {**context, "reason": result.skipped}})
        return WebhookResponse(skipped=result.skipped, conversation_id=result.conversation_id)

    return WebhookResponse(
        conversation_id=result.conversation_id,
        reply=result.reply,
        chunks_sent=result.chunks_sent,
    )


@router.post("/webhook/{company_id}", response_model=WebhookResponse, response_model_exclude_none=True)
async def handle_company_webhook(
    company_id: str,
    request: Request,
    db: Session = Depends(get_db),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """Provider webhook with the tenant id in the path."""
    return await _handle_webhook(request, db, session_factory, path_company_id=company_id)


@router.post("/webhook", response_model=WebhookResponse, response_model_exclude_none=True)
async def handle_webhook(
    request: Request,
    db: Session = Depends(get_db),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """Provider webhook with the tenant id in the query string or body."""
    return await _handle_webhook(request, db, session_factory)
