import asyncio
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wa_agent.config import settings
from wa_agent.database import SessionLocal
from wa_agent.logging_config import get_logger, setup_logging
from wa_agent.routers import complaints, webhook
from wa_agent.services.alert_service import alert_critical
from wa_agent.services.complaint_service import process_pending_complaints

setup_logging(settings.log_level)

app = FastAPI(
    title="WhatsApp Agent API",
    description="WhatsApp scheduling assistant for multi-tenant businesses",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(complaints.router)

sweep_logger = get_logger("complaint_sweep")
_complaint_sweep_task: asyncio.Task | None = None


def _is_complaint_sweep_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.complaint_sweep_enabled


async def _complaint_sweep_loop() -> None:
    while True:
        try:
            await asyncio.sleep(max(settings.complaint_sweep_interval_seconds, 1.0))
            db = SessionLocal()
            try:
                result = await process_pending_complaints(db, complaints.get_sweep_llm())
                if result.total:
                    sweep_logger.info(
                        "Complaint sweep processed",
                        extra={"context": {"processed": result.processed, "failed": result.failed, "total": result.total}},
                    )
            finally:
                db.close()
        except asyncio.CancelledError:
            break
        except Exception as exc:
            sweep_logger.error(
                "Complaint sweep loop failed",
                extra={"context": {"error": str(exc)}},
            )
            await alert_critical("Complaint sweep loop failed", {"error": str(exc)[:200]})


@app.on_event("startup")
async def start_complaint_sweep() -> None:
    global _complaint_sweep_task
    if not _is_complaint_sweep_enabled():
        return
    if _complaint_sweep_task is None or _complaint_sweep_task.done():
        _complaint_sweep_task = asyncio.create_task(_complaint_sweep_loop())
        sweep_logger.info("Complaint sweep started")


@app.on_event("shutdown")
async def stop_complaint_sweep() -> None:
    global _complaint_sweep_task
    if _complaint_sweep_task is None:
        return
    _complaint_sweep_task.cancel()
    try:
        await _complaint_sweep_task
    except asyncio.CancelledError:
        pass
    _complaint_sweep_task = None


@app.get("/health")
async def health():
    return {"status": "ok"}
