from fastapi import Depends, FastAPI
from sqlalchemy.orm import Session

from leadrelay import __version__
from leadrelay.config import settings
from leadrelay.database import SessionLocal, get_db
from leadrelay.logging_config import get_logger, setup_logging
from leadrelay.models import Bot, StagedLead
from leadrelay.routers import admin, proxy, webhook
from leadrelay.services.errors import StoreError
from leadrelay.services.pipeline_service import build_pipeline

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="LeadRelay",
    description="WhatsApp lead capture: reply, extract, stage and deliver to sales",
    version=__version__,
)

app.include_router(webhook.router)
app.include_router(admin.router)
app.include_router(proxy.router)


@app.on_event("startup")
def start_pipeline() -> None:
    pipeline = build_pipeline(settings, SessionLocal)
    try:
        pipeline.store.ensure_schema()
    except StoreError as exc:
        # Requests still come up; every store call reports its own failure.
        logger.error("Schema initialisation failed", extra={"context": {"error": str(exc)}})
    app.state.pipeline = pipeline

    if not settings.admin_api_token:
        logger.warning("ADMIN_API_TOKEN is not set - admin endpoints are unauthenticated")
    if pipeline.sheets is None:
        logger.warning("Sheet delivery disabled - staged leads will not be cleaned up")
    if not pipeline.notifier.configured:
        logger.warning("Sales notification target not configured - staged leads will not be cleaned up")
    logger.info("LeadRelay started", extra={"context": {"version": __version__, "model": settings.default_model}})


@app.get("/")
async def root():
    return {"status": "ok", "version": __version__}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    bots_count = db.query(Bot).count()
    staged_leads_count = db.query(StagedLead).count()
    return {
        "status": "ok",
        "bots": bots_count,
        "staged_leads": staged_leads_count,
    }
