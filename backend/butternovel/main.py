"""
FastAPI app entrypoint.

Engagement backend: view counting (POST /views/track) and reader notifications (/notifications/*).
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from butternovel.api.routes import notifications, views
from butternovel.config import settings
from butternovel.core.constants import (
    PRUNE_NOTIFICATIONS_JOB_ID,
    PRUNE_RECENT_VIEWERS_INTERVAL_MINUTES,
    PRUNE_RECENT_VIEWERS_JOB_ID,
)
from butternovel.core.errors import register_exception_handlers
from butternovel.db.session import get_db
from butternovel.scheduler.cleanup_job import run_prune_notifications_job, run_prune_recent_viewers_job

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Scheduler: retention cleanup for dedup markers and archived notifications
_scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.scheduler_enabled:
        _scheduler.add_job(
            run_prune_recent_viewers_job,
            "interval",
            minutes=PRUNE_RECENT_VIEWERS_INTERVAL_MINUTES,
            id=PRUNE_RECENT_VIEWERS_JOB_ID,
            replace_existing=True,
        )
        _scheduler.add_job(
            run_prune_notifications_job,
            "cron",
            hour=4,
            minute=15,
            id=PRUNE_NOTIFICATIONS_JOB_ID,
            replace_existing=True,
        )
        _scheduler.start()
        app.state.scheduler = _scheduler
        logger.info("Cleanup scheduler started")
    yield
    if _scheduler.running:
        _scheduler.shutdown(wait=False)


app = FastAPI(title="ButterNovel Engagement", version="0.1.0", lifespan=lifespan)

# CORS: dev origins + optional CORS_ORIGINS (comma-separated) for production frontends
_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.cors_origins:
    _cors_origins.extend(o.strip() for o in settings.cors_origins.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(views.router, tags=["views"])
app.include_router(notifications.router, tags=["notifications"])


@app.get("/", include_in_schema=False)
def root():
    """Root: point to API docs and health."""
    return {"message": "ButterNovel engagement API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health(db: Session = Depends(get_db)) -> dict[str, str]:
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.warning("Health check: database unreachable: %s", e.__class__.__name__)
        database = "unavailable"
    return {"status": "ok", "database": database}
