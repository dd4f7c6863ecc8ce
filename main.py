from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.events import EVENT_JOB_ERROR
from contextlib import asynccontextmanager
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from api import router as api_router
from api.dependencies import build_monitor_service
from api.health import router as health_router
from api.rate_limit import limiter
from db.engine import SessionLocal
import logging
import os


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    filename=os.getenv("LOG_FILE", "log.txt"),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

MONITOR_PASS_SECONDS = 60
DOMAIN_PASS_SECONDS = 3600


def run_monitor_checks():
    """One monitor pass with its own session, as an external trigger would run it."""
    db = SessionLocal()
    try:
        build_monitor_service(db).check_due_monitors()
    finally:
        db.close()


def run_domain_checks():
    db = SessionLocal()
    try:
        build_monitor_service(db).check_due_domains()
    finally:
        db.close()


def init_scheduler():
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_monitor_checks,
        "interval",
        seconds=MONITOR_PASS_SECONDS,
        id="check_monitors_job",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        run_domain_checks,
        "interval",
        seconds=DOMAIN_PASS_SECONDS,
        id="check_domains_job",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


scheduler = None


def start_scheduler():
    global scheduler
    logger.info("Starting in-process scheduler")
    scheduler = init_scheduler()

    def job_error_listener(event):
        logger.error(f"Scheduled job {event.job_id} crashed: {event.exception}")

    scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)
    scheduler.start()


def scheduler_enabled() -> bool:
    return os.getenv("SCHEDULER_ENABLED", "false").lower() == "true"


@asynccontextmanager
async def lifespan(app: FastAPI):
    if scheduler_enabled():
        start_scheduler()
    else:
        logger.info("In-process scheduler disabled, waiting for external triggers")
    yield
    if scheduler is not None and scheduler_enabled():
        scheduler.shutdown(wait=True)


app = FastAPI(title="Uptyne check engine", lifespan=lifespan)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS Configuration - Allow same-origin by default, customize for production
allowed_origins = os.getenv("CORS_ORIGINS", "*").split(",")
if allowed_origins == ["*"]:
    logger.warning(
        "CORS is set to allow all origins (*). "
        "Set CORS_ORIGINS environment variable to restrict origins in production."
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    max_age=600,
)


# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    return response


app.include_router(health_router)
app.include_router(api_router, prefix="/api")
