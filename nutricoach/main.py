import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from loguru import logger

from nutricoach.api.cron import router as cron_router
from nutricoach.api.meals import router as meals_router
from nutricoach.api.recommendation import router as recommendation_router
from nutricoach.api.usage import router as usage_router
from nutricoach.config.settings import settings
from nutricoach.core.logger import setup_logger
from nutricoach.db.session import init_db
from nutricoach.scheduler import build_scheduler

setup_logger(level=settings.log_level, log_file=settings.log_file or None)

if not settings.openai_api_key:
    logger.warning("OPENAI_API_KEY is not set. Coaching messages will use fallback text.")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Create tables and start the coaching scheduler for the app's lifetime."""
    init_db()

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = build_scheduler(settings)
        scheduler.start()
        logger.info("[SCHEDULER] Started coaching scheduler", jobs=len(scheduler.get_jobs()))
    else:
        logger.info("[SCHEDULER] Disabled by SCHEDULER_ENABLED")

    await asyncio.sleep(0)
    yield

    if scheduler is not None:
        scheduler.shutdown()
        logger.info("[SCHEDULER] Stopped coaching scheduler")


app = FastAPI(title="NutriCoach", lifespan=lifespan)

app.include_router(cron_router)
app.include_router(recommendation_router)
app.include_router(usage_router)
app.include_router(meals_router)

logger.info("FastAPI application initialized")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests."""
    logger.debug(f"Request: {request.method} {request.url.path}")
    response = await call_next(request)
    logger.debug(f"Response: {response.status_code} for {request.method} {request.url.path}")
    return response
