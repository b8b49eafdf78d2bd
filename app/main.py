import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.database import async_session
from app.core.dependencies import build_services
from app.core.exceptions import BookingError
from app.utils.slot_lock import run_lock_sweeper

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    services = build_services(async_session)
    app.state.services = services

    sweeper = asyncio.create_task(run_lock_sweeper(services.locks, settings.SLOT_LOCK_SWEEP_SECONDS))
    if settings.REMINDER_SCHEDULER_ENABLED:
        services.scheduler.start()
    else:
        logger.info("Reminder scheduler disabled")

    yield

    await services.scheduler.stop()
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass


app = FastAPI(
    title="ConsultDesk API",
    description="Consultation booking backend: slots, payments, reminders",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health():
    return {"status": "ok", "service": "consultdesk-api", "version": "0.1.0"}
