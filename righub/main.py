import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from righub.core.config import get_settings
from righub.core.database import Base, SessionLocal, engine
from righub.core.errors import register_error_handlers
from righub.core.logging import configure_logging
from righub.routers import cron, health, listing_media, listings, records, users
from righub.services.reservation_expiry import run_periodic_sweep

# --- Load settings ---
settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger("righub")

# --- Create DB tables ---
Base.metadata.create_all(bind=engine)

# --- Create FastAPI app ---
app = FastAPI(title=settings.app_name)

# --- CORS (dev only) ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

_background_tasks: list[asyncio.Task] = []


# --- 예약 만료 스윕 (설정된 경우에만) ---
@app.on_event("startup")
async def start_reservation_sweep():
    interval = settings.reservation_sweep_interval_seconds
    if interval <= 0:
        logger.info("reservation sweep loop disabled; relying on /cron/reservation-expiry")
        return
    _background_tasks.append(asyncio.create_task(run_periodic_sweep(SessionLocal, interval)))


@app.on_event("shutdown")
async def stop_reservation_sweep():
    for task in _background_tasks:
        task.cancel()
    _background_tasks.clear()


# --- Routers ---
app.include_router(health.router)
app.include_router(records.router)
app.include_router(listings.router)
app.include_router(listing_media.router)
app.include_router(cron.router)
app.include_router(users.router)


# --- Root endpoint ---
@app.get("/")
def root():
    return {"message": "RigHub backend is running"}
