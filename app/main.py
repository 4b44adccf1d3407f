"""Main FastAPI application."""
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from app.api import calls, health
from app.api.webhooks import acs as acs_webhooks
from app.core.config import settings
from app.core.dependencies import get_dispatcher, get_menu_catalog, get_telephony_client
from app.core.logging import setup_logging
from app.db.database import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    get_menu_catalog()
    dispatcher = get_dispatcher()
    await dispatcher.start()
    yield
    # Shutdown
    await dispatcher.stop()
    await get_telephony_client().close()


app = FastAPI(
    title="Simple IVR",
    description="DTMF voice menu for inbound calls",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers (must be before static file mounting to take precedence)
app.include_router(health.router, tags=["health"])
app.include_router(acs_webhooks.router, prefix="/api", tags=["webhooks"])
app.include_router(calls.router, tags=["calls"])

# Mount prompt audio
if settings.audio_dir and os.path.isdir(settings.audio_dir):
    app.mount(settings.audio_path, StaticFiles(directory=settings.audio_dir), name="audio")
