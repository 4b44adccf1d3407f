"""Health check endpoint."""
import logging

from fastapi import APIRouter, Depends, Request

from app.core.dependencies import get_dispatcher
from app.services.events.dispatcher import EventDispatcher

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(request: Request, dispatcher: EventDispatcher = Depends(get_dispatcher)):
    """Health check endpoint, with the number of calls currently tracked."""
    active_calls = await dispatcher.active_calls()
    logger.debug(
        f"[HEALTH] Health check requested - Active calls: {len(active_calls)}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )
    return {"status": "healthy", "active_calls": len(active_calls)}
