"""Call history API endpoints."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.services.persistence.calls import CallPersistenceService

router = APIRouter()
logger = logging.getLogger(__name__)


class CallResponse(BaseModel):
    """Call response model."""
    id: int
    call_connection_id: str
    caller_id: str
    correlation_id: str | None = None
    started_at: str
    ended_at: str | None = None
    status: str
    outcome: str | None = None
    menu_path: List[str] = []


@router.get("/api/calls", response_model=List[CallResponse])
async def get_call_history(
    request: Request,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Get recent calls, newest first."""
    logger.info(
        f"[CALL HISTORY] Request received - limit: {limit}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        calls = await CallPersistenceService(db).list_calls(limit=limit)
        logger.info(f"[CALL HISTORY] Found {len(calls)} calls in database")
        return [
            CallResponse(
                id=call.id,
                call_connection_id=call.call_connection_id,
                caller_id=call.caller_id,
                correlation_id=call.correlation_id,
                started_at=call.started_at.isoformat() if call.started_at else "",
                ended_at=call.ended_at.isoformat() if call.ended_at else None,
                status=call.status,
                outcome=call.outcome,
                menu_path=call.menu_path or [],
            )
            for call in calls
        ]

    except Exception as e:
        logger.error(
            f"[CALL HISTORY] Error fetching call history - "
            f"limit: {limit}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        raise HTTPException(status_code=500, detail=f"Error fetching call history: {str(e)}")
