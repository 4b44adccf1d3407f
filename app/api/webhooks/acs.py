"""Azure Communication Services webhook endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response

from app.core.dependencies import get_call_manager
from app.services.call_session.manager import CallSessionManager
from app.services.ingress.decoder import (
    INCOMING_CALL_EVENT,
    EventDecodeError,
    decode_call_events,
    decode_event_grid_batch,
)

router = APIRouter()
logger = logging.getLogger(__name__)


async def _read_json(request: Request):
    try:
        return await request.json()
    except ValueError as e:
        raise EventDecodeError(f"Body is not JSON: {e}") from e


@router.post("/incomingCall")
async def handle_incoming_call(
    request: Request,
    call_manager: CallSessionManager = Depends(get_call_manager),
):
    """
    Handle Event Grid deliveries for incoming calls.

    Subscription validation is answered before anything else. Every other
    failure is logged and the delivery is still acknowledged with 200 so
    Event Grid does not redeliver.
    """
    logger.info(
        f"[INCOMING CALL] Received Event Grid delivery - "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        envelopes = decode_event_grid_batch(await _read_json(request))
    except EventDecodeError as e:
        logger.error(f"[INCOMING CALL] Could not decode delivery - Error: {str(e)}")
        return Response(status_code=200)

    for envelope in envelopes:
        if envelope.is_subscription_validation:
            if not envelope.validation_code:
                logger.warning(f"[INCOMING CALL] Subscription validation without code skipped - Id: {envelope.id}")
                continue
            logger.info(f"[INCOMING CALL] Subscription validation event - Id: {envelope.id}")
            return JSONResponse({"validationResponse": envelope.validation_code})

    for envelope in envelopes:
        if envelope.event_type != INCOMING_CALL_EVENT:
            logger.debug(f"[INCOMING CALL] Ignoring event type {envelope.event_type}")
            continue
        try:
            incoming = envelope.to_incoming_call()
            logger.info(
                f"[INCOMING CALL] Incoming call event received - "
                f"CorrelationId: {incoming.correlation_id}, Caller: {incoming.caller_id}"
            )
            await call_manager.handle_incoming_call(incoming)
        except Exception as e:
            logger.error(
                f"[INCOMING CALL] Error processing incoming call - Id: {envelope.id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )

    return Response(status_code=200)


@router.post("/callbacks/{context_id}")
async def handle_callbacks(
    request: Request,
    context_id: str,
    caller_id: Optional[str] = Query(None, alias="callerId"),
    call_manager: CallSessionManager = Depends(get_call_manager),
):
    """Handle call lifecycle events for a call answered with this callback token."""
    try:
        events = decode_call_events(await _read_json(request))
    except EventDecodeError as e:
        logger.error(f"[CALLBACK] Could not decode delivery - Context: {context_id}, Error: {str(e)}")
        return Response(status_code=200)

    logger.info(
        f"[CALLBACK] Received {len(events)} events - Context: {context_id}, Caller: {caller_id}"
    )

    for event in events:
        try:
            await call_manager.handle_callback(context_id, event)
        except Exception as e:
            logger.error(
                f"[CALLBACK] Error handling {event.type.value} - "
                f"CallConnectionId: {event.call_connection_id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )

    return Response(status_code=200)
