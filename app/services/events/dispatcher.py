"""Routes call lifecycle events to the session that owns the call.

The handler table is keyed by call-connection id and event type. Each call
also gets its own lock so its events are applied one at a time, in arrival
order, while unrelated calls run concurrently.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from app.services.events.models import CallEvent, CallEventType

logger = logging.getLogger(__name__)

EventHandler = Callable[[CallEvent], Awaitable[None]]
ReapCallback = Callable[[str], Awaitable[None]]


@dataclass
class _Registration:
    """Handlers and serialization state for one call connection."""

    handlers: Dict[CallEventType, EventHandler] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_activity: float = field(default_factory=time.monotonic)
    closed: bool = False


class EventDispatcher:
    """
    Delivers each event to exactly one registered handler.

    Misses (unknown or already closed calls) are logged and dropped; handler
    failures are logged and never propagate to the caller.
    """

    def __init__(
        self,
        idle_timeout_seconds: float = 900,
        reap_interval_seconds: float = 60,
        on_reap: Optional[ReapCallback] = None,
    ):
        self._registrations: Dict[str, _Registration] = {}
        self._lock = asyncio.Lock()
        self._idle_timeout = idle_timeout_seconds
        self._reap_interval = reap_interval_seconds
        self._reap_task: Optional[asyncio.Task] = None
        self.on_reap = on_reap

    async def start(self) -> None:
        """Start the idle reaper."""
        if self._reap_task is None:
            self._reap_task = asyncio.create_task(self._reap_loop())

    async def stop(self) -> None:
        """Stop the idle reaper."""
        if self._reap_task:
            self._reap_task.cancel()
            try:
                await self._reap_task
            except asyncio.CancelledError:
                pass
            self._reap_task = None

    async def register(self, call_connection_id: str, event_type: CallEventType, handler: EventHandler) -> None:
        """Register `handler` for one event type; replaces any earlier handler."""
        async with self._lock:
            registration = self._registrations.setdefault(call_connection_id, _Registration())
            registration.handlers[event_type] = handler
            registration.last_activity = time.monotonic()

    async def register_all(
        self, call_connection_id: str, event_types: Iterable[CallEventType], handler: EventHandler
    ) -> None:
        """Register the same handler for several event types."""
        for event_type in event_types:
            await self.register(call_connection_id, event_type, handler)

    async def deregister(self, call_connection_id: str) -> bool:
        """Remove every handler for a call. Returns False if nothing was registered."""
        async with self._lock:
            registration = self._registrations.pop(call_connection_id, None)
        if registration is None:
            return False
        registration.closed = True
        logger.info(f"[DISPATCHER] Deregistered call - CallConnectionId: {call_connection_id}")
        return True

    async def is_registered(self, call_connection_id: str) -> bool:
        async with self._lock:
            return call_connection_id in self._registrations

    async def active_calls(self) -> List[str]:
        async with self._lock:
            return list(self._registrations)

    async def dispatch(self, event: CallEvent) -> bool:
        """
        Deliver an event to its handler.

        Returns:
            True if a handler ran (successfully or not), False if dropped.
        """
        async with self._lock:
            registration = self._registrations.get(event.call_connection_id)
            handler = registration.handlers.get(event.type) if registration else None

        if registration is None or handler is None:
            logger.debug(
                f"[DISPATCHER] No handler, dropping {event.type.value} - "
                f"CallConnectionId: {event.call_connection_id}"
            )
            return False

        async with registration.lock:
            # Deregistered while this event waited for the lock
            if registration.closed:
                logger.debug(
                    f"[DISPATCHER] Call closed, dropping {event.type.value} - "
                    f"CallConnectionId: {event.call_connection_id}"
                )
                return False

            registration.last_activity = time.monotonic()
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    f"[DISPATCHER] Handler failed for {event.type.value} - "
                    f"CallConnectionId: {event.call_connection_id}, "
                    f"Error: {type(e).__name__}: {str(e)}",
                    exc_info=True,
                )
            return True

    async def reap_idle(self, now: Optional[float] = None) -> List[str]:
        """Drop registrations idle for longer than the timeout."""
        now = time.monotonic() if now is None else now
        async with self._lock:
            expired = [
                call_connection_id
                for call_connection_id, registration in self._registrations.items()
                if not registration.lock.locked() and now - registration.last_activity > self._idle_timeout
            ]
            for call_connection_id in expired:
                self._registrations.pop(call_connection_id).closed = True

        for call_connection_id in expired:
            logger.warning(f"[DISPATCHER] Reaped idle call - CallConnectionId: {call_connection_id}")
            if self.on_reap:
                try:
                    await self.on_reap(call_connection_id)
                except Exception as e:
                    logger.error(
                        f"[DISPATCHER] Reap callback failed - CallConnectionId: {call_connection_id}, "
                        f"Error: {type(e).__name__}: {str(e)}",
                        exc_info=True,
                    )
        return expired

    async def _reap_loop(self) -> None:
        while True:
            await asyncio.sleep(self._reap_interval)
            await self.reap_idle()
