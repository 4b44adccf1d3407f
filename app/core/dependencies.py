"""FastAPI dependencies."""
from typing import Optional

from app.core.config import settings
from app.db.database import AsyncSessionLocal
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.retry import RetryPolicy
from app.services.call_session.transitions import CallTransitionHandler
from app.services.events.dispatcher import EventDispatcher
from app.services.menu.in_memory_menu import InMemoryMenuProvider
from app.services.menu.repository import MenuCatalog
from app.services.telephony.acs import AcsTelephonyClient
from app.services.telephony.base import TelephonyClient

# Process-wide singletons (handler table and pending answers live here)
_menu_catalog: Optional[MenuCatalog] = None
_dispatcher: Optional[EventDispatcher] = None
_telephony_client: Optional[TelephonyClient] = None
_call_manager: Optional[CallSessionManager] = None


def get_menu_catalog() -> MenuCatalog:
    """Get menu catalog instance."""
    global _menu_catalog
    if _menu_catalog is None:
        _menu_catalog = MenuCatalog(provider=InMemoryMenuProvider(settings.menu_file))
    return _menu_catalog


def get_dispatcher() -> EventDispatcher:
    """Get event dispatcher instance."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = EventDispatcher(
            idle_timeout_seconds=settings.session_idle_timeout_seconds,
            reap_interval_seconds=settings.session_reap_interval_seconds,
        )
    return _dispatcher


def get_telephony_client() -> TelephonyClient:
    """Get telephony client instance."""
    global _telephony_client
    if _telephony_client is None:
        _telephony_client = AcsTelephonyClient(settings.acs_connection_string)
    return _telephony_client


def build_transition_handler(catalog: MenuCatalog) -> CallTransitionHandler:
    return CallTransitionHandler(
        catalog=catalog,
        retry_policy=RetryPolicy(settings.max_recognize_retries),
        prompt_uri=settings.prompt_uri,
        initial_silence_timeout_seconds=settings.initial_silence_timeout_seconds,
        inter_tone_timeout_seconds=settings.inter_tone_timeout_seconds,
        stop_tones=settings.stop_tones,
        agent_transfer_target=settings.agent_transfer_target,
    )


def get_call_manager() -> CallSessionManager:
    """Get call session manager instance."""
    global _call_manager
    if _call_manager is None:
        _call_manager = CallSessionManager(
            telephony=get_telephony_client(),
            dispatcher=get_dispatcher(),
            transitions=build_transition_handler(get_menu_catalog()),
            callback_base_url=settings.callback_base_url,
            session_factory=AsyncSessionLocal,
        )
    return _call_manager
