"""Shared test fixtures and configuration."""
import os
from pathlib import Path
from typing import List, Optional, Set, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("ACS_CONNECTION_STRING", "endpoint=https://ivr-test.communication.azure.com/;accesskey=dGVzdA==")
os.environ.setdefault("CALLBACK_BASE_URL", "https://ivr.test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from app.main import app
from app.core.dependencies import get_call_manager
from app.db.models import Base
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.retry import RetryPolicy
from app.services.call_session.transitions import CallTransitionHandler
from app.services.events.dispatcher import EventDispatcher
from app.services.events.models import CallEvent, CallEventType
from app.services.menu.in_memory_menu import InMemoryMenuProvider
from app.services.menu.repository import MenuCatalog
from app.services.telephony.base import TelephonyClient, TelephonyError
from app.services.telephony.commands import (
    Command,
    HangupCommand,
    PlayCommand,
    StartRecognizeCommand,
    TransferCommand,
)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
CALLBACK_BASE_URL = "https://ivr.test"
AGENT_TARGET = "4:+15550001111"


def prompt_uri(name: str) -> str:
    return f"{CALLBACK_BASE_URL}/audio/{name}.wav"


class FakeTelephonyClient(TelephonyClient):
    """Records every command instead of calling a provider."""

    def __init__(self, call_connection_id: str = "conn-1"):
        self.call_connection_id = call_connection_id
        self.answered: List[Tuple[str, str]] = []
        self.commands: List[Tuple[str, Command]] = []
        self.fail_answer = False
        self.fail_on: Set[type] = set()
        self.closed = False

    async def answer_call(
        self,
        incoming_call_context: str,
        callback_url: str,
        operation_context: Optional[str] = None,
    ) -> str:
        if self.fail_answer:
            raise TelephonyError("answer rejected")
        self.answered.append((incoming_call_context, callback_url))
        return self.call_connection_id

    async def _record(self, call_connection_id: str, command: Command) -> None:
        if type(command) in self.fail_on:
            raise TelephonyError(f"{type(command).__name__} rejected")
        self.commands.append((call_connection_id, command))

    async def start_recognizing(self, call_connection_id: str, command: StartRecognizeCommand) -> None:
        await self._record(call_connection_id, command)

    async def play(self, call_connection_id: str, command: PlayCommand) -> None:
        await self._record(call_connection_id, command)

    async def hang_up(self, call_connection_id: str, for_everyone: bool = True) -> None:
        await self._record(call_connection_id, HangupCommand(for_everyone=for_everyone))

    async def transfer(self, call_connection_id: str, command: TransferCommand) -> None:
        await self._record(call_connection_id, command)

    async def close(self) -> None:
        self.closed = True

    def issued(self) -> List[Command]:
        return [command for _, command in self.commands]


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    """Create test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def test_menu_path():
    """Return path to test menu YAML file."""
    return Path(__file__).parent / "fixtures" / "test_menus.yaml"


@pytest.fixture
def menu_catalog(test_menu_path):
    """Menu catalog loaded from the test fixture."""
    return MenuCatalog(InMemoryMenuProvider(menu_file=str(test_menu_path)))


@pytest.fixture
def transitions(menu_catalog):
    """State machine with a two-retry budget and an agent transfer target."""
    return CallTransitionHandler(
        catalog=menu_catalog,
        retry_policy=RetryPolicy(max_retries=2),
        prompt_uri=prompt_uri,
        agent_transfer_target=AGENT_TARGET,
    )


@pytest.fixture
def telephony():
    return FakeTelephonyClient()


@pytest.fixture
def dispatcher():
    return EventDispatcher(idle_timeout_seconds=60, reap_interval_seconds=5)


@pytest.fixture
def call_manager(telephony, dispatcher, transitions):
    """Call manager without persistence."""
    return CallSessionManager(
        telephony=telephony,
        dispatcher=dispatcher,
        transitions=transitions,
        callback_base_url=CALLBACK_BASE_URL,
    )


@pytest.fixture
def persistent_call_manager(telephony, dispatcher, transitions, test_session_factory):
    """Call manager recording call history in the test database."""
    return CallSessionManager(
        telephony=telephony,
        dispatcher=dispatcher,
        transitions=transitions,
        callback_base_url=CALLBACK_BASE_URL,
        session_factory=test_session_factory,
    )


@pytest.fixture
def test_client(call_manager):
    """Create FastAPI test client with overrides."""
    app.dependency_overrides[get_call_manager] = lambda: call_manager

    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_event():
    """Build internal call events."""
    def _make_event(event_type: CallEventType, call_connection_id: str = "conn-1", **kwargs) -> CallEvent:
        return CallEvent(type=event_type, call_connection_id=call_connection_id, **kwargs)
    return _make_event


@pytest.fixture
def cloud_event():
    """Build raw CloudEvent dicts as the provider posts them."""
    def _cloud_event(event_type: str, data: dict, event_id: str = "evt-1") -> dict:
        return {
            "id": event_id,
            "source": f"calling/callConnections/{data.get('callConnectionId', 'unknown')}",
            "type": f"Microsoft.Communication.{event_type}",
            "specversion": "1.0",
            "datacontenttype": "application/json",
            "time": "2026-10-18T09:00:00Z",
            "data": data,
        }
    return _cloud_event


@pytest.fixture
def incoming_call_payload():
    """Data of an IncomingCall Event Grid event."""
    return {
        "to": {"kind": "phoneNumber", "rawId": "4:+15550002222", "phoneNumber": {"value": "+15550002222"}},
        "from": {"kind": "phoneNumber", "rawId": "4:+15550003333", "phoneNumber": {"value": "+15550003333"}},
        "callerDisplayName": "Test Caller",
        "serverCallId": "server-call-1",
        "incomingCallContext": "incoming-context-token",
        "correlationId": "correlation-1",
    }
