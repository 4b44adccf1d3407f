"""Call persistence service."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import CallRecord


class CallPersistenceService:
    """Service for persisting call history."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_call(
        self,
        call_connection_id: str,
        caller_id: str,
        correlation_id: Optional[str] = None,
        server_call_id: Optional[str] = None,
    ) -> CallRecord:
        """Create a new call record or return the existing one."""
        existing_call = await self.get_call(call_connection_id)
        if existing_call:
            return existing_call

        call = CallRecord(
            call_connection_id=call_connection_id,
            caller_id=caller_id,
            correlation_id=correlation_id,
            server_call_id=server_call_id,
            status="in_progress",
        )
        self.db.add(call)
        await self.db.commit()
        await self.db.refresh(call)
        return call

    async def get_call(self, call_connection_id: str) -> Optional[CallRecord]:
        """Get call by call-connection id."""
        result = await self.db.execute(
            select(CallRecord).where(CallRecord.call_connection_id == call_connection_id)
        )
        return result.scalar_one_or_none()

    async def complete_call(
        self,
        call_connection_id: str,
        status: str,
        outcome: Optional[str] = None,
        menu_path: Optional[List[str]] = None,
        ended_at: Optional[datetime] = None,
    ) -> Optional[CallRecord]:
        """Record how a call ended."""
        call = await self.get_call(call_connection_id)
        if call:
            call.status = status
            call.outcome = outcome
            if menu_path is not None:
                call.menu_path = list(menu_path)
            call.ended_at = ended_at or datetime.utcnow()
            await self.db.commit()
            await self.db.refresh(call)
        return call

    async def list_calls(self, limit: int = 100) -> List[CallRecord]:
        """Most recent calls first."""
        result = await self.db.execute(
            select(CallRecord).order_by(desc(CallRecord.started_at), desc(CallRecord.id)).limit(limit)
        )
        return list(result.scalars().all())
