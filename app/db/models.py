"""Database models."""
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CallRecord(Base):
    """History of one answered call."""

    __tablename__ = "calls"

    id = Column(Integer, primary_key=True, index=True)
    call_connection_id = Column(String, unique=True, index=True, nullable=False)
    correlation_id = Column(String, nullable=True)
    server_call_id = Column(String, nullable=True)
    caller_id = Column(String, nullable=False)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    status = Column(String, default="in_progress", nullable=False)  # in_progress, completed, abandoned, failed
    outcome = Column(String, nullable=True)  # invalid_selection, escalated, transferred, transfer_failed, disconnected
    menu_path = Column(JSON, nullable=True)  # Menus visited, in order
