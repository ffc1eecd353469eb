"""
SQLAlchemy ORM models for FinBot.

Includes:
    - AgentStorage: opaque JSON values keyed by (object_id, key)

Author: FinBot Team
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON

from database import Base


class AgentStorage(Base):
    """
    Durable key/value cell owned by one agent object.

    Each user maps to one object_id; the agent keeps its whole state
    under a single key and overwrites it on every mutation.
    """
    __tablename__ = "agent_storage"

    object_id = Column(String(64), primary_key=True)
    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
