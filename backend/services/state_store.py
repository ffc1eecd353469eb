"""Durable key/value storage scoped to one agent object."""

from typing import Any, Optional
from sqlalchemy.orm import sessionmaker

from models import AgentStorage


class StateStore:
    """
    get/put of JSON values for a single object_id.

    Each call opens its own short-lived database session; the last
    put for a key wins.
    """

    def __init__(self, session_factory: sessionmaker, object_id: str):
        self.session_factory = session_factory
        self.object_id = object_id

    def get(self, key: str) -> Optional[Any]:
        db = self.session_factory()
        try:
            row = db.get(AgentStorage, (self.object_id, key))
            return row.value if row else None
        finally:
            db.close()

    def put(self, key: str, value: Any) -> None:
        db = self.session_factory()
        try:
            row = db.get(AgentStorage, (self.object_id, key))
            if row is None:
                db.add(AgentStorage(object_id=self.object_id, key=key, value=value))
            else:
                row.value = value
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

