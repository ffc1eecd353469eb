"""Maps user identifiers to UserAgent instances, keeping recent ones in memory."""

import hashlib
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.orm import sessionmaker

from config import MAX_CACHED_AGENTS
from .ai_service import AIService
from .observability import logger
from .state_store import StateStore
from .user_agent import UserAgent


class AgentNamespace:
    """
    One UserAgent per object id, created on first use.

    Object ids are derived deterministically from the user name, so the
    same user always lands on the same agent and the same storage rows.
    Agents are kept in least-recently-used order; once more than
    `max_agents` are cached the oldest idle ones are dropped. An agent
    with a request in flight is never dropped, so its lock stays the
    only writer for that user.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        ai_service: AIService,
        max_agents: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.ai_service = ai_service
        self.max_agents = MAX_CACHED_AGENTS if max_agents is None else max_agents
        self._agents: "OrderedDict[str, UserAgent]" = OrderedDict()
        self._in_flight: dict[str, int] = {}

    @staticmethod
    def id_from_name(name: str) -> str:
        return hashlib.sha256(f"user-agent:{name}".encode("utf-8")).hexdigest()

    def get(self, object_id: str) -> UserAgent:
        agent = self._lookup(object_id)
        self._evict_idle(keep=object_id)
        return agent

    @asynccontextmanager
    async def acquire(self, object_id: str) -> AsyncIterator[UserAgent]:
        """Hold the agent's lock for one request."""
        agent = self._lookup(object_id)
        self._in_flight[object_id] = self._in_flight.get(object_id, 0) + 1
        self._evict_idle()
        try:
            async with agent.lock:
                yield agent
        finally:
            self._in_flight[object_id] -= 1
            if not self._in_flight[object_id]:
                del self._in_flight[object_id]
            self._evict_idle()

    def _lookup(self, object_id: str) -> UserAgent:
        agent = self._agents.get(object_id)
        if agent is None:
            agent = UserAgent(StateStore(self.session_factory, object_id), self.ai_service)
            self._agents[object_id] = agent
        self._agents.move_to_end(object_id)
        return agent

    def _evict_idle(self, keep: Optional[str] = None) -> None:
        excess = len(self._agents) - self.max_agents
        if excess <= 0:
            return

        idle = [oid for oid in self._agents if oid not in self._in_flight and oid != keep]
        for object_id in idle[:excess]:
            del self._agents[object_id]
        logger.debug("Evicted idle agents", count=min(excess, len(idle)), cached=len(self._agents))

    def __contains__(self, object_id: str) -> bool:
        return object_id in self._agents

    def __len__(self) -> int:
        return len(self._agents)
