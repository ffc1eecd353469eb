"""
Test Module: test_agent_namespace.py
Description: Unit tests for the user-to-agent map.

Tests:
    - Deterministic object ids
    - Eviction of idle agents once the cache is full
    - One writer at a time per user
"""

import asyncio

from conftest import FakeAIService, run
from services.agent_namespace import AgentNamespace
from services.state_store import StateStore
from services.user_agent import UserAgent


class TestObjectIds:

    def test_same_name_same_id(self):
        assert AgentNamespace.id_from_name("alice") == AgentNamespace.id_from_name("alice")
        assert AgentNamespace.id_from_name("alice") != AgentNamespace.id_from_name("bob")
        assert len(AgentNamespace.id_from_name("alice")) == 64

    def test_same_id_same_agent(self, session_factory, fake_ai):
        namespace = AgentNamespace(session_factory, fake_ai)

        assert namespace.get("a") is namespace.get("a")
        assert len(namespace) == 1


class TestEviction:

    def test_oldest_idle_agent_dropped(self, session_factory, fake_ai):
        namespace = AgentNamespace(session_factory, fake_ai, max_agents=2)

        for object_id in ["a", "b", "c"]:
            namespace.get(object_id)

        assert len(namespace) == 2
        assert "a" not in namespace
        assert "b" in namespace and "c" in namespace

    def test_recent_use_keeps_agent(self, session_factory, fake_ai):
        namespace = AgentNamespace(session_factory, fake_ai, max_agents=2)

        namespace.get("a")
        namespace.get("b")
        namespace.get("a")
        namespace.get("c")

        assert "a" in namespace
        assert "b" not in namespace

    def test_agent_in_flight_is_kept(self, session_factory, fake_ai):
        namespace = AgentNamespace(session_factory, fake_ai, max_agents=1)

        async def scenario():
            async with namespace.acquire("a") as held:
                namespace.get("b")
                namespace.get("c")
                assert namespace.get("a") is held
            return held

        held = run(scenario())

        assert "a" in namespace
        assert len(namespace) == 1
        assert namespace.get("a") is held

    def test_evicted_user_reloads_from_storage(self, session_factory, fake_ai):
        namespace = AgentNamespace(session_factory, fake_ai, max_agents=1)

        first = namespace.get("a")
        run(first.initialize("alice"))
        first.add_expense(amount=7, merchant="Cafe", category="Food", date="2024-06-03")

        namespace.get("b")
        assert "a" not in namespace

        reloaded = namespace.get("a")
        run(reloaded.initialize("ignored"))

        assert reloaded is not first
        assert [e.merchant for e in reloaded.get_expenses()] == ["Cafe"]


class TestSingleWriter:

    def test_concurrent_chats_for_one_user_both_persist(self, session_factory):
        ai = FakeAIService(
            replies=["Food", "Noted the coffee.", "Transport", "Noted the ride."],
            delay=0.01,
        )
        namespace = AgentNamespace(session_factory, ai)
        object_id = namespace.id_from_name("alice")

        async def chat(message):
            async with namespace.acquire(object_id) as agent:
                await agent.initialize("alice")
                return await agent.handle_chat(message)

        async def scenario():
            return await asyncio.gather(
                chat("I spent $9 at Starbucks"),
                chat("paid $15 for Uber"),
            )

        first, second = run(scenario())

        assert first.expense_added and second.expense_added
        assert first.response == "Noted the coffee."
        assert second.response == "Noted the ride."

        stored = UserAgent(StateStore(session_factory, object_id), ai)
        run(stored.initialize("ignored"))

        assert [(e.merchant, e.category) for e in stored.get_expenses()] == [
            ("Starbucks", "Food"), ("Uber", "Transport")
        ]
        assert [(m.role, m.content) for m in stored.get_conversations()] == [
            ("user", "I spent $9 at Starbucks"),
            ("assistant", "Noted the coffee."),
            ("user", "paid $15 for Uber"),
            ("assistant", "Noted the ride."),
        ]
