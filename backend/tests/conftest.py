"""
Pytest configuration and shared fixtures for FinBot tests.

This file is automatically loaded by pytest and provides:
    - In-memory database fixtures
    - A scripted stand-in for the hosted model
    - Expense fixtures and helpers

Author: FinBot Team
"""

import asyncio
import pytest
import sys
from pathlib import Path
from datetime import date, timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import init_db
from schemas import Expense
from services.observability import metrics
from services.state_store import StateStore
from services.user_agent import UserAgent


# =============================================================================
# Hosted Model Fixtures
# =============================================================================

class FakeAIService:
    """
    Scripted stand-in for AIService.

    Queued replies are returned in order; an Exception instance in the
    queue is raised instead. When the queue is empty `default` is returned.
    A non-zero `delay` makes every call yield to the event loop first.
    """

    def __init__(self, replies=None, default=None, delay=0.0):
        self.replies = list(replies or [])
        self.default = default
        self.delay = delay
        self.calls = []

    def queue(self, *replies) -> None:
        self.replies.extend(replies)

    async def run(self, messages, max_tokens, temperature):
        self.calls.append({
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def check_connection(self) -> bool:
        return False

    def get_usage_stats(self) -> dict:
        return {"total_tokens": 0, "request_count": len(self.calls), "avg_tokens_per_request": 0}

    @property
    def prompts(self) -> list[str]:
        """Content of the last message of every call."""
        return [call["messages"][-1]["content"] for call in self.calls]


@pytest.fixture
def fake_ai():
    return FakeAIService()


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite database shared across connections."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return StateStore(session_factory, "object-under-test")


@pytest.fixture
def agent(store, fake_ai):
    """Initialized agent for user 'tester'."""
    user_agent = UserAgent(store, fake_ai)
    run(user_agent.initialize("tester"))
    return user_agent


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


# =============================================================================
# Expense Fixtures
# =============================================================================

# 2024-06-01 is a Saturday
SATURDAY = date(2024, 6, 1)


def make_expense(amount, category="Food", day=SATURDAY, merchant="Cafe", index=0) -> Expense:
    return Expense(
        id=f"exp_test_{index}",
        amount=amount,
        merchant=merchant,
        category=category,
        date=day.isoformat(),
    )


@pytest.fixture
def weekday_expenses():
    """Six expenses Monday to Friday, Food-heavy."""
    monday = SATURDAY + timedelta(days=2)
    return [
        make_expense(40.0, "Food", monday, "Chipotle", 0),
        make_expense(15.0, "Transport", monday + timedelta(days=1), "Uber", 1),
        make_expense(30.0, "Food", monday + timedelta(days=2), "Starbucks", 2),
        make_expense(20.0, "Shopping", monday + timedelta(days=3), "Target", 3),
        make_expense(10.0, "Bills", monday + timedelta(days=4), "Comcast", 4),
        make_expense(5.0, "Other", monday + timedelta(days=4), "Kiosk", 5),
    ]


# =============================================================================
# Test Utilities
# =============================================================================

def run(coro):
    """Drive a coroutine to completion from a synchronous test."""
    return asyncio.run(coro)
