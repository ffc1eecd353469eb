"""Pydantic request/response schemas for type safety."""

from datetime import datetime
from typing import Optional, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from config import EXPENSE_CATEGORIES, DEFAULT_CURRENCY


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# =============================================================================
# State Schemas
# =============================================================================

class Expense(CamelModel):
    id: str
    amount: float
    merchant: str
    category: str
    date: str
    notes: Optional[str] = None


class Message(CamelModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime


class Preferences(CamelModel):
    currency: str = DEFAULT_CURRENCY
    categories: list[str] = Field(default_factory=lambda: list(EXPENSE_CATEGORIES))


class UserState(CamelModel):
    """Everything one user owns; persisted as a single JSON value."""
    user_id: str = ""
    expenses: list[Expense] = Field(default_factory=list)
    conversations: list[Message] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)


class SpendingContext(CamelModel):
    total_spent: float
    top_category: str
    top_amount: float
    category_totals: dict[str, float]
    recent_expenses: list[Expense]
    expense_count: int


# =============================================================================
# Insight Schemas
# =============================================================================

class SpendingPattern(CamelModel):
    type: Literal["time_of_day", "day_of_week", "category"]
    insight: str
    recommendation: str


class WeekendVsWeekday(CamelModel):
    weekend: float = 0
    weekday: float = 0


class SpendingTrends(CamelModel):
    weekend_vs_weekday: WeekendVsWeekday = Field(default_factory=WeekendVsWeekday)
    category_distribution: dict[str, float] = Field(default_factory=dict)


class SpendingPersonality(CamelModel):
    personality: str
    description: str
    patterns: list[SpendingPattern] = Field(default_factory=list)
    trends: SpendingTrends = Field(default_factory=SpendingTrends)


# =============================================================================
# Request Schemas
# =============================================================================

class ExpenseCreate(CamelModel):
    """Body of a direct add; validated like the expense form."""
    merchant: str
    amount: float = Field(gt=0, allow_inf_nan=False)
    notes: Optional[str] = None
    date: Optional[str] = None
    category: Optional[str] = None

    @field_validator("merchant")
    @classmethod
    def merchant_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("merchant must not be empty")
        return value

    @field_validator("date")
    @classmethod
    def date_is_calendar_day(cls, value: Optional[str]) -> Optional[str]:
        """Blank means today; anything else must be a YYYY-MM-DD date."""
        if value is None or not value.strip():
            return None
        try:
            return datetime.strptime(value.strip(), "%Y-%m-%d").date().isoformat()
        except ValueError:
            raise ValueError("date must be a calendar date (YYYY-MM-DD)") from None


class ParseExpenseRequest(CamelModel):
    text: str


class ChatRequest(CamelModel):
    """Request schema for chat endpoint."""
    message: str = Field(..., min_length=1, description="User's message")


# =============================================================================
# Response Schemas
# =============================================================================

class ExpenseResponse(CamelModel):
    success: bool = True
    expense: Expense


class ExpenseListResponse(CamelModel):
    expenses: list[Expense]


class ErrorResponse(CamelModel):
    success: bool = False
    error: str


class ChatResponse(CamelModel):
    response: str
    expense_added: bool


class ConversationResponse(CamelModel):
    conversations: list[Message]


class HealthResponse(BaseModel):
    status: str
    database: str
    openai: str
