"""
Module: user_agent.py
Description: Per-user state container and request handler.

One UserAgent owns one user's expenses, recent conversation and
preferences. Its whole state is a single JSON value in durable storage,
reloaded on every request and written back after every mutation.

Requests are dispatched on path suffix and method:
    POST .../expenses        add an expense (auto-categorized if needed)
    GET  .../expenses        list expenses, optionally filtered
    POST .../expenses/parse  extract an expense from free text
    POST .../chat            chat, saving any expense mentioned
    GET  .../insights        spending personality report
    GET  .../conversations   recent conversation history

Author: FinBot Team
"""

import asyncio
import json
import math
import random
import string
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, ValidationError

from config import DEFAULT_AGENT_USER_ID, MAX_CONVERSATION_MESSAGES
from schemas import (
    Expense, Message, UserState, SpendingContext, SpendingPersonality,
    ExpenseCreate, ParseExpenseRequest, ChatRequest,
    ExpenseResponse, ExpenseListResponse, ErrorResponse,
    ChatResponse, ConversationResponse
)
from .ai_service import AIService
from .categorizer import Categorizer, auto_category_note
from .chat_extractor import iter_candidates
from .errors import ExpenseParseError, ModelUnavailableError, ReplyFormatError
from .formatting import format_money
from .insight_analyzer import InsightAnalyzer
from .observability import logger, metrics, log_chat_request, log_expense_added, log_degraded
from .replies import reply_text, parse_json_reply
from .results import ChatReply, ResultStatus
from .state_store import StateStore


PARSE_HINT = 'Could not parse expense. Try format: "Spent $45 at Chipotle"'
PARSE_INCOMPLETE = "Could not understand that expense format."

CHAT_EMPTY_REPLY = "I'm having trouble responding right now. Please try again."
CHAT_ERROR_REPLY = "Sorry, I encountered an error. Please try again."

EXPENSE_SAVED_NOTE = (
    "[Note: I detected and saved an expense from this message. "
    "Acknowledge this briefly and provide relevant spending advice.]"
)

PARSE_FORMAT = """Respond with JSON in this exact format:
{
  "amount": number,
  "merchant": "string"
}

If you can't parse it, respond with null."""

CHAT_SYSTEM_PROMPT = """You are FinBot, a friendly financial wellness assistant.
You help users understand their spending without judgment.
Use a conversational tone, avoid jargon unless asked.

User Context:
- Total expenses: ${total:.2f}
- Number of expenses: {count}
- Top category: {top_category} (${top_amount:.2f})
- Category breakdown: {breakdown}
- Recent expenses: {recent}

Guidelines:
- Be concise (2-3 sentences)
- Use specific data from their expenses including categories
- Offer actionable suggestions
- Never shame or judge"""


def generate_expense_id() -> str:
    """Millisecond timestamp plus a random base36 suffix; unique in practice."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"exp_{int(time.time() * 1000)}_{suffix}"


def today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class UserAgent:
    """
    Authoritative store and request handler for one user.

    The caller guarantees at most one request in flight per agent
    (see AgentNamespace and the lock below).
    """

    STATE_KEY = "state"

    def __init__(
        self,
        storage: StateStore,
        ai_service: AIService,
        categorizer: Optional[Categorizer] = None,
        analyzer: Optional[InsightAnalyzer] = None,
    ):
        self.storage = storage
        self.ai_service = ai_service
        self.categorizer = categorizer or Categorizer(ai_service)
        self.analyzer = analyzer or InsightAnalyzer(ai_service)
        self.state = UserState()
        self.lock = asyncio.Lock()

    # ==========================================================================
    # State
    # ==========================================================================

    async def initialize(self, user_id: str) -> None:
        """Load persisted state, or persist a fresh default for user_id."""
        stored = self.storage.get(self.STATE_KEY)
        if stored:
            self.state = UserState.model_validate(stored)
        else:
            self.state.user_id = user_id
            self.save_state()

    def save_state(self) -> None:
        self.storage.put(self.STATE_KEY, self.state.model_dump(mode="json", by_alias=True))

    def add_expense(
        self,
        amount: float,
        merchant: str,
        category: str,
        date: str,
        notes: Optional[str] = None,
    ) -> Expense:
        expense = Expense(
            id=generate_expense_id(),
            amount=amount,
            merchant=merchant,
            category=category,
            date=date,
            notes=notes,
        )
        self.state.expenses.append(expense)
        try:
            self.save_state()
        except Exception:
            self.state.expenses.pop()
            raise
        return expense

    def get_expenses(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[Expense]:
        """Expenses in insertion order; date bounds are inclusive."""
        filtered = list(self.state.expenses)

        if start_date:
            filtered = [e for e in filtered if e.date >= start_date]
        if end_date:
            filtered = [e for e in filtered if e.date <= end_date]
        if category:
            filtered = [e for e in filtered if e.category == category]

        return filtered

    def add_message(self, role: str, content: str) -> Message:
        message = Message(role=role, content=content, timestamp=datetime.now(timezone.utc))

        self.state.conversations.append(message)
        if len(self.state.conversations) > MAX_CONVERSATION_MESSAGES:
            self.state.conversations = self.state.conversations[-MAX_CONVERSATION_MESSAGES:]

        self.save_state()
        return message

    def get_conversations(self) -> list[Message]:
        return list(self.state.conversations)

    def get_spending_context(self) -> SpendingContext:
        """Totals recomputed from the current expense list on every call."""
        expenses = self.state.expenses

        category_totals: dict[str, float] = {}
        for e in expenses:
            category_totals[e.category] = category_totals.get(e.category, 0) + e.amount

        # max keeps the first of equal totals, i.e. the earliest category seen
        top = max(category_totals.items(), key=lambda item: item[1]) if category_totals else None

        return SpendingContext(
            total_spent=sum(e.amount for e in expenses),
            top_category=top[0] if top else "Unknown",
            top_amount=top[1] if top else 0,
            category_totals=category_totals,
            recent_expenses=expenses[-5:],
            expense_count=len(expenses),
        )

    # ==========================================================================
    # Model-backed Operations
    # ==========================================================================

    def build_system_prompt(self, context: SpendingContext) -> str:
        breakdown = ", ".join(f"{cat}: ${amt:.2f}" for cat, amt in context.category_totals.items())
        recent = ", ".join(
            f"{e.merchant} {format_money(e.amount)} ({e.category})" for e in context.recent_expenses
        )
        return CHAT_SYSTEM_PROMPT.format(
            total=context.total_spent,
            count=context.expense_count,
            top_category=context.top_category,
            top_amount=context.top_amount,
            breakdown=breakdown or "No expenses yet",
            recent=recent,
        )

    async def chat_with_ai(self, user_message: str, context: SpendingContext) -> ChatReply:
        """Ask the model for a reply; never raises for model problems."""
        try:
            reply = await self.ai_service.run(
                messages=[
                    {"role": "system", "content": self.build_system_prompt(context)},
                    {"role": "user", "content": user_message},
                ],
                max_tokens=256,
                temperature=0.7,
            )
        except ModelUnavailableError as e:
            log_degraded("chat", ResultStatus.FAILED.value, str(e))
            return ChatReply(text=CHAT_ERROR_REPLY, status=ResultStatus.FAILED, reason=str(e))

        text = reply_text(reply)
        if not text:
            log_degraded("chat", ResultStatus.DEGRADED.value, "Empty reply")
            return ChatReply(text=CHAT_EMPTY_REPLY, status=ResultStatus.DEGRADED, reason="Empty reply")
        return ChatReply(text=text)

    async def parse_and_add_expense(self, text: str) -> Expense:
        """
        Extract {amount, merchant} from free text with the model and store it.

        Raises:
            ExpenseParseError: The reply was unusable or incomplete.
            ModelUnavailableError: The model could not be called.
        """
        prompt = f'Extract expense details from this text: "{text}"\n\n{PARSE_FORMAT}'
        reply = await self.ai_service.run(
            messages=[{"role": "user", "content": prompt}],
            max_tokens=100,
            temperature=0.1,
        )

        try:
            parsed = parse_json_reply(reply)
        except ReplyFormatError as e:
            metrics.increment("expenses.parse_failed")
            raise ExpenseParseError(PARSE_HINT) from e

        if not parsed or not parsed.get("amount") or not parsed.get("merchant"):
            metrics.increment("expenses.parse_failed")
            raise ExpenseParseError(PARSE_INCOMPLETE)

        try:
            amount = float(parsed["amount"])
        except (TypeError, ValueError) as e:
            raise ExpenseParseError(PARSE_INCOMPLETE) from e
        merchant = str(parsed["merchant"]).strip()
        if not math.isfinite(amount) or amount <= 0 or not merchant:
            raise ExpenseParseError(PARSE_INCOMPLETE)

        result = await self.categorizer.categorize(merchant, amount)
        expense = self.add_expense(
            amount=amount,
            merchant=merchant,
            category=result.category,
            date=today(),
            notes=auto_category_note(result),
        )
        log_expense_added("parse", expense.category, expense.amount)
        return expense

    async def get_insights(self) -> SpendingPersonality:
        return await self.analyzer.analyze(self.state.expenses)

    # ==========================================================================
    # Handlers
    # ==========================================================================

    async def create_expense(self, body: ExpenseCreate) -> Expense:
        """Direct add; categories outside the fixed set are re-derived."""
        category = body.category if body.category in self.state.preferences.categories else None
        notes = body.notes

        if category is None:
            result = await self.categorizer.categorize(body.merchant, body.amount, body.notes)
            category = result.category
            if not notes:
                notes = auto_category_note(result)

        expense = self.add_expense(
            amount=body.amount,
            merchant=body.merchant,
            category=category,
            date=body.date or today(),
            notes=notes,
        )
        log_expense_added("form", expense.category, expense.amount)
        return expense

    async def handle_chat(self, message: str) -> ChatResponse:
        log_chat_request(len(message))
        self.add_message("user", message)

        expense_added = await self._capture_expense(message)
        context = self.get_spending_context()

        prompt = f"{message}\n\n{EXPENSE_SAVED_NOTE}" if expense_added else message
        reply = await self.chat_with_ai(prompt, context)

        self.add_message("assistant", reply.text)
        return ChatResponse(response=reply.text, expense_added=expense_added)

    async def _capture_expense(self, message: str) -> bool:
        """Store the first expense the extractor finds; later rules are fallbacks."""
        for candidate in iter_candidates(message):
            try:
                result = await self.categorizer.categorize(candidate.merchant, candidate.amount)
                expense = self.add_expense(
                    amount=candidate.amount,
                    merchant=candidate.merchant,
                    category=result.category,
                    date=today(),
                    notes="Added via chat",
                )
            except Exception as e:
                logger.warning("Chat expense capture failed", rule=candidate.rule, error=str(e))
                continue

            log_expense_added("chat", expense.category, expense.amount)
            return True

        return False

    # ==========================================================================
    # Dispatch
    # ==========================================================================

    async def fetch(self, request: Request) -> Response:
        """Entry point for every request routed to this agent."""
        path = request.url.path
        method = request.method
        params = request.query_params

        await self.initialize(params.get("userId") or DEFAULT_AGENT_USER_ID)

        try:
            if path.endswith("/expenses") and method == "POST":
                body = ExpenseCreate.model_validate(await request.json())
                expense = await self.create_expense(body)
                return _json(ExpenseResponse(expense=expense))

            if path.endswith("/expenses") and method == "GET":
                expenses = self.get_expenses(
                    start_date=params.get("startDate"),
                    end_date=params.get("endDate"),
                    category=params.get("category"),
                )
                return _json(ExpenseListResponse(expenses=expenses))

            if path.endswith("/expenses/parse") and method == "POST":
                body = ParseExpenseRequest.model_validate(await request.json())
                try:
                    expense = await self.parse_and_add_expense(body.text)
                except ExpenseParseError as e:
                    logger.info("Expense parse rejected", reason=str(e))
                    return _json(ErrorResponse(error=str(e)), status_code=400)
                except ModelUnavailableError as e:
                    logger.error("Expense parse failed", error=str(e))
                    return _json(ErrorResponse(error="Expense parsing is unavailable right now."), status_code=400)
                return _json(ExpenseResponse(expense=expense))

            if path.endswith("/chat") and method == "POST":
                body = ChatRequest.model_validate(await request.json())
                return _json(await self.handle_chat(body.message))

            if path.endswith("/insights") and method == "GET":
                return _json(await self.get_insights())

            if path.endswith("/conversations") and method == "GET":
                return _json(ConversationResponse(conversations=self.get_conversations()))

        except json.JSONDecodeError:
            return _json(ErrorResponse(error="Request body must be valid JSON"), status_code=400)
        except ValidationError as e:
            return _json(ErrorResponse(error=_validation_message(e)), status_code=400)

        return PlainTextResponse("Not Found", status_code=404)


def _json(model: BaseModel, status_code: int = 200) -> JSONResponse:
    return JSONResponse(model.model_dump(mode="json", by_alias=True), status_code=status_code)


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return f"{field}: {first.get('msg', 'invalid value')}"
