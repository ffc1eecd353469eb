"""
Module: insight_analyzer.py
Description: Spending personality and pattern report over a user's expenses.

Trends (weekend vs weekday, per-category totals) are computed locally;
the hosted model only picks a personality label and writes a one-line
description of it. Two pattern observations are derived without the model.

Author: FinBot Team
"""

import math
from typing import Optional

import pandas as pd

from schemas import (
    Expense, SpendingPattern, SpendingPersonality,
    SpendingTrends, WeekendVsWeekday
)
from .ai_service import AIService
from .errors import ModelUnavailableError
from .observability import log_degraded
from .formatting import format_money
from .replies import reply_text


MIN_EXPENSES_FOR_INSIGHTS = 5

PERSONALITY_TYPES = [
    "Weekend Warrior",
    "Stress Spender",
    "Late Night Buyer",
    "Consistent Budgeter",
    "Impulse Shopper",
]

# Weekend spending above weekday spending by more than 30%
WEEKEND_RATIO_THRESHOLD = 1.3
# Top category share above which diversifying is suggested
CATEGORY_SHARE_THRESHOLD = 40

FALLBACK_DESCRIPTION = "Your spending shows a clear rhythm. Keep logging expenses to sharpen the picture."


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def getting_started() -> SpendingPersonality:
    """Placeholder report for users with too few expenses."""
    return SpendingPersonality(
        personality="Getting Started",
        description="Add more expenses to see your spending personality!",
        patterns=[],
        trends=SpendingTrends(),
    )


def calculate_trends(expenses: list[Expense]) -> SpendingTrends:
    """Weekend/weekday totals and per-category totals in first-seen order."""
    df = pd.DataFrame(
        [{"date": e.date, "amount": e.amount, "category": e.category} for e in expenses],
        columns=["date", "amount", "category"],
    )
    # Unparseable dates fall in neither bucket; offsets are normalized to UTC
    day_of_week = pd.to_datetime(df["date"], errors="coerce", format="mixed", utc=True).dt.dayofweek

    weekend = df.loc[day_of_week.isin([5, 6]), "amount"].sum()
    weekday = df.loc[day_of_week.between(0, 4), "amount"].sum()

    by_category = df.groupby("category", sort=False)["amount"].sum()

    return SpendingTrends(
        weekend_vs_weekday=WeekendVsWeekday(weekend=float(weekend), weekday=float(weekday)),
        category_distribution={str(k): float(v) for k, v in by_category.items()},
    )


def top_categories(trends: SpendingTrends, limit: int = 3) -> list[tuple[str, float]]:
    ranked = sorted(trends.category_distribution.items(), key=lambda item: item[1], reverse=True)
    return ranked[:limit]


def generate_patterns(expenses: list[Expense], trends: SpendingTrends) -> list[SpendingPattern]:
    """Heuristic observations that do not need the model."""
    patterns = []
    weekend = trends.weekend_vs_weekday.weekend
    weekday = trends.weekend_vs_weekday.weekday

    if weekend > weekday * WEEKEND_RATIO_THRESHOLD:
        share = round_half_up(weekend / (weekend + weekday) * 100)
        patterns.append(SpendingPattern(
            type="day_of_week",
            insight=f"You spend {share}% of your money on weekends",
            recommendation="Consider setting a weekend spending cap to balance fun with savings",
        ))

    ranked = top_categories(trends, limit=1)
    if ranked:
        category, amount = ranked[0]
        total = sum(e.amount for e in expenses)
        share = round_half_up(amount / total * 100) if total else 0

        if share > CATEGORY_SHARE_THRESHOLD:
            recommendation = f"Try diversifying your spending or reducing {category} expenses"
        else:
            recommendation = f"Your {category} spending looks balanced"

        patterns.append(SpendingPattern(
            type="category",
            insight=f"{category} is {share}% of your spending",
            recommendation=recommendation,
        ))

    return patterns


class InsightAnalyzer:
    """Builds the spending personality report."""

    def __init__(self, ai_service: AIService):
        self.ai_service = ai_service

    async def analyze(self, expenses: list[Expense]) -> SpendingPersonality:
        if len(expenses) < MIN_EXPENSES_FOR_INSIGHTS:
            return getting_started()

        trends = calculate_trends(expenses)

        # The description prompt needs the label, so the calls stay sequential
        personality = await self._classify(trends)
        description = await self._describe(personality, trends)

        return SpendingPersonality(
            personality=personality,
            description=description,
            patterns=generate_patterns(expenses, trends),
            trends=trends,
        )

    def build_personality_prompt(self, trends: SpendingTrends) -> str:
        split = trends.weekend_vs_weekday
        top = ", ".join(f"{cat} ({format_money(amt)})" for cat, amt in top_categories(trends))
        return (
            "Based on this spending data, identify the user's spending personality.\n"
            "\n"
            "Data:\n"
            f"- Weekend spending: {format_money(split.weekend)}\n"
            f"- Weekday spending: {format_money(split.weekday)}\n"
            f"- Top categories: {top}\n"
            "\n"
            f"Choose ONE personality type from: {', '.join(PERSONALITY_TYPES)}\n"
            "\n"
            "Respond with ONLY the personality type name."
        )

    def build_description_prompt(self, personality: str, trends: SpendingTrends) -> str:
        split = trends.weekend_vs_weekday
        # First category recorded, not the largest
        top = next(iter(trends.category_distribution), "Unknown")
        return (
            f'You identified this user as a "{personality}".\n'
            "Write a 1-sentence friendly description of what that means based on their spending:\n"
            f"- Weekend: {format_money(split.weekend)}, Weekday: {format_money(split.weekday)}\n"
            f"- Top category: {top}"
        )

    async def _classify(self, trends: SpendingTrends) -> str:
        try:
            reply = await self.ai_service.run(
                messages=[{"role": "user", "content": self.build_personality_prompt(trends)}],
                max_tokens=20,
                temperature=0.3,
            )
        except ModelUnavailableError as e:
            log_degraded("insights.personality", "failed", str(e))
            return self._fallback_personality(trends)

        label = self._match_personality(reply_text(reply))
        if label is None:
            log_degraded("insights.personality", "degraded", f"Unrecognized label: {reply!r}")
            return self._fallback_personality(trends)
        return label

    async def _describe(self, personality: str, trends: SpendingTrends) -> str:
        try:
            reply = await self.ai_service.run(
                messages=[{"role": "user", "content": self.build_description_prompt(personality, trends)}],
                max_tokens=100,
                temperature=0.7,
            )
        except ModelUnavailableError as e:
            log_degraded("insights.description", "failed", str(e))
            return FALLBACK_DESCRIPTION

        return reply_text(reply) or FALLBACK_DESCRIPTION

    @staticmethod
    def _match_personality(text: str) -> Optional[str]:
        """Exact label, or the first label the reply mentions."""
        if text in PERSONALITY_TYPES:
            return text
        lowered = text.lower()
        for label in PERSONALITY_TYPES:
            if label.lower() in lowered:
                return label
        return None

    @staticmethod
    def _fallback_personality(trends: SpendingTrends) -> str:
        split = trends.weekend_vs_weekday
        if split.weekend > split.weekday * WEEKEND_RATIO_THRESHOLD:
            return "Weekend Warrior"
        return "Consistent Budgeter"
