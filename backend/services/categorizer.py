"""AI expense categorization into a fixed category set."""

from typing import Optional

from config import EXPENSE_CATEGORIES
from .ai_service import AIService
from .errors import ModelUnavailableError
from .formatting import format_money
from .observability import log_degraded
from .replies import reply_text
from .results import CategorizationResult, ResultStatus


class Categorizer:
    """One-shot model categorization with heuristic confidence scores."""

    FALLBACK_CATEGORY = "Other"

    # Confidence is fixed by how the category was obtained
    MATCH_CONFIDENCE = 0.95
    UNRECOGNIZED_CONFIDENCE = 0.5
    FAILURE_CONFIDENCE = 0.3

    MAX_TOKENS = 10
    TEMPERATURE = 0.3

    def __init__(self, ai_service: AIService, categories: Optional[list[str]] = None):
        self.ai_service = ai_service
        self.categories = list(categories or EXPENSE_CATEGORIES)

    def build_prompt(self, merchant: str, amount: float, notes: Optional[str] = None) -> str:
        detail = f"{merchant} - {notes}" if notes else merchant
        return (
            f"Categorize this expense into ONE of these categories: {', '.join(self.categories)}.\n"
            f"\n"
            f"Expense: {detail}\n"
            f"Amount: {format_money(amount)}\n"
            f"\n"
            f"Respond with ONLY the category name, nothing else."
        )

    async def categorize(
        self, merchant: str, amount: float, notes: Optional[str] = None
    ) -> CategorizationResult:
        """Categorize one expense. Never raises for model problems."""
        prompt = self.build_prompt(merchant, amount, notes)

        try:
            reply = await self.ai_service.run(
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.MAX_TOKENS,
                temperature=self.TEMPERATURE,
            )
        except ModelUnavailableError as e:
            log_degraded("categorizer", ResultStatus.FAILED.value, str(e))
            return CategorizationResult(
                category=self.FALLBACK_CATEGORY,
                confidence=self.FAILURE_CONFIDENCE,
                status=ResultStatus.FAILED,
                reason=str(e),
            )

        category = reply_text(reply)
        if category in self.categories:
            return CategorizationResult(category=category, confidence=self.MATCH_CONFIDENCE)

        reason = f"Unrecognized category reply: {category!r}"
        log_degraded("categorizer", ResultStatus.DEGRADED.value, reason)
        return CategorizationResult(
            category=self.FALLBACK_CATEGORY,
            confidence=self.UNRECOGNIZED_CONFIDENCE,
            status=ResultStatus.DEGRADED,
            reason=reason,
        )


def auto_category_note(result: CategorizationResult) -> str:
    """Note stored with an auto-categorized expense."""
    return f"Auto-categorized as {result.category} ({round(result.confidence * 100)}% confidence)"
