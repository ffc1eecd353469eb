"""
Module: chat_extractor.py
Description: Detects an expense mentioned in a free-text chat message.

Rules are tried in order; each knows which capture group holds the
amount and which holds the merchant, so "bought coffee for $5" and
"spent $5 at Starbucks" map to the same shape.

Usage:
    for candidate in iter_candidates("I spent $9 at Starbucks"):
        print(candidate.amount, candidate.merchant)
"""

import math
import re
from dataclasses import dataclass
from typing import Iterator, Optional


@dataclass(frozen=True)
class ExtractionRule:
    name: str
    pattern: re.Pattern
    amount_group: int
    merchant_group: int


@dataclass(frozen=True)
class DetectedExpense:
    amount: float
    merchant: str
    rule: str


AMOUNT = r"(\d+(?:\.\d{2})?)"

EXPENSE_RULES = (
    ExtractionRule(
        name="verb_amount_merchant",
        pattern=re.compile(rf"(?:spent|paid|bought|cost|costs)\s*\$?{AMOUNT}\s*(?:at|on|for)?\s*(.+)", re.IGNORECASE),
        amount_group=1,
        merchant_group=2,
    ),
    ExtractionRule(
        name="amount_merchant",
        pattern=re.compile(rf"\${AMOUNT}\s*(?:at|on|for)\s*(.+)", re.IGNORECASE),
        amount_group=1,
        merchant_group=2,
    ),
    ExtractionRule(
        name="item_for_amount",
        pattern=re.compile(rf"(?:bought|got)\s+(.+?)\s+for\s+\$?{AMOUNT}", re.IGNORECASE),
        amount_group=2,
        merchant_group=1,
    ),
)

TRAILING_PUNCTUATION = re.compile(r"[.,!?;]+$")
TEMPORAL_QUALIFIER = re.compile(r"\s+(?:today|yesterday|just now)", re.IGNORECASE)


def clean_merchant(raw: str) -> str:
    """Drop trailing punctuation and anything from a time word onward."""
    merchant = TRAILING_PUNCTUATION.sub("", raw.strip())
    return TEMPORAL_QUALIFIER.split(merchant, maxsplit=1)[0].strip()


def apply_rule(rule: ExtractionRule, message: str) -> Optional[DetectedExpense]:
    match = rule.pattern.search(message)
    if not match:
        return None

    amount = float(match.group(rule.amount_group))
    merchant = clean_merchant(match.group(rule.merchant_group))

    if amount > 0 and math.isfinite(amount) and merchant:
        return DetectedExpense(amount=amount, merchant=merchant, rule=rule.name)
    return None


def iter_candidates(message: str, rules=EXPENSE_RULES) -> Iterator[DetectedExpense]:
    """Yield an accepted candidate for every rule that matches, in rule order."""
    for rule in rules:
        candidate = apply_rule(rule, message)
        if candidate is not None:
            yield candidate


def extract_expense(message: str) -> Optional[DetectedExpense]:
    """First accepted candidate, or None."""
    return next(iter_candidates(message), None)
