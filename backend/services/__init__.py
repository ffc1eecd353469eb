"""Backend services for the FinBot expense tracker."""

from .ai_service import AIService
from .categorizer import Categorizer
from .chat_extractor import extract_expense, iter_candidates
from .insight_analyzer import InsightAnalyzer
from .state_store import StateStore
from .user_agent import UserAgent
from .agent_namespace import AgentNamespace

__all__ = [
    "AIService",
    "Categorizer",
    "extract_expense",
    "iter_candidates",
    "InsightAnalyzer",
    "StateStore",
    "UserAgent",
    "AgentNamespace",
]
