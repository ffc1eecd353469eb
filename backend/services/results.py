"""Tagged results for operations that fall back instead of failing."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ResultStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class CategorizationResult:
    category: str
    confidence: float
    status: ResultStatus = ResultStatus.OK
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ResultStatus.OK


@dataclass
class ChatReply:
    text: str
    status: ResultStatus = ResultStatus.OK
    reason: Optional[str] = None
