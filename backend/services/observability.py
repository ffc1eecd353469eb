"""
Module: observability.py
Description: Logging and metrics tracking for the FinBot expense tracker.

Features:
    - Structured key=value logging
    - Timing decorator for hosted-model calls
    - In-memory counters and timing histograms

Usage:
    from services.observability import logger, metrics, timed

    @timed("model.chat")
    async def chat(messages):
        logger.info("Chatting", count=len(messages))
        ...

Author: FinBot Team
"""

import time
import logging
import functools
from datetime import datetime
from typing import Dict, Any, Optional, Callable
from collections import defaultdict

from config import LOG_LEVEL


# =============================================================================
# Structured Logger
# =============================================================================

class StructuredLogger:
    """Logger that appends key=value fields to every message."""

    def __init__(self, name: str = "finbot"):
        """Initialize logger with given name."""
        self.logger = logging.getLogger(name)
        self.logger.setLevel(LOG_LEVEL)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(LOG_LEVEL)
            formatter = logging.Formatter(
                '%(asctime)s | %(levelname)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def _format_message(self, message: str, **kwargs) -> str:
        if kwargs:
            field_str = " | ".join(f"{k}={v}" for k, v in kwargs.items())
            return f"{message} | {field_str}"
        return message

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, **kwargs) -> None:
        self.logger.error(self._format_message(message, **kwargs))

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(self._format_message(message, **kwargs))


# =============================================================================
# Metrics Collector
# =============================================================================

class MetricsCollector:
    """
    In-memory counters and timings.

    Note: process-local only, reset on restart.
    """

    def __init__(self):
        self.counters: Dict[str, int] = defaultdict(int)
        self.timings: Dict[str, list] = defaultdict(list)
        self._start_time = datetime.utcnow()

    def increment(self, name: str, value: int = 1, tags: Dict[str, str] = None) -> None:
        """Increment a counter."""
        key = self._make_key(name, tags)
        self.counters[key] += value

    def timing(self, name: str, duration_ms: float, tags: Dict[str, str] = None) -> None:
        """Record a timing measurement."""
        key = self._make_key(name, tags)
        self.timings[key].append(duration_ms)
        # Keep only last 1000 measurements
        if len(self.timings[key]) > 1000:
            self.timings[key] = self.timings[key][-1000:]

    def _make_key(self, name: str, tags: Optional[Dict[str, str]] = None) -> str:
        if tags:
            tag_str = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
            return f"{name}:{tag_str}"
        return name

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of all metrics."""
        summary = {
            "uptime_seconds": (datetime.utcnow() - self._start_time).total_seconds(),
            "counters": dict(self.counters),
            "timings": {},
        }

        for name, values in self.timings.items():
            if values:
                ordered = sorted(values)
                summary["timings"][name] = {
                    "count": len(values),
                    "avg_ms": sum(values) / len(values),
                    "min_ms": ordered[0],
                    "max_ms": ordered[-1],
                    "p50_ms": ordered[len(values) // 2],
                    "p95_ms": ordered[int(len(values) * 0.95)] if len(values) >= 20 else None,
                }

        return summary

    def reset(self) -> None:
        self.counters.clear()
        self.timings.clear()


# =============================================================================
# Timing Decorator
# =============================================================================

def timed(name: str = None):
    """
    Decorator to time a coroutine function and record metrics.

    Args:
        name: Metric name (defaults to function name).

    Example:
        @timed("model.categorize")
        async def categorize(merchant, amount):
            ...
    """
    def decorator(func: Callable) -> Callable:
        metric_name = name or func.__name__

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                metrics.increment(f"{metric_name}.success")
                return result
            except Exception:
                metrics.increment(f"{metric_name}.error")
                raise
            finally:
                duration_ms = (time.perf_counter() - start) * 1000
                metrics.timing(metric_name, duration_ms)
                logger.debug(f"{metric_name} completed", duration_ms=f"{duration_ms:.2f}")

        return async_wrapper

    return decorator


# =============================================================================
# Global Instances
# =============================================================================

logger = StructuredLogger()

metrics = MetricsCollector()


# =============================================================================
# Convenience Functions
# =============================================================================

def log_expense_added(source: str, category: str, amount: float) -> None:
    """Log a stored expense, tagged by how it arrived (form, parse, chat)."""
    logger.info("Expense added", source=source, category=category, amount=f"${amount:.2f}")
    metrics.increment("expenses.added", tags={"source": source})


def log_chat_request(message_length: int) -> None:
    """Log a chat request."""
    logger.info("Chat request", msg_length=message_length)
    metrics.increment("chat.requests")


def log_degraded(component: str, status: str, reason: str) -> None:
    """Log a fallback taken instead of a model answer."""
    logger.warning("Fallback used", component=component, status=status, reason=reason)
    metrics.increment(f"{component}.fallback", tags={"status": status})
