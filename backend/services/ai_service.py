"""
OpenAI wrapper used as the hosted text-completion model.

Features:
    - Single call shape: messages, max_tokens, temperature
    - Optional retry with exponential backoff for transient failures
    - Token usage tracking
    - Typed failure when the API is unavailable

Author: FinBot Team
"""

import asyncio
from typing import Any, Optional

import config
from .errors import ModelUnavailableError
from .observability import logger, metrics, timed


class AIService:
    """
    Wrapper for the OpenAI chat completions API.

    Every caller sends a short message list and gets back the reply
    content, which is usually text but may already be structured. Any
    failure is raised as ModelUnavailableError so callers can choose
    their own fallback.
    """

    INITIAL_DELAY = 1.0
    MAX_DELAY = 60.0

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Any = None,
        max_retries: Optional[int] = None,
    ):
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self.model = model or config.OPENAI_MODEL
        self.max_retries = config.AI_MAX_RETRIES if max_retries is None else max_retries
        self.client = client

        self.total_tokens_used = 0
        self.request_count = 0

        if self.client is None and self.api_key and self.api_key.startswith("sk-"):
            try:
                from openai import AsyncOpenAI
                self.client = AsyncOpenAI(api_key=self.api_key)
                logger.info("OpenAI client initialized", model=self.model)
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client", error=str(e))
                self.client = None
        elif self.client is None:
            logger.warning("OpenAI API key not configured. AI features will use fallback mode.")

    def _track_usage(self, response) -> None:
        if getattr(response, "usage", None):
            self.total_tokens_used += response.usage.total_tokens
            metrics.increment("openai.tokens", response.usage.total_tokens)
        self.request_count += 1

    def get_usage_stats(self) -> dict:
        """Get current usage statistics."""
        return {
            "total_tokens": self.total_tokens_used,
            "request_count": self.request_count,
            "avg_tokens_per_request": (
                self.total_tokens_used / self.request_count
                if self.request_count > 0 else 0
            )
        }

    @timed("openai.run")
    async def run(self, messages: list[dict], max_tokens: int, temperature: float) -> Any:
        """
        Send a chat completion request and return the reply content.

        Raises:
            ModelUnavailableError: No client is configured or the call failed.
        """
        if not self.client:
            raise ModelUnavailableError("OpenAI API key not configured")

        try:
            response = await self._call_with_retry(
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as e:
            raise ModelUnavailableError(str(e)) from e

        try:
            return response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise ModelUnavailableError("Empty completion") from e

    async def _call_with_retry(self, **kwargs) -> Any:
        """
        Make the API call, retrying rate limits, 5xx and timeouts.

        With max_retries=0 the first failure is raised unchanged.
        """
        delay = self.INITIAL_DELAY

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.chat.completions.create(
                    model=self.model,
                    **kwargs
                )
                self._track_usage(response)
                return response

            except Exception as e:
                error_str = str(e).lower()

                is_rate_limit = "rate_limit" in error_str or "429" in error_str
                is_server_error = any(code in error_str for code in ["500", "502", "503"])
                is_timeout = "timeout" in error_str

                if (is_rate_limit or is_server_error or is_timeout) and attempt < self.max_retries:
                    wait_time = delay * (2 if is_rate_limit else 1)
                    logger.warning(
                        "API error, retrying",
                        wait_s=f"{wait_time:.1f}",
                        attempt=f"{attempt + 1}/{self.max_retries + 1}",
                    )
                    await asyncio.sleep(wait_time)
                    delay = min(delay * 2, self.MAX_DELAY)
                    continue

                raise

    async def check_connection(self) -> bool:
        """Check if OpenAI API is accessible."""
        if not self.client:
            return False
        try:
            await self.client.models.list()
            return True
        except Exception:
            return False
