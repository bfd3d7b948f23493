"""Admission control and bounded retry around every provider call.

Each governed call runs the loop::

    Admission -> Execute -> Success
                         -> RetryBackoff -> Admission
                         -> TerminalFailure

Quota signals back off for ``quota_delay_s`` (provider quotas are usually
minute-scale); network trouble and provider 5xx back off for
``transient_delay_s``.  Any other ``ProviderError`` is terminal on first sight.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal, TypeVar

from bookgate.config.settings import Settings
from bookgate.governor.window import SlidingWindowLimiter, Sleep
from bookgate.metrics import record_admission_wait, record_provider_call, record_provider_retry
from bookgate.providers.base import (
    CompletionProvider,
    ProviderError,
    QuotaExceededError,
    RateLimitExhaustedError,
)

logger = logging.getLogger("bookgate.governor")

Operation = Literal["completion", "embedding"]
T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget; ``attempts`` counts the initial call."""

    attempts: int = 3
    quota_delay_s: float = 16.0
    transient_delay_s: float = 2.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")

    def delay_for(self, exc: ProviderError) -> float:
        if isinstance(exc, QuotaExceededError):
            return self.quota_delay_s
        return self.transient_delay_s


class OutboundCallGovernor:
    """Throttles and retries calls to the completion/embedding provider.

    Completions and embeddings draw from the same limiter when the governor is
    built with one; passing a separate ``embedding_limiter`` gives embeddings
    their own budget.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        completion_limiter: SlidingWindowLimiter,
        embedding_limiter: SlidingWindowLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
        chat_model: str = "google/gemini-2.0-flash-exp:free",
        embedding_model: str = "openai/text-embedding-ada-002",
    ) -> None:
        self._provider = provider
        self._limiters: dict[Operation, SlidingWindowLimiter] = {
            "completion": completion_limiter,
            "embedding": embedding_limiter or completion_limiter,
        }
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._chat_model = chat_model
        self._embedding_model = embedding_model

    @classmethod
    def from_settings(
        cls, settings: Settings, provider: CompletionProvider
    ) -> "OutboundCallGovernor":
        completion_limiter = SlidingWindowLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_s=settings.rate_limit_window_ms / 1000,
            safety_margin_s=settings.rate_limit_safety_margin_ms / 1000,
            name="shared" if settings.rate_limit_shared_budget else "completion",
        )
        embedding_limiter = None
        if not settings.rate_limit_shared_budget:
            embedding_limiter = SlidingWindowLimiter(
                max_requests=settings.embedding_limit_max_requests,
                window_s=settings.embedding_limit_window_ms / 1000,
                safety_margin_s=settings.rate_limit_safety_margin_ms / 1000,
                name="embedding",
            )
        return cls(
            provider=provider,
            completion_limiter=completion_limiter,
            embedding_limiter=embedding_limiter,
            retry_policy=RetryPolicy(
                attempts=settings.retry_attempts,
                quota_delay_s=settings.quota_retry_delay_s,
                transient_delay_s=settings.transient_retry_delay_s,
            ),
            chat_model=settings.chat_model,
            embedding_model=settings.embedding_model,
        )

    @property
    def provider(self) -> CompletionProvider:
        return self._provider

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def shares_budget(self) -> bool:
        return self._limiters["completion"] is self._limiters["embedding"]

    def limiter_for(self, operation: Operation) -> SlidingWindowLimiter:
        return self._limiters[operation]

    def budget_summary(self) -> dict[str, object]:
        if self.shares_budget:
            return {"shared": self._limiters["completion"].summary()}
        return {op: limiter.summary() for op, limiter in self._limiters.items()}

    async def call(self, operation: Operation, fn: Callable[[], Awaitable[T]]) -> T:
        limiter = self._limiters[operation]
        retries_remaining = self._retry_policy.attempts - 1
        attempt = 0
        while True:
            attempt += 1
            waited_s = await limiter.acquire()
            record_admission_wait(operation, waited_s)
            if waited_s > 0:
                logger.info(
                    "rate_limit_wait",
                    extra={
                        "operation": operation,
                        "wait_ms": round(waited_s * 1000, 1),
                        "attempt": attempt,
                    },
                )

            try:
                result = await fn()
            except ProviderError as exc:
                if not exc.transient:
                    record_provider_call(operation, "failed")
                    raise
                if retries_remaining == 0:
                    record_provider_call(operation, "exhausted")
                    logger.warning(
                        "provider_retries_exhausted",
                        extra={
                            "operation": operation,
                            "attempt": attempt,
                            "error_code": exc.code,
                        },
                    )
                    if isinstance(exc, QuotaExceededError):
                        raise RateLimitExhaustedError(
                            attempts=attempt,
                            retry_after_s=self._retry_policy.quota_delay_s,
                            last_message=exc.message,
                        ) from exc
                    raise

                delay_s = self._retry_policy.delay_for(exc)
                retries_remaining -= 1
                record_provider_retry(operation, exc.code)
                logger.warning(
                    "provider_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "retries_remaining": retries_remaining,
                        "delay_s": delay_s,
                        "error_code": exc.code,
                    },
                )
                await self._sleep(delay_s)
                continue

            record_provider_call(operation, "success")
            return result

    async def complete(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = 1024,
    ) -> str:
        chosen = model or self._chat_model
        return await self.call(
            "completion",
            lambda: self._provider.chat(chosen, messages, temperature, max_tokens),
        )

    async def embed(self, text: str, model: str | None = None) -> list[float]:
        chosen = model or self._embedding_model
        return await self.call("embedding", lambda: self._provider.embeddings(chosen, text))
