import asyncio

import pytest

from bookgate.config.settings import Settings
from bookgate.governor.governor import OutboundCallGovernor, RetryPolicy
from bookgate.governor.window import SlidingWindowLimiter
from bookgate.metrics import registry
from bookgate.providers.base import (
    ProviderError,
    ProviderUnreachableError,
    QuotaExceededError,
    RateLimitExhaustedError,
)


class _ScriptedProvider:
    configured = True

    def __init__(self, *outcomes: object) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, str]] = []

    def _next(self) -> object:
        outcome = self._outcomes.pop(0) if self._outcomes else "ok"
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def chat(self, model, messages, temperature, max_tokens):  # type: ignore[no-untyped-def]
        self.calls.append(("chat", model))
        return self._next()

    async def embeddings(self, model, text):  # type: ignore[no-untyped-def]
        self.calls.append(("embeddings", model))
        result = self._next()
        return [0.5, 0.5] if result == "ok" else result


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _governor(
    provider: _ScriptedProvider,
    attempts: int = 3,
    embedding_limiter: SlidingWindowLimiter | None = None,
) -> tuple[OutboundCallGovernor, _RecordingSleep]:
    sleep = _RecordingSleep()
    governor = OutboundCallGovernor(
        provider=provider,  # type: ignore[arg-type]
        completion_limiter=SlidingWindowLimiter(max_requests=50, window_s=60.0),
        embedding_limiter=embedding_limiter,
        retry_policy=RetryPolicy(attempts=attempts, quota_delay_s=16.0, transient_delay_s=2.0),
        sleep=sleep,
        chat_model="chat-model",
        embedding_model="embed-model",
    )
    return governor, sleep


def _messages() -> list[dict[str, str]]:
    return [{"role": "user", "content": "hi"}]


def test_success_on_first_attempt_does_not_sleep() -> None:
    provider = _ScriptedProvider("hello")
    governor, sleep = _governor(provider)

    assert asyncio.run(governor.complete(_messages())) == "hello"
    assert provider.calls == [("chat", "chat-model")]
    assert sleep.delays == []
    assert registry.counter_value(
        "bookgate_provider_calls_total", {"operation": "completion", "outcome": "success"}
    ) == 1.0


def test_quota_error_retries_after_quota_delay_then_succeeds() -> None:
    provider = _ScriptedProvider(QuotaExceededError("quota exceeded"), "recovered")
    governor, sleep = _governor(provider)

    assert asyncio.run(governor.complete(_messages())) == "recovered"
    assert sleep.delays == [16.0]
    assert len(provider.calls) == 2


def test_persistent_quota_errors_raise_rate_limit_exhausted() -> None:
    provider = _ScriptedProvider(
        QuotaExceededError("quota exceeded"),
        QuotaExceededError("quota exceeded"),
        QuotaExceededError("quota exceeded"),
    )
    governor, sleep = _governor(provider, attempts=3)

    with pytest.raises(RateLimitExhaustedError) as exc_info:
        asyncio.run(governor.complete(_messages()))

    assert sleep.delays == [16.0, 16.0]
    assert len(provider.calls) == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.retry_after_s == 16.0
    assert exc_info.value.status_code == 429
    assert isinstance(exc_info.value.__cause__, QuotaExceededError)
    assert registry.counter_value(
        "bookgate_provider_retries_total",
        {"operation": "completion", "reason": "provider_quota_exceeded"},
    ) == 2.0


def test_single_attempt_policy_fails_without_sleeping() -> None:
    provider = _ScriptedProvider(QuotaExceededError("quota exceeded"))
    governor, sleep = _governor(provider, attempts=1)

    with pytest.raises(RateLimitExhaustedError):
        asyncio.run(governor.complete(_messages()))
    assert sleep.delays == []
    assert len(provider.calls) == 1


def test_non_transient_error_propagates_without_retry() -> None:
    provider = _ScriptedProvider(
        ProviderError(status_code=400, code="provider_error", message="Provider returned 400")
    )
    governor, sleep = _governor(provider)

    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(governor.complete(_messages()))

    assert exc_info.value.status_code == 400
    assert sleep.delays == []
    assert len(provider.calls) == 1


def test_unreachable_provider_retries_with_transient_delay() -> None:
    provider = _ScriptedProvider(
        ProviderUnreachableError("connect failed"),
        ProviderUnreachableError("connect failed"),
        ProviderUnreachableError("connect failed"),
    )
    governor, sleep = _governor(provider)

    with pytest.raises(ProviderUnreachableError):
        asyncio.run(governor.complete(_messages()))
    assert sleep.delays == [2.0, 2.0]


def test_upstream_5xx_is_retried_then_succeeds() -> None:
    provider = _ScriptedProvider(
        ProviderError(503, "provider_upstream_error", "Provider returned 503", transient=True),
        "ok",
    )
    governor, sleep = _governor(provider)

    assert asyncio.run(governor.complete(_messages())) == "ok"
    assert sleep.delays == [2.0]


def test_embeddings_share_budget_by_default() -> None:
    provider = _ScriptedProvider()
    governor, _ = _governor(provider)

    async def run() -> None:
        await governor.embed("query")
        await governor.complete(_messages())

    asyncio.run(run())

    assert governor.shares_budget
    assert governor.limiter_for("embedding") is governor.limiter_for("completion")
    assert governor.limiter_for("completion").remaining() == 48
    assert list(governor.budget_summary()) == ["shared"]
    assert provider.calls == [("embeddings", "embed-model"), ("chat", "chat-model")]


def test_separate_embedding_budget() -> None:
    provider = _ScriptedProvider()
    embedding_limiter = SlidingWindowLimiter(max_requests=5, window_s=60.0, name="embedding")
    governor, _ = _governor(provider, embedding_limiter=embedding_limiter)

    asyncio.run(governor.embed("query"))

    assert not governor.shares_budget
    assert embedding_limiter.remaining() == 4
    assert governor.limiter_for("completion").remaining() == 50
    assert set(governor.budget_summary()) == {"completion", "embedding"}


def test_from_settings_wires_limits_and_retry_policy() -> None:
    settings = Settings(
        rate_limit_max_requests=10,
        rate_limit_window_ms=30_000,
        rate_limit_shared_budget=False,
        embedding_rate_limit_max_requests=100,
        retry_attempts=2,
        quota_retry_delay_s=5.0,
    )
    governor = OutboundCallGovernor.from_settings(settings, _ScriptedProvider())  # type: ignore[arg-type]

    assert governor.limiter_for("completion").max_requests == 10
    assert governor.limiter_for("completion").window_s == 30.0
    assert governor.limiter_for("embedding").max_requests == 100
    assert governor.limiter_for("embedding").window_s == 30.0
    assert governor.retry_policy.attempts == 2
    assert governor.retry_policy.quota_delay_s == 5.0


def test_retry_policy_requires_at_least_one_attempt() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(attempts=0)
