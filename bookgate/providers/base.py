from typing import Protocol

# Statuses the provider uses for transient upstream trouble.
TRANSIENT_STATUS_CODES = frozenset({500, 502, 503, 504})


class ProviderError(Exception):
    """Failure reported by, or while talking to, the completion/embedding provider.

    ``transient`` marks failures worth retrying after a cooldown; everything
    else propagates to the route handler on the first occurrence.
    """

    default_error = "AI provider request failed"

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        transient: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.transient = transient

    @property
    def user_message(self) -> str:
        return self.default_error


class QuotaExceededError(ProviderError):
    """A single attempt was refused with a quota or rate-limit signal."""

    default_error = "AI provider rate limit reached"

    def __init__(self, message: str):
        super().__init__(
            status_code=429,
            code="provider_quota_exceeded",
            message=message,
            transient=True,
        )


class ProviderUnreachableError(ProviderError):
    """No response was received from the provider (connect failure or timeout)."""

    default_error = "AI provider is unreachable"

    def __init__(self, message: str, code: str = "provider_unreachable"):
        super().__init__(status_code=503, code=code, message=message, transient=True)


class RateLimitExhaustedError(ProviderError):
    """Quota signals persisted through every retry the governor was allowed."""

    default_error = "Rate limit reached. Please wait a moment and try again."

    def __init__(self, attempts: int, retry_after_s: float, last_message: str = ""):
        message = f"Provider quota still exceeded after {attempts} attempt(s)"
        if last_message:
            message = f"{message}: {last_message}"
        super().__init__(
            status_code=429,
            code="rate_limit_exhausted",
            message=message,
            transient=False,
        )
        self.attempts = attempts
        self.retry_after_s = retry_after_s


class CompletionProvider(Protocol):
    @property
    def configured(self) -> bool:
        """Whether credentials are present for outbound calls."""

    async def chat(
        self,
        model: str,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int | None,
    ) -> str:
        """Return the assistant message content."""

    async def embeddings(self, model: str, text: str) -> list[float]:
        """Return one embedding vector for ``text``."""
