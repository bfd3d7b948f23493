from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BOOKGATE_", case_sensitive=False)

    env: str = "dev"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3001

    # Cross-origin access
    cors_allowed_origins: str = Field(
        default=(
            "https://humanoid-robotics-guidemain.vercel.app,"
            "http://localhost:3000,"
            "http://localhost:3001"
        ),
        description="Comma separated origins; one '*' may replace part of a DNS label",
    )
    cors_max_age_seconds: int = 86400

    # Completion / embedding provider
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    chat_model: str = "google/gemini-2.0-flash-exp:free"
    embedding_model: str = "openai/text-embedding-ada-002"
    openrouter_http_referer: str = "https://physical-ai-humanoid-robotics-book.app/"
    openrouter_app_title: str = "Physical AI Book API"
    provider_timeout_s: float = 30.0

    # Outbound call governor
    rate_limit_max_requests: int = 50
    rate_limit_window_ms: int = 60_000
    rate_limit_safety_margin_ms: int = 1_000
    rate_limit_shared_budget: bool = True
    embedding_rate_limit_max_requests: int | None = None
    embedding_rate_limit_window_ms: int | None = None
    retry_attempts: int = 3
    quota_retry_delay_s: float = 16.0
    transient_retry_delay_s: float = 2.0

    # Vector store
    qdrant_url: str | None = None
    qdrant_api_key: str | None = None
    qdrant_collection: str = "book_content"
    qdrant_vector_size: int = 1536
    rag_top_k: int = 5
    chat_history_limit: int = 10

    # Relational database
    database_url: str | None = None
    database_pool_max_size: int = 20
    database_connect_timeout_s: float = 10.0

    # External auth provider
    auth_service_url: str | None = None
    auth_timeout_s: float = 10.0

    @field_validator("rate_limit_max_requests", "retry_attempts")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("rate_limit_window_ms")
    @classmethod
    def _positive_window(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("embedding_rate_limit_max_requests")
    @classmethod
    def _optional_at_least_one(cls, value: int | None) -> int | None:
        if value is not None and value < 1:
            raise ValueError("must be >= 1 when set")
        return value

    @field_validator("embedding_rate_limit_window_ms")
    @classmethod
    def _optional_positive_window(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError("must be > 0 when set")
        return value

    @property
    def cors_allowed_origin_list(self) -> list[str]:
        return [item.strip() for item in self.cors_allowed_origins.split(",") if item.strip()]

    @property
    def is_production(self) -> bool:
        return self.env.strip().lower() in {"prod", "production"}

    @property
    def provider_configured(self) -> bool:
        return bool(self.openrouter_api_key)

    @property
    def embedding_limit_max_requests(self) -> int:
        if self.embedding_rate_limit_max_requests is not None:
            return self.embedding_rate_limit_max_requests
        return self.rate_limit_max_requests

    @property
    def embedding_limit_window_ms(self) -> int:
        if self.embedding_rate_limit_window_ms is not None:
            return self.embedding_rate_limit_window_ms
        return self.rate_limit_window_ms


@lru_cache
def get_settings() -> Settings:
    return Settings()


def clear_settings_cache() -> None:
    get_settings.cache_clear()
