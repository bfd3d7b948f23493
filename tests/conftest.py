from collections.abc import Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from bookgate.config.settings import clear_settings_cache
from bookgate.main import create_app
from bookgate.metrics import registry
from bookgate.rag.vectorstore import BookVectorStore
from tests.fakes import FakeProvider, FakeQdrantClient, auth_service_handler

ALLOWED_ORIGINS = "https://book.example.com,https://ai-native-book-*.vercel.app"


@pytest.fixture(autouse=True)
def _reset_metrics() -> Iterator[None]:
    registry.reset()
    yield
    registry.reset()


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def qdrant_client() -> FakeQdrantClient:
    return FakeQdrantClient()


@pytest.fixture
def auth_calls() -> list[httpx.Request]:
    return []


@pytest.fixture
def client(
    monkeypatch: pytest.MonkeyPatch,
    fake_provider: FakeProvider,
    qdrant_client: FakeQdrantClient,
    auth_calls: list[httpx.Request],
) -> TestClient:
    monkeypatch.setenv("BOOKGATE_ENV", "test")
    monkeypatch.setenv("BOOKGATE_CORS_ALLOWED_ORIGINS", ALLOWED_ORIGINS)
    monkeypatch.setenv("BOOKGATE_AUTH_SERVICE_URL", "http://auth.internal")
    monkeypatch.setenv("BOOKGATE_QUOTA_RETRY_DELAY_S", "0")
    monkeypatch.setenv("BOOKGATE_TRANSIENT_RETRY_DELAY_S", "0")
    monkeypatch.delenv("BOOKGATE_DATABASE_URL", raising=False)
    clear_settings_cache()
    vector_store = BookVectorStore(
        url=None, collection="book_content", vector_size=4, client=qdrant_client
    )
    app = create_app(
        provider=fake_provider,
        vector_store=vector_store,
        auth_transport=httpx.MockTransport(auth_service_handler(auth_calls)),
    )
    return TestClient(app)
