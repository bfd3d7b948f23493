"""HTTP client for the OpenRouter chat-completions and embeddings API."""

import httpx

from bookgate.providers.base import (
    TRANSIENT_STATUS_CODES,
    ProviderError,
    ProviderUnreachableError,
    QuotaExceededError,
)

QUOTA_MARKERS = ("quota", "rate limit")


class OpenRouterProvider:
    """Single-attempt calls to an OpenAI-compatible router.

    Retrying and throttling are the governor's job; this class only performs
    one request and classifies what came back.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        timeout_s: float = 30.0,
        http_referer: str | None = None,
        app_title: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout_s
        self._http_referer = http_referer
        self._app_title = app_title
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def chat(
        self,
        model: str,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int | None,
    ) -> str:
        body: dict[str, object] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            body["max_tokens"] = max_tokens

        payload = await self._post("/chat/completions", body)
        choices = payload.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            if isinstance(message, dict):
                content = message.get("content")
                if isinstance(content, str) and content.strip():
                    return content.strip()
        raise ProviderError(
            status_code=502,
            code="provider_malformed_response",
            message="Unexpected response format from provider: missing choices[0].message.content",
        )

    async def embeddings(self, model: str, text: str) -> list[float]:
        payload = await self._post("/embeddings", {"model": model, "input": text})
        data = payload.get("data")
        if isinstance(data, list) and data and isinstance(data[0], dict):
            embedding = data[0].get("embedding")
            if isinstance(embedding, list) and embedding:
                try:
                    return [float(value) for value in embedding]
                except (TypeError, ValueError):
                    pass
        raise ProviderError(
            status_code=502,
            code="provider_malformed_response",
            message="Unexpected response format from provider: missing data[0].embedding",
        )

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self._http_referer:
            headers["HTTP-Referer"] = self._http_referer
        if self._app_title:
            headers["X-Title"] = self._app_title
        return headers

    def _client(self) -> httpx.AsyncClient:
        if self._transport is None:
            return httpx.AsyncClient(timeout=self._timeout)
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _post(self, path: str, body: dict[str, object]) -> dict[str, object]:
        if not self._api_key:
            raise ProviderError(
                status_code=503,
                code="provider_not_configured",
                message="OpenRouter API key is not configured",
            )
        url = f"{self._base_url}{path}"
        try:
            async with self._client() as client:
                resp = await client.post(url, json=body, headers=self._headers())
        except httpx.TimeoutException as exc:
            raise ProviderUnreachableError(
                f"Provider request timed out after {self._timeout}s",
                code="provider_timeout",
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderUnreachableError(
                f"No response from provider. Please check your internet connection. ({exc})"
            ) from exc

        self._raise_for_status(resp)

        try:
            result = resp.json()
        except ValueError as exc:
            raise ProviderError(
                status_code=502,
                code="provider_malformed_response",
                message="Provider returned a non-JSON body",
            ) from exc
        if not isinstance(result, dict):
            raise ProviderError(
                status_code=502,
                code="provider_malformed_response",
                message="Provider returned a non-object JSON body",
            )
        return result

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text[:200] or "Unknown API error"
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str) and error:
                return error
        return "Unknown API error"

    @classmethod
    def _raise_for_status(cls, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        message = cls._error_message(resp)
        lowered = message.lower()
        if resp.status_code == 429 or any(marker in lowered for marker in QUOTA_MARKERS):
            raise QuotaExceededError(message)
        if resp.status_code in TRANSIENT_STATUS_CODES:
            raise ProviderError(
                status_code=resp.status_code,
                code="provider_upstream_error",
                message=f"Provider returned {resp.status_code}: {message}",
                transient=True,
            )
        raise ProviderError(
            status_code=resp.status_code,
            code="provider_error",
            message=f"Provider returned {resp.status_code}: {message}",
        )
