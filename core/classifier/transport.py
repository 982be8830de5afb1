"""Transports that deliver classification requests to an external service."""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from core.classifier.prompt import ClassificationRequest
from core.utils.errors import ClassifierTransportError


class ClassifierTransport(Protocol):
    """Protocol for one request/response exchange with the classifier service."""

    async def complete(self, request: ClassificationRequest) -> str:
        """Return the raw response text or raise ClassifierTransportError."""


class HttpClassifierTransport:
    """OpenAI-compatible chat-completions transport built on httpx."""

    def __init__(
        self,
        *,
        endpoint: str,
        model: str,
        api_key: str | None,
        temperature: float = 0.0,
        max_tokens: int = 16000,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._model = model
        self._api_key = api_key
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._client = client
        self._owns_client = client is None

    async def complete(self, request: ClassificationRequest) -> str:
        client = self._get_client()
        payload = {
            "model": self._model,
            "messages": request.to_messages(),
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            response = await client.post(self._endpoint, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ClassifierTransportError(
                f"Classifier returned HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ClassifierTransportError(f"Classifier request failed: {exc}") from exc

        try:
            body: Any = response.json()
        except ValueError as exc:
            raise ClassifierTransportError("Classifier response is not JSON") from exc
        return _extract_message_text(body)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpClassifierTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            # Per-batch timeouts are enforced by the caller.
            self._client = httpx.AsyncClient(timeout=None)
        return self._client


def _extract_message_text(body: Any) -> str:
    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ClassifierTransportError("Classifier response has no message content") from exc
    if not isinstance(content, str):
        raise ClassifierTransportError("Classifier message content is not text")
    return content
