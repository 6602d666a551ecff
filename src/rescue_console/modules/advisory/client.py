"""HTTP client for the advisory endpoint.

Two modes:
- proxy:  POST ``{"messages": [...]}`` to the forwarding proxy, no credentials.
- direct: POST a provider completion payload with a bearer key.

Any transport failure, timeout, non-2xx status or undecodable body is
reported as AdvisoryTransportError.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from rescue_console.core.errors import AdvisoryTransportError, ConfigurationError
from rescue_console.core.interfaces import AdvisoryService
from rescue_console.schemas.advisory import ChatRequest
from rescue_console.utils.config import (
    ADVISORY_REQUEST_TIMEOUT,
    DEFAULT_PROVIDER_MODEL,
    PROVIDER_MAX_TOKENS,
    PROVIDER_TEMPERATURE,
    ConsoleSettings,
)

logger = logging.getLogger(__name__)


def provider_payload(messages: list[dict[str, Any]], model: str = DEFAULT_PROVIDER_MODEL) -> dict[str, Any]:
    """Completion payload sent to the language-model provider."""
    return {
        "model": model,
        "messages": messages,
        "temperature": PROVIDER_TEMPERATURE,
        "max_tokens": PROVIDER_MAX_TOKENS,
    }


class AdvisoryClient(AdvisoryService):
    """Async advisory client built on ``httpx.AsyncClient``."""

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        direct: bool = False,
        timeout: float = ADVISORY_REQUEST_TIMEOUT,
        model: str = DEFAULT_PROVIDER_MODEL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the advisory client.

        Args:
            url: Endpoint receiving the POST.
            api_key: Bearer credential (required in direct mode).
            direct: Talk to the provider directly instead of the proxy.
            timeout: Per-request timeout in seconds.
            model: Provider model name (direct mode).
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._url = url
        self._api_key = api_key
        self._direct = direct
        self._timeout = timeout
        self._model = model
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: ConsoleSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> AdvisoryClient:
        """Build a client for the configured mode."""
        if settings.uses_proxy:
            return cls(
                url=settings.advisory_url,
                timeout=settings.advisory_timeout,
                transport=transport,
            )
        return cls(
            url=settings.provider_api_url,
            api_key=settings.provider_api_key,
            direct=True,
            timeout=settings.advisory_timeout,
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._url

    @property
    def direct(self) -> bool:
        return self._direct

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def request(self, chat: ChatRequest) -> dict[str, Any]:
        """POST ``chat`` and return the decoded JSON body."""
        messages = chat.to_body()["messages"]
        headers = {"Content-Type": "application/json"}

        if self._direct:
            if not self._api_key:
                raise ConfigurationError("Provider API key not configured (set DEEPSEEK_API_KEY)")
            headers["Authorization"] = f"Bearer {self._api_key}"
            body = provider_payload(messages, self._model)
        else:
            body = {"messages": messages}

        try:
            response = await self._get_client().post(self._url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise AdvisoryTransportError(f"advisory request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise AdvisoryTransportError(f"advisory request failed: {e}") from e

        if not response.is_success:
            logger.warning(f"Advisory endpoint returned {response.status_code}: {response.text[:200]}")
            raise AdvisoryTransportError(
                f"advisory endpoint returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AdvisoryTransportError(f"advisory response is not JSON: {e}") from e

        if not isinstance(data, dict):
            raise AdvisoryTransportError(f"advisory response is not an object: {type(data).__name__}")
        return data

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
