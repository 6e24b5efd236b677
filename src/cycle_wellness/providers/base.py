"""Base class for JSON REST providers called with a bearer token.

Google APIs go through `googleapiclient`; everything else (Microsoft Graph)
is plain HTTPS + JSON and shares this client.

## Error Mapping

| Status | Exception             |
|--------|-----------------------|
| 401    | `AuthenticationError` |
| 429    | `RateLimitError`      |
| >= 400 | `ProviderError`       |

Timeouts and network errors are retried 3 times with exponential backoff.
HTTP error statuses are not retried.
"""

from __future__ import annotations

from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)


class ProviderError(Exception):
    """Base exception for upstream API errors."""

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(ProviderError):
    """Raised when provider rate limit is exceeded."""

    def __init__(
        self,
        provider: str,
        retry_after: int | None = None,
        status_code: int | None = None,
    ):
        super().__init__(
            f"Rate limit exceeded for {provider}",
            provider=provider,
            status_code=status_code,
        )
        self.retry_after = retry_after


class AuthenticationError(ProviderError):
    """Raised when the access token is rejected (expired or revoked)."""


class RestProvider:
    """Async JSON client for one provider.

    Example:
        ```python
        class GraphClient(RestProvider):
            name = "microsoft"
            base_url = "https://graph.microsoft.com/v1.0"

        async with GraphClient(access_token) as graph:
            me = await graph._request("GET", "/me")
        ```
    """

    name: str
    base_url: str

    def __init__(
        self,
        access_token: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.access_token = access_token
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> RestProvider:
        self._get_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _get_default_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON body ({} when empty).

        Raises:
            AuthenticationError: On 401
            RateLimitError: On 429
            ProviderError: On any other error status
        """
        request_headers = self._get_default_headers()
        if headers:
            request_headers.update(headers)

        response = await self._get_client().request(
            method,
            f"{self.base_url}{path}",
            params=params,
            json=json,
            headers=request_headers,
        )

        if response.status_code == 401:
            raise AuthenticationError(
                f"{self.name} rejected the access token",
                provider=self.name,
                status_code=401,
                response_body=response.text,
            )

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                self.name,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                status_code=429,
            )

        if response.status_code >= 400:
            raise ProviderError(
                f"API request failed: {response.status_code}",
                provider=self.name,
                status_code=response.status_code,
                response_body=response.text,
            )

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()
