from typing import Any, Dict, Optional

import httpx
import structlog

from config import get_settings

logger = structlog.get_logger()


class ProviderError(Exception):
    """Outbound call failed: network error or non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ApiClient:
    """Thin JSON client for one external REST API.

    Every request goes to ``base_url`` with the same headers. Failures are
    raised as :class:`ProviderError`; nothing is retried.
    """

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.timeout = timeout
        self.transport = transport

    async def post(self, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        return self._parse(await self._send("POST", path, json=json))

    async def get(self, path: str = "") -> Any:
        return self._parse(await self._send("GET", path))

    async def status(self, path: str = "") -> int:
        """GET ``path`` and return only the HTTP status code."""
        response = await self._send("GET", path)
        return response.status_code

    async def _send(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> httpx.Response:
        url = f"{self.base_url}/{path.lstrip('/')}" if path else self.base_url

        async with httpx.AsyncClient(
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport
        ) as client:
            try:
                response = await client.request(method, url, json=json)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.warning(
                    "Provider returned error status",
                    method=method,
                    url=url,
                    status_code=e.response.status_code
                )
                raise ProviderError(
                    f"{method} {url} returned {e.response.status_code}",
                    status_code=e.response.status_code
                ) from e
            except httpx.HTTPError as e:
                logger.warning("Provider request failed", method=method, url=url, error=str(e))
                raise ProviderError(f"{method} {url} failed: {e}") from e

        logger.debug("Provider call completed", method=method, url=url, status_code=response.status_code)
        return response

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            # Non-JSON bodies (e.g. HTML pages) are handed back as text
            return response.text


def get_provider_client() -> ApiClient:
    """Client for the payment provider, authenticated with the secret key."""
    settings = get_settings()
    return ApiClient(
        settings.provider_base_url,
        headers={"Authorization": f"Bearer {settings.paystack_secret_key}"},
        timeout=settings.provider_timeout
    )


def get_demo_client() -> ApiClient:
    settings = get_settings()
    return ApiClient(settings.demo_api_url, timeout=settings.provider_timeout)
