"""Outbound HTTP for the SMS and email gateways.

Every call is logged with its host, status and latency; the payload never is,
since it carries the one-time code.
"""

import time
from typing import Any, Optional

import httpx

from shared.logging import get_logger

log = get_logger(__name__)


class HttpClient:
    """httpx.AsyncClient shared by the delivery providers."""

    def __init__(
        self, timeout: float = 5.0, headers: Optional[dict[str, str]] = None
    ) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        host = httpx.URL(url).host
        started = time.perf_counter()
        try:
            response = await self._client.post(url, **kwargs)
        except httpx.HTTPError as e:
            log.warning(
                "gateway_request_failed",
                host=host,
                error_type=type(e).__name__,
                elapsed_ms=round((time.perf_counter() - started) * 1000),
            )
            raise
        log.debug(
            "gateway_request",
            host=host,
            status=response.status_code,
            elapsed_ms=round((time.perf_counter() - started) * 1000),
        )
        return response

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
