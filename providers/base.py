"""
Shared HTTP plumbing for provider clients.

Each client owns one pooled aiohttp.ClientSession, created on first use and
closed from the application lifespan.
"""
import asyncio
import json
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from logging_setup import Component, get_logger
from relay_server.errors import UpstreamError

TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


async def read_error_payload(response: aiohttp.ClientResponse) -> Any:
    """Provider error body: parsed JSON when possible, raw text otherwise."""
    text = await response.text()
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


async def iter_body_chunks(
    response: aiohttp.ClientResponse, chunk_size: int = 8192
) -> AsyncIterator[bytes]:
    """Yield the response body and release the connection when done."""
    try:
        async for chunk in response.content.iter_chunked(chunk_size):
            yield chunk
    finally:
        response.release()


class ProviderClient:
    """Base for provider clients: session pooling, request helpers, cleanup."""

    provider_name = "provider"

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 120.0,
        pool_size: int = 20,
        component: Component = Component.RELAY_SERVER,
    ):
        self.base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._pool_size = pool_size
        self._http_session: Optional[aiohttp.ClientSession] = None
        self.logger = get_logger(component)

    def _get_or_create_session(self) -> aiohttp.ClientSession:
        """
        Get or create the shared HTTP session.

        No total timeout: streamed bodies may legitimately run long. Connect
        and per-read timeouts still apply.
        """
        if self._http_session is None or self._http_session.closed:
            connector = aiohttp.TCPConnector(
                limit=self._pool_size,
                ttl_dns_cache=300,
            )
            timeout = aiohttp.ClientTimeout(
                total=None,
                sock_connect=min(10.0, self._timeout_seconds),
                sock_read=self._timeout_seconds,
            )
            self._http_session = aiohttp.ClientSession(connector=connector, timeout=timeout)
            self.logger.info(
                "Provider connection pool created",
                provider=self.provider_name,
                pool_size=self._pool_size,
            )
        return self._http_session

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _open(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> aiohttp.ClientResponse:
        """
        Send a request and return the open response if it succeeded.

        Non-2xx responses are read, released and raised as UpstreamError with
        the provider's status and body. The caller must release a returned
        response.
        """
        session = self._get_or_create_session()
        url = self._url(path)
        try:
            response = await session.request(method, url, headers=headers, **kwargs)
        except TRANSPORT_ERRORS as e:
            self.logger.error(
                "Provider request failed",
                provider=self.provider_name,
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise UpstreamError(
                f"{self.provider_name} request failed: {type(e).__name__}",
                provider=self.provider_name,
            ) from e

        if not 200 <= response.status < 300:
            try:
                payload = await read_error_payload(response)
            except TRANSPORT_ERRORS:
                payload = None
            finally:
                response.release()
            self.logger.error(
                "Provider returned error status",
                provider=self.provider_name,
                path=path,
                status_code=response.status,
            )
            raise UpstreamError(
                f"{self.provider_name} returned {response.status}",
                status_code=response.status,
                payload=payload,
                provider=self.provider_name,
                content_type=response.content_type,
            )
        return response

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._open(method, path, **kwargs)
        try:
            return await response.json(content_type=None)
        except (ValueError, aiohttp.ContentTypeError) as e:
            raise UpstreamError(
                f"{self.provider_name} returned a malformed body",
                provider=self.provider_name,
            ) from e
        except TRANSPORT_ERRORS as e:
            raise UpstreamError(
                f"{self.provider_name} connection dropped: {type(e).__name__}",
                provider=self.provider_name,
            ) from e
        finally:
            response.release()

    async def aclose(self) -> None:
        """Close the HTTP session. Safe to call multiple times."""
        if self._http_session is not None:
            try:
                await self._http_session.close()
                self.logger.info("Provider connection pool closed", provider=self.provider_name)
            finally:
                self._http_session = None
