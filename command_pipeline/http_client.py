"""
Pooled aiohttp session shared by the REST service clients.

One ClientSession per client instance, created lazily on first request and
reused for every later request so TCP/TLS connections stay warm.
"""
import os
from typing import Optional

import aiohttp

from logging_setup import StructuredLogger


class PooledHTTPClient:
    """Base for service clients that talk JSON over HTTP."""

    # Prefix for the optional tuning variables, e.g. TRANSLATION_CONNECTION_POOL_SIZE
    env_prefix = "HTTP"

    def __init__(self, *, logger: StructuredLogger, session: Optional[aiohttp.ClientSession] = None):
        self._logger = logger
        self._http_session = session
        self._owns_session = session is None
        self._connector: Optional[aiohttp.TCPConnector] = None

    def _get_or_create_session(self) -> aiohttp.ClientSession:
        """
        Get or create the shared HTTP session with connection pooling.

        An injected session is used as-is and never closed by this client.
        """
        if self._http_session is None or self._http_session.closed:
            pool_size = int(os.getenv(f"{self.env_prefix}_CONNECTION_POOL_SIZE", "10"))
            connect_timeout = float(os.getenv(f"{self.env_prefix}_CONNECTION_TIMEOUT", "3.0"))
            total_timeout = float(os.getenv(f"{self.env_prefix}_CONNECTION_TOTAL_TIMEOUT", "15.0"))

            self._connector = aiohttp.TCPConnector(
                limit=pool_size,
                limit_per_host=pool_size,
                ttl_dns_cache=300,
                force_close=False,
            )
            timeout = aiohttp.ClientTimeout(
                total=total_timeout,
                connect=connect_timeout,
            )
            self._http_session = aiohttp.ClientSession(
                connector=self._connector,
                timeout=timeout,
            )
            self._owns_session = True

            self._logger.info(
                "HTTP connection pool created",
                pool_size=pool_size,
                connect_timeout_ms=int(connect_timeout * 1000),
                total_timeout_ms=int(total_timeout * 1000),
            )

        return self._http_session

    async def aclose(self) -> None:
        """
        Best-effort cleanup of HTTP session and connector.
        Safe to call multiple times.
        """
        if self._http_session is not None and self._owns_session:
            try:
                await self._http_session.close()
                self._logger.info("HTTP connection pool closed")
            except Exception as e:
                self._logger.warning(
                    "Error closing HTTP session",
                    error=str(e),
                    error_type=type(e).__name__,
                )
            finally:
                self._http_session = None
                self._connector = None


async def read_error_message(resp: aiohttp.ClientResponse) -> str:
    """Extract a provider error message from a non-2xx response."""
    try:
        payload = await resp.json(content_type=None)
    except (aiohttp.ContentTypeError, ValueError):
        return (await resp.text())[:200]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return str(payload)[:200]
