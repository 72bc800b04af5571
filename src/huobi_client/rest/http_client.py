"""
HTTP transport for the REST client.
"""
import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Protocol

import aiohttp
from yarl import URL

from ..exceptions import ExchangeConnectionError
from .request_builder import RequestDescriptor


@dataclass(frozen=True)
class HttpResponse:
    """Raw transport response."""
    status: int
    text: str


class HttpTransport(Protocol):
    """Sends a request descriptor and returns the raw response."""

    async def send(self, request: RequestDescriptor) -> HttpResponse:
        ...

    async def close(self) -> None:
        ...


class RateLimiter:
    """Allows at most `rate_limit` requests in any `window` seconds."""

    def __init__(self, rate_limit: int, window: float = 1.0):
        self.rate_limit = rate_limit
        self.window = window
        self._sent: Deque[float] = deque()
        self._lock: Optional[asyncio.Lock] = None

    async def acquire(self) -> None:
        """Wait until a request may be sent and record it."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            while True:
                now = time.monotonic()
                while self._sent and now - self._sent[0] >= self.window:
                    self._sent.popleft()
                if len(self._sent) < self.rate_limit:
                    break
                await asyncio.sleep(self._sent[0] + self.window - now)
            self._sent.append(now)


class AiohttpTransport:
    """Asynchronous HTTP transport backed by aiohttp."""

    def __init__(
        self,
        rate_limit: int = 10,
        timeout: float = 30.0,
        retries: int = 0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize the transport.

        Args:
            rate_limit: Maximum number of requests per second
            timeout: Request timeout in seconds
            retries: Extra attempts after a connection failure (HTTP errors are never retried)
            session: Optional aiohttp session to use instead of an owned one
        """
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.retries = max(0, retries)
        self.rate_limiter = RateLimiter(rate_limit)
        self.session = session
        self._session_owner = session is None
        self._logger = logging.getLogger(self.__class__.__name__)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create an aiohttp client session."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
            self._session_owner = True
        return self.session

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self._session_owner and self.session and not self.session.closed:
            await self.session.close()

    async def send(self, request: RequestDescriptor) -> HttpResponse:
        """
        Send a request.

        Returns:
            Status code and body text, whatever the status

        Raises:
            ExchangeConnectionError: If the request could not be completed
        """
        session = await self._get_session()
        data = request.body.encode('utf-8') if request.body is not None else None

        for attempt in range(self.retries + 1):
            await self.rate_limiter.acquire()
            try:
                self._logger.debug(
                    "%s %s (attempt %d/%d)",
                    request.method,
                    request.url.split('?')[0],
                    attempt + 1,
                    self.retries + 1
                )
                async with session.request(
                    request.method,
                    URL(request.url, encoded=True),  # already escaped for signing
                    data=data,
                    headers=request.headers
                ) as response:
                    text = await response.text()
                    if response.status >= 400:
                        self._logger.error("HTTP %d: %s", response.status, text[:200])
                    return HttpResponse(status=response.status, text=text)

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self._logger.error("Request failed: %s", str(e) or e.__class__.__name__)
                if attempt < self.retries:
                    await asyncio.sleep(2 ** attempt)  # Exponential backoff
                    continue
                raise ExchangeConnectionError(f"Request failed: {e}") from e
