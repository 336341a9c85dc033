import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Mapping, Optional

import aiohttp

from clipterminal.errors import FetchTimeoutError, NetworkFetchError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 5 * 1024 * 1024


class Fetcher(ABC):

    @abstractmethod
    async def fetch(self, url: str, timeout: float, headers: Optional[Mapping[str, str]] = None) -> bytes:
        """Return the response body or raise ``NetworkFetchError``."""

    async def close(self) -> None:
        pass


class AiohttpFetcher(Fetcher):
    """GET requests over a shared ``aiohttp.ClientSession``.

    The session is created lazily so it binds to the loop that first uses it.
    """

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES):
        self.max_bytes = max_bytes
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def fetch(self, url: str, timeout: float, headers: Optional[Mapping[str, str]] = None) -> bytes:
        session = self._get_session()
        try:
            async with session.get(
                url,
                headers=dict(headers or {}),
                timeout=aiohttp.ClientTimeout(total=timeout),
                allow_redirects=True,
            ) as response:
                if response.status >= 400:
                    raise NetworkFetchError(f"HTTP {response.status} for {url}")

                body = bytearray()
                async for chunk in response.content.iter_chunked(64 * 1024):
                    body.extend(chunk)
                    if len(body) > self.max_bytes:
                        raise NetworkFetchError(f"Response from {url} exceeds {self.max_bytes} bytes")
                logger.debug(f"Fetched {url} ({len(body)} bytes)")
                return bytes(body)
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(f"Timed out after {timeout}s fetching {url}", e) from e
        except aiohttp.ClientError as e:
            raise NetworkFetchError(f"Failed to fetch {url}", e) from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
