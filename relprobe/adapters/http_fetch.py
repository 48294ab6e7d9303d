"""
Streaming HTTP fetch built on httpx.
"""
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from relprobe.internal.config import Settings, load_settings
from relprobe.internal.errors import NetworkError
from relprobe.internal.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ResponseBody:
    """
    A successful response whose body has not been read yet.
    Iterating it yields raw wire bytes (no content decoding).
    """
    url: str
    status_code: int
    content_length: Optional[int]
    chunks: AsyncIterator[bytes]

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.chunks


class HttpFetcher:
    """
    Issues one streaming GET per `open()` call.

    A client passed in is shared and left open; otherwise each call creates
    and closes its own client.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, settings: Optional[Settings] = None):
        self._client = client
        self._settings = settings or load_settings()

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.request_timeout,
            follow_redirects=True,
            headers={"User-Agent": self._settings.user_agent, "Accept-Encoding": "identity"},
        )

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[ResponseBody]:
        """
        Yields the response body for `url`. Transport failures and non-success
        statuses raise NetworkError, including failures while the body is
        being read inside the `async with` block.
        """
        async with AsyncExitStack() as stack:
            try:
                client = self._client
                if client is None:
                    client = await stack.enter_async_context(self._new_client())

                response = await stack.enter_async_context(
                    client.stream("GET", url, headers={"Accept-Encoding": "identity"}, follow_redirects=True)
                )
                if not response.is_success:
                    raise NetworkError(
                        url,
                        f"{response.status_code} {response.reason_phrase}".strip(),
                        status_code=response.status_code,
                    )

                content_length = response.headers.get("Content-Length")
                logger.debug("response opened", url=url, status=response.status_code, content_length=content_length)

                yield ResponseBody(
                    url=url,
                    status_code=response.status_code,
                    content_length=int(content_length) if content_length and content_length.isdigit() else None,
                    # aiter_raw: the digest must see the bytes exactly as served.
                    chunks=response.aiter_raw(chunk_size=self._settings.chunk_size),
                )
            except httpx.HTTPError as e:
                raise NetworkError(url, str(e) or type(e).__name__) from e
