"""Async HTTP client used for page captures and image fetches."""

from __future__ import annotations

import asyncio
import base64
import logging
import random
from types import TracebackType
from urllib.parse import unquote_to_bytes

import aiohttp
from charset_normalizer import from_bytes as detect_encoding

from .protocols import HttpResponse

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (snipdown/1.0)"


def decode_data_uri(url: str) -> HttpResponse:
    """
    Decode a ``data:`` URI into a synthetic 200 response.

    Raises:
        ValueError: If the URI is malformed
    """
    header, sep, payload = url[len("data:") :].partition(",")
    if not sep:
        raise ValueError("Malformed data URI")
    is_base64 = header.endswith(";base64")
    media_type = header[: -len(";base64")] if is_base64 else header
    content = base64.b64decode(payload) if is_base64 else unquote_to_bytes(payload)
    content_type = media_type or "text/plain;charset=US-ASCII"
    return HttpResponse(
        status_code=200,
        content=content,
        content_type=content_type,
        headers={"Content-Type": content_type},
        url=url,
    )


class AsyncHttpClient:
    """
    Async HTTP client with retries and a response size cap.

    Features:
    - Exponential backoff with jitter for transient failures
    - Content size limit
    - Charset detection for text responses
    - ``data:`` URIs answered locally

    Example:
        async with AsyncHttpClient() as client:
            response = await client.get("https://example.com")
            html = client.decode_content(response)
    """

    # Status codes that warrant a retry
    RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

    RETRYABLE_EXCEPTIONS = (
        aiohttp.ClientError,
        asyncio.TimeoutError,
        ConnectionError,
    )

    def __init__(
        self,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        max_content_size: int = 50 * 1024 * 1024,
        user_agent: str | None = None,
        proxy: str | None = None,
        default_timeout: float = 30.0,
    ) -> None:
        """
        Initialize the HTTP client.

        Args:
            max_retries: Maximum retry attempts for failed requests
            retry_base_delay: Base delay for exponential backoff (seconds)
            max_content_size: Maximum response size in bytes
            user_agent: Custom User-Agent string
            proxy: Proxy URL
            default_timeout: Default request timeout in seconds
        """
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._max_content_size = max_content_size
        self._proxy = proxy
        self._default_timeout = default_timeout
        self._user_agent = user_agent or DEFAULT_USER_AGENT
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> AsyncHttpClient:
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=20, limit_per_host=4),
            headers={"User-Agent": self._user_agent},
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _retry_delay(self, attempt: int) -> float:
        return self._retry_base_delay * (2**attempt) + random.uniform(0, 1)

    def _decode(self, content: bytes, content_type: str) -> str:
        encoding = None
        for part in (content_type or "").split(";"):
            part = part.strip()
            if part.lower().startswith("charset="):
                encoding = part.split("=", 1)[1].strip().strip("\"'")
                break

        if encoding:
            try:
                return content.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                logger.debug(f"Declared encoding {encoding} did not decode")

        best = detect_encoding(content).best()
        if best is not None:
            return str(best)
        return content.decode("utf-8", errors="replace")

    async def _read(self, response: aiohttp.ClientResponse) -> bytes:
        content_length = response.headers.get("Content-Length")
        if content_length and content_length.isdigit() and int(content_length) > self._max_content_size:
            raise ValueError(f"Content too large: {content_length} bytes")

        chunks = bytearray()
        async for chunk in response.content.iter_chunked(8192):
            chunks.extend(chunk)
            if len(chunks) > self._max_content_size:
                raise ValueError(f"Content size limit exceeded: >{self._max_content_size} bytes")
        return bytes(chunks)

    async def get(
        self,
        url: str,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        """
        GET ``url`` with retries.

        Raises:
            aiohttp.ClientError: On network errors after retries exhausted
            ValueError: On oversized content or a malformed data URI
            RuntimeError: If used outside ``async with``
        """
        if url.startswith("data:"):
            return decode_data_uri(url)
        if self._session is None:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        client_timeout = aiohttp.ClientTimeout(total=timeout or self._default_timeout)
        attempts = self._max_retries + 1

        for attempt in range(attempts):
            try:
                async with self._session.get(
                    url,
                    timeout=client_timeout,
                    headers=headers,
                    proxy=self._proxy,
                    allow_redirects=True,
                ) as response:
                    if response.status in self.RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                        delay = self._retry_delay(attempt)
                        logger.warning(
                            f"Got {response.status} for {url}, retrying in {delay:.1f}s "
                            f"(attempt {attempt + 1}/{attempts})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    content = await self._read(response)
                    return HttpResponse(
                        status_code=response.status,
                        content=content,
                        content_type=response.headers.get("Content-Type", ""),
                        headers=dict(response.headers),
                        url=str(response.url),
                    )

            except self.RETRYABLE_EXCEPTIONS as e:
                if attempt >= self._max_retries:
                    logger.error(f"Fetching {url} failed after {attempts} attempts: {e}")
                    raise
                delay = self._retry_delay(attempt)
                logger.warning(f"Error fetching {url}: {e}, retrying in {delay:.1f}s (attempt {attempt + 1}/{attempts})")
                await asyncio.sleep(delay)

        raise RuntimeError(f"Unexpected error fetching {url}")

    def decode_content(self, response: HttpResponse) -> str:
        """Decode a response body using its charset or detection."""
        return self._decode(response.content, response.content_type)
