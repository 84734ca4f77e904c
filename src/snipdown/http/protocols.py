"""Fetch contract shared by page capture and image pre-download."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class HttpResponse:
    """
    A fetched resource.

    ``data:`` URIs are answered with the same shape (status 200, decoded
    body, the URI's media type) so callers never special-case them.
    """

    status_code: int
    content: bytes
    content_type: str
    headers: dict[str, str]
    url: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    @property
    def media_type(self) -> str:
        """Content-Type without parameters, lower-cased."""
        return (self.content_type or "").split(";", 1)[0].strip().lower()


class HttpClient(Protocol):
    """What the clipper needs from a fetcher; tests pass an AsyncMock."""

    async def get(
        self,
        url: str,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        """
        Fetch ``url``.

        Raises on transport failure once retries are exhausted; HTTP error
        statuses come back as responses.
        """
        ...

    def decode_content(self, response: HttpResponse) -> str:
        """Decode a response body to text."""
        ...
