"""Bookkeeping for downloads started by the coordinator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .platform import OBJECT_URL_SCHEME, DownloadItem

logger = logging.getLogger(__name__)


class DownloadKind(str, Enum):
    """What a tracked download carries."""

    MARKDOWN = "markdown"
    IMAGE = "image"


@dataclass
class TrackedDownload:
    """
    One download we started.

    Attributes:
        url: URL handed to the download service
        filename: Name we want the file saved under
        kind: Converted document or one of its images
        owner: Context owning ``url`` when it is an object URL
        download_id: Identifier assigned by the platform, once accepted
    """

    url: str
    filename: str
    kind: DownloadKind = DownloadKind.MARKDOWN
    owner: Optional[str] = None
    download_id: Optional[int] = None


class DownloadTracker:
    """
    Tracks downloads from request to terminal state.

    A download is recorded by URL before it is started, because the
    platform only hands back an identifier once it accepted the request.
    ``promote`` then moves the record to identifier-keyed storage.
    ``complete`` removes it exactly once and returns it so the caller can
    release its resources.

    The maps live only as long as the process; losing them means the
    platform's default filename is used.
    """

    def __init__(self, url_scheme: str = OBJECT_URL_SCHEME) -> None:
        self._url_scheme = url_scheme
        self._by_url: dict[str, TrackedDownload] = {}
        self._by_id: dict[int, TrackedDownload] = {}

    def track_url(
        self,
        url: str,
        filename: str,
        owner: Optional[str] = None,
        kind: DownloadKind = DownloadKind.MARKDOWN,
    ) -> TrackedDownload:
        record = TrackedDownload(url=url, filename=filename, kind=kind, owner=owner)
        self._by_url[url] = record
        return record

    def promote(self, url: str, download_id: int) -> Optional[TrackedDownload]:
        record = self._by_url.pop(url, None)
        if record is None:
            logger.debug(f"Download {download_id} was not tracked by URL")
            return None
        record.download_id = download_id
        self._by_id[download_id] = record
        return record

    def forget_url(self, url: str) -> Optional[TrackedDownload]:
        """Drop a URL record whose download was never accepted."""
        return self._by_url.pop(url, None)

    def lookup(self, download_id: Optional[int] = None, url: Optional[str] = None) -> Optional[TrackedDownload]:
        if download_id is not None and download_id in self._by_id:
            return self._by_id[download_id]
        if url is not None:
            return self._by_url.get(url)
        return None

    def suggest_filename(self, item: DownloadItem) -> Optional[str]:
        """
        Filename to force for ``item``, or None to leave it alone.

        Looks up by identifier first; a URL of our own scheme is matched
        against URL records as a weaker fallback.
        """
        record = self._by_id.get(item.id)
        if record is not None:
            return record.filename
        if item.url.startswith(self._url_scheme):
            record = self._by_url.get(item.url)
            if record is not None:
                return record.filename
            logger.debug(f"Download {item.id} looks like ours but is not tracked")
        return None

    def complete(self, download_id: int) -> Optional[TrackedDownload]:
        """Remove a download that reached a terminal state; None if unknown or already removed."""
        record = self._by_id.pop(download_id, None)
        if record is not None:
            self._by_url.pop(record.url, None)
        return record

    def __len__(self) -> int:
        return len(self._by_url) + len(self._by_id)

    def __contains__(self, key: object) -> bool:
        return key in self._by_id or key in self._by_url
