"""
Platform services: the download service and in-memory object URLs.

``LocalDownloadService`` stands in for a browser's download manager. It
accepts a URL (``blob:``, ``data:`` or http(s)) and a relative filename,
hands back a numeric identifier, asks registered filename hooks for the
final name, then writes the file and reports the terminal state.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import uuid
import webbrowser
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable, Optional, Protocol

from ..http.client import decode_data_uri
from ..http.protocols import HttpClient

logger = logging.getLogger(__name__)

OBJECT_URL_SCHEME = "blob:snipdown/"


class DownloadState(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    INTERRUPTED = "interrupted"


@dataclass
class DownloadItem:
    """A download as seen by filename hooks."""

    id: int
    url: str
    filename: str


@dataclass(frozen=True)
class DownloadDelta:
    """State change notification for one download."""

    id: int
    state: DownloadState
    filename: Optional[str] = None
    error: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.state in (DownloadState.COMPLETE, DownloadState.INTERRUPTED)


# hook(item, suggest): call suggest(name) to override, or not at all
FilenameHook = Callable[[DownloadItem, Callable[[str], None]], None]
ChangeListener = Callable[[DownloadDelta], None]


class DownloadService(Protocol):
    """Contract of the platform download manager."""

    async def download(self, url: str, filename: str, prompt_user: bool = False) -> int:
        """Start a download and return its identifier once accepted."""
        ...

    def on_changed(self, listener: ChangeListener) -> None:
        ...

    def on_determining_filename(self, hook: FilenameHook) -> None:
        ...


class ObjectUrlRegistry:
    """
    In-memory blobs addressable by URL, each owned by the context that
    created it. Only the owner may revoke an object URL.
    """

    def __init__(self) -> None:
        self._blobs: dict[str, tuple[bytes, str, str]] = {}

    def create(self, data: bytes, mime_type: str, owner: str) -> str:
        url = f"{OBJECT_URL_SCHEME}{uuid.uuid4()}"
        self._blobs[url] = (data, mime_type, owner)
        return url

    def resolve(self, url: str) -> tuple[bytes, str]:
        """
        Raises:
            KeyError: If the URL was never created or is revoked
        """
        data, mime_type, _ = self._blobs[url]
        return data, mime_type

    def owner_of(self, url: str) -> Optional[str]:
        entry = self._blobs.get(url)
        return entry[2] if entry else None

    def revoke(self, url: str, owner: str) -> bool:
        entry = self._blobs.get(url)
        if entry is None:
            return False
        if entry[2] != owner:
            logger.warning(f"{owner} may not revoke {url} owned by {entry[2]}")
            return False
        del self._blobs[url]
        return True

    def __contains__(self, url: str) -> bool:
        return url in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)


def safe_relative_path(filename: str) -> PurePosixPath:
    """Relative path inside the download directory; absolute and ``..`` parts are dropped."""
    parts = [part for part in PurePosixPath(filename.replace("\\", "/")).parts if part not in ("/", "..", ".")]
    if not parts:
        raise ValueError(f"Invalid download filename: {filename!r}")
    return PurePosixPath(*parts)


def uniquify(path: Path) -> Path:
    """``name.md`` -> ``name (1).md`` -> ``name (2).md`` until free."""
    candidate = path
    counter = 0
    while candidate.exists():
        counter += 1
        candidate = path.with_name(f"{path.stem} ({counter}){path.suffix}")
    return candidate


class LocalDownloadService:
    """
    Download manager writing into a local directory.

    Example:
        service = LocalDownloadService(Path("clips"), object_urls, client)
        service.on_changed(lambda delta: print(delta.state))
        download_id = await service.download(url, "Folder/Title.md")
        await service.wait_idle()
    """

    def __init__(
        self,
        directory: Path,
        object_urls: ObjectUrlRegistry,
        client: Optional[HttpClient] = None,
    ) -> None:
        self.directory = Path(directory)
        self._object_urls = object_urls
        self._client = client
        self._ids = itertools.count(1)
        self._listeners: list[ChangeListener] = []
        self._hooks: list[FilenameHook] = []
        self._tasks: set[asyncio.Task] = set()

    def on_changed(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def on_determining_filename(self, hook: FilenameHook) -> None:
        self._hooks.append(hook)

    async def download(self, url: str, filename: str, prompt_user: bool = False) -> int:
        """
        Accept a download and start it in the background.

        ``prompt_user`` has no meaning without a user interface and is
        ignored.

        Raises:
            ValueError: If ``url`` uses an unsupported scheme or the filename is empty
        """
        if not url.startswith(("blob:", "data:", "http://", "https://")):
            raise ValueError(f"Unsupported download URL: {url[:40]}")
        safe_relative_path(filename)

        item = DownloadItem(id=next(self._ids), url=url, filename=filename)
        task = asyncio.ensure_future(self._run(item))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Download {item.id} accepted: {filename}")
        return item.id

    def _determine_filename(self, item: DownloadItem) -> str:
        chosen = item.filename

        def suggest(name: str) -> None:
            nonlocal chosen
            chosen = name

        for hook in self._hooks:
            try:
                hook(item, suggest)
            except Exception as e:
                logger.warning(f"Filename hook failed for download {item.id}: {e}")
        return chosen

    async def _fetch(self, url: str) -> bytes:
        if url.startswith("blob:"):
            data, _ = self._object_urls.resolve(url)
            return data
        if url.startswith("data:"):
            return decode_data_uri(url).content
        if self._client is None:
            raise ValueError("No HTTP client to fetch remote downloads")
        response = await self._client.get(url)
        if not response.ok:
            raise ValueError(f"HTTP {response.status_code}")
        return response.content

    def _write(self, filename: str, data: bytes) -> Path:
        path = uniquify(self.directory / safe_relative_path(filename))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    async def _run(self, item: DownloadItem) -> None:
        # Let the caller record the identifier before hooks run
        await asyncio.sleep(0)
        filename = self._determine_filename(item)
        try:
            data = await self._fetch(item.url)
            path = await asyncio.to_thread(self._write, filename, data)
        except Exception as e:
            logger.error(f"Download {item.id} ({filename}) interrupted: {e}")
            self._notify(DownloadDelta(item.id, DownloadState.INTERRUPTED, filename=filename, error=str(e)))
            return
        logger.info(f"Saved {path}")
        self._notify(DownloadDelta(item.id, DownloadState.COMPLETE, filename=str(path)))

    def _notify(self, delta: DownloadDelta) -> None:
        for listener in list(self._listeners):
            try:
                listener(delta)
            except Exception as e:
                logger.warning(f"Download listener failed for {delta.id}: {e}")

    async def wait_idle(self) -> None:
        """Wait until every accepted download reached a terminal state."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def save_link(self, filename: str, href: str) -> Path:
        """
        Save a link target directly, as a page does when a download link is
        clicked: no identifier, no hooks, no state events.
        """
        data = await self._fetch(href)
        return await asyncio.to_thread(self._write, filename, data)


def open_uri(uri: str) -> bool:
    """Hand a URI (e.g. ``obsidian://``) to the desktop."""
    opened = webbrowser.open(uri)
    if not opened:
        logger.warning(f"No handler opened {uri}")
    return opened
