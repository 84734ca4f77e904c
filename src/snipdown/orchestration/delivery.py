"""
Delivering a finished document as a named file.

Three strategies, tried in order until one succeeds:

1. ``ObjectUrlDownload``: the coordinator mints an object URL and hands it
   to the platform download service.
2. ``WorkerDownload``: the worker context mints the object URL (the
   coordinator cannot) and the coordinator downloads it.
3. ``ContentLinkDownload``: the originating page is asked to click a link
   carrying the content as a data URI.

Each strategy delivers the whole file on its own; none is a partial retry
of another.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Union

from ..errors import DeliveryError, InputError
from ..messaging import message_types as types
from ..messaging.bus import ExecutionContext, Message
from ..messaging.capabilities import Capabilities
from ..messaging.correlation import REQUEST_TIMEOUT, correlated_request
from ..models.events import ClipEvent, EventCallback, EventType
from ..models.options import DownloadMode
from .platform import DownloadService, ObjectUrlRegistry
from .tabs import TabRegistry
from .tracking import DownloadKind, DownloadTracker

logger = logging.getLogger(__name__)


@dataclass
class DeliveryRequest:
    """
    A file to deliver.

    Attributes:
        content: File body
        filename: Relative path, may contain ``/`` sub-folders
        mime_type: Content type of the body
        tab_id: Originating tab, used by the page-link fallback
        prompt_user: Ask for a destination ("save as")
    """

    content: Union[str, bytes]
    filename: str
    mime_type: str = "text/markdown"
    tab_id: Optional[int] = None
    prompt_user: bool = False

    @property
    def data(self) -> bytes:
        if isinstance(self.content, bytes):
            return self.content
        return self.content.encode("utf-8")

    @property
    def data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};charset=utf-8;base64,{encoded}"


@dataclass(frozen=True)
class DeliveryOutcome:
    strategy: str
    download_id: Optional[int] = None


class DeliveryStrategy(Protocol):
    name: str

    async def deliver(self, request: DeliveryRequest) -> Optional[int]:
        """Deliver the file; return the platform download id, if any."""
        ...


class _TrackedDownload:
    """Start a tracked download of ``url`` owned by ``owner``."""

    def __init__(self, downloads: DownloadService, tracker: DownloadTracker) -> None:
        self._downloads = downloads
        self._tracker = tracker

    async def _start(self, url: str, request: DeliveryRequest, owner: Optional[str]) -> int:
        self._tracker.track_url(url, request.filename, owner, DownloadKind.MARKDOWN)
        try:
            download_id = await self._downloads.download(url, request.filename, request.prompt_user)
        except Exception:
            self._tracker.forget_url(url)
            raise
        self._tracker.promote(url, download_id)
        return download_id


class ObjectUrlDownload(_TrackedDownload):
    name = "object_url"

    def __init__(
        self,
        downloads: DownloadService,
        tracker: DownloadTracker,
        object_urls: ObjectUrlRegistry,
        owner: str,
    ) -> None:
        super().__init__(downloads, tracker)
        self._object_urls = object_urls
        self._owner = owner

    async def deliver(self, request: DeliveryRequest) -> Optional[int]:
        url = self._object_urls.create(request.data, request.mime_type, self._owner)
        try:
            return await self._start(url, request, self._owner)
        except Exception:
            self._object_urls.revoke(url, self._owner)
            raise


class WorkerDownload(_TrackedDownload):
    name = "worker"

    def __init__(
        self,
        downloads: DownloadService,
        tracker: DownloadTracker,
        context: ExecutionContext,
        worker: str = types.WORKER,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        super().__init__(downloads, tracker)
        self._context = context
        self._worker = worker
        self._timeout = timeout

    async def deliver(self, request: DeliveryRequest) -> Optional[int]:
        message = Message(
            type=types.CREATE_OBJECT_URL,
            payload={"data": base64.b64encode(request.data).decode("ascii"), "mime_type": request.mime_type},
            target=self._worker,
        )
        reply = await correlated_request(
            self._context, message, types.OBJECT_URL_CREATED, error_type=types.OBJECT_URL_ERROR, timeout=self._timeout
        )
        url = reply.payload["url"]
        try:
            return await self._start(url, request, self._worker)
        except Exception:
            self._context.post(types.CLEANUP_OBJECT_URL, {"url": url}, target=self._worker)
            raise


class ContentLinkDownload:
    name = "content_link"

    def __init__(self, tabs: TabRegistry) -> None:
        self._tabs = tabs

    async def deliver(self, request: DeliveryRequest) -> Optional[int]:
        if request.tab_id is None:
            raise InputError("No originating tab to save through")
        # A page link cannot create folders
        filename = request.filename.replace("/", "_")
        href = request.data_uri
        await self._tabs.execute(request.tab_id, lambda script: script.click_download_link(filename, href))
        return None


class DeliveryChain:
    """
    Tries each strategy in turn.

    Example:
        chain = DeliveryChain([ObjectUrlDownload(...), ContentLinkDownload(tabs)])
        outcome = await chain.deliver(DeliveryRequest(text, "Title.md", tab_id=3))
    """

    def __init__(self, strategies: Sequence[DeliveryStrategy], emit: Optional[EventCallback] = None) -> None:
        self.strategies = list(strategies)
        self._emit = emit

    async def deliver(self, request: DeliveryRequest) -> DeliveryOutcome:
        """
        Raises:
            DeliveryError: If every strategy failed
        """
        failures: list[tuple[str, str]] = []
        for strategy in self.strategies:
            try:
                download_id = await strategy.deliver(request)
            except Exception as e:
                logger.warning(f"Delivering {request.filename} via {strategy.name} failed: {e}")
                failures.append((strategy.name, str(e)))
                if self._emit:
                    self._emit(
                        ClipEvent(
                            type=EventType.DELIVERY_FALLBACK,
                            tab_id=request.tab_id,
                            filename=request.filename,
                            message=strategy.name,
                            error=str(e),
                        )
                    )
                continue
            if self._emit:
                self._emit(
                    ClipEvent(
                        type=EventType.DOWNLOAD_STARTED,
                        tab_id=request.tab_id,
                        filename=request.filename,
                        message=strategy.name,
                    )
                )
            return DeliveryOutcome(strategy=strategy.name, download_id=download_id)

        logger.error(f"Could not deliver {request.filename}: every strategy failed")
        raise DeliveryError(request.filename, failures)


def build_delivery_chain(
    capabilities: Capabilities,
    download_mode: DownloadMode,
    *,
    tabs: TabRegistry,
    context: ExecutionContext,
    tracker: DownloadTracker,
    object_urls: ObjectUrlRegistry,
    downloads: Optional[DownloadService] = None,
    emit: Optional[EventCallback] = None,
) -> DeliveryChain:
    """Strategies available to this context for ``download_mode``."""
    strategies: list[DeliveryStrategy] = []
    if download_mode == DownloadMode.DOWNLOADS_API and capabilities.downloads_api and downloads is not None:
        if capabilities.object_urls:
            strategies.append(ObjectUrlDownload(downloads, tracker, object_urls, context.name))
        if capabilities.worker_context:
            strategies.append(WorkerDownload(downloads, tracker, context))
    strategies.append(ContentLinkDownload(tabs))
    return DeliveryChain(strategies, emit)
