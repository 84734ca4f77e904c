"""
The privileged coordinating context.

The coordinator owns the tabs, the download service hooks and the download
tracker. It drives every user-facing operation (clip, download, copy,
batch) through the active ``Topology`` and never needs to know whether
conversion happens in place or in a worker context.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Sequence

from ..conversion.converter import ConversionResult
from ..errors import ClipboardError, ContextUnavailableError
from ..messaging import message_types as types
from ..messaging.bus import ExecutionContext, Message
from ..messaging.capabilities import Capabilities
from ..models.events import ClipEvent, ClipState, ClipStats, EventCallback, EventType
from ..models.options import ConversionOptions, DownloadMode
from ..templating import format_clips_folder, format_obsidian_folder, format_title
from .batch import BatchItem, build_obsidian_uri, parse_url_list
from .clipboard import ClipboardBackend, copy_to_clipboard
from .delivery import DeliveryOutcome, DeliveryRequest, build_delivery_chain
from .lifecycle import ClipRequest
from .platform import DownloadDelta, DownloadItem, DownloadService, DownloadState, ObjectUrlRegistry, open_uri
from .settings import SettingsStore
from .tabs import Tab, TabRegistry
from .topology import Topology
from .tracking import DownloadKind, DownloadTracker, TrackedDownload

logger = logging.getLogger(__name__)

TabAction = Callable[[Tab], Awaitable[Any]]


class Coordinator:
    """
    Entry point for clip operations.

    Example:
        coordinator = Coordinator(context, tabs, topology, capabilities, ...)
        result = await coordinator.clip(tab.id)
        await coordinator.download(result, await coordinator.get_options(), tab.id)
    """

    def __init__(
        self,
        context: ExecutionContext,
        tabs: TabRegistry,
        topology: Topology,
        capabilities: Capabilities,
        object_urls: ObjectUrlRegistry,
        *,
        tracker: Optional[DownloadTracker] = None,
        downloads: Optional[DownloadService] = None,
        settings: Optional[SettingsStore] = None,
        clipboard: Sequence[ClipboardBackend] = (),
        defaults: Optional[ConversionOptions] = None,
        emit: Optional[EventCallback] = None,
        uri_opener: Callable[[str], Any] = open_uri,
    ) -> None:
        self.context = context
        self.tabs = tabs
        self.topology = topology
        self.capabilities = capabilities
        self.tracker = tracker or DownloadTracker()
        self._object_urls = object_urls
        self._downloads = downloads
        self._settings = settings
        self._clipboard = list(clipboard)
        self._defaults = defaults or ConversionOptions()
        self._emit = emit
        self._open_uri = uri_opener

        if downloads is not None:
            downloads.on_changed(self.handle_download_changed)
            downloads.on_determining_filename(self.handle_determining_filename)
        context.on(types.CLIP, self.handle_clip_message)

    def _event(self, event_type: EventType, **kwargs: Any) -> None:
        if self._emit:
            self._emit(ClipEvent(type=event_type, **kwargs))

    # Options

    async def get_options(self) -> ConversionOptions:
        """Saved options over the defaults, adjusted to what the platform can do."""
        options = self._defaults
        if self._settings is not None:
            options = await self._settings.get(self._defaults)
        return self.capabilities.effective_options(options)

    # Single tab

    async def clip(
        self,
        tab_id: int,
        selection: bool = False,
        options: Optional[ConversionOptions] = None,
    ) -> ConversionResult:
        """
        Capture and convert one tab.

        Raises:
            InputError: Unknown tab or empty capture
            CrossContextError: The worker did not answer or failed
            ConversionError: The document could not be converted
        """
        options = options or await self.get_options()
        tab = self.tabs.get(tab_id)
        request = ClipRequest(tab_id=tab_id, url=tab.url, emit=self._emit)
        try:
            request.advance(ClipState.AWAITING_DOM)
            snapshot = await self.topology.capture(tab_id)
            request.advance(ClipState.DOM_CAPTURED)
            request.advance(ClipState.CONVERTING)
            result = await self.topology.convert(snapshot, options, selection)
            request.advance(ClipState.RESULT_READY)
        except Exception as e:
            logger.error(f"Clipping tab {tab_id} ({tab.url}) failed: {e}")
            request.fail(e)
            raise

        for src, reason in result.image_failures:
            self._event(EventType.IMAGE_FAILED, tab_id=tab_id, url=src, error=reason)
        return result

    async def download(
        self,
        result: ConversionResult,
        options: ConversionOptions,
        tab_id: Optional[int] = None,
    ) -> DeliveryOutcome:
        """
        Deliver a converted document, then its images.

        Raises:
            DeliveryError: If no delivery strategy succeeded
        """
        folder = format_clips_folder(result.record, options) if result.record is not None else ""
        request = DeliveryRequest(
            content=result.text,
            filename=f"{folder}{result.title}{result.file_extension}",
            mime_type=options.mime_type,
            tab_id=tab_id,
            prompt_user=options.save_as,
        )
        chain = build_delivery_chain(
            self.capabilities,
            options.download_mode,
            tabs=self.tabs,
            context=self.context,
            tracker=self.tracker,
            object_urls=self._object_urls,
            downloads=self._downloads,
            emit=self._emit,
        )
        outcome = await chain.deliver(request)
        logger.info(f"Delivered {request.filename} via {outcome.strategy}")

        if options.download_images and options.download_mode == DownloadMode.DOWNLOADS_API and result.manifest:
            await self.download_images(result, folder, tab_id)
        return outcome

    async def download_images(self, result: ConversionResult, folder: str, tab_id: Optional[int] = None) -> int:
        """
        Start downloads for every manifest image, concurrently.

        A failed image is logged and reported as an event; it never fails
        the document. Returns the number of downloads started.
        """
        if self._downloads is None:
            logger.info("No download service, skipping images")
            return 0
        downloads = self._downloads

        destination = folder + result.title[: result.title.rfind("/") + 1]

        async def start(src: str, filename: str) -> bool:
            target = destination + filename
            self.tracker.track_url(src, target, self._object_urls.owner_of(src), DownloadKind.IMAGE)
            try:
                download_id = await downloads.download(src, target)
            except Exception as e:
                self.tracker.forget_url(src)
                logger.warning(f"Image download failed for {src}: {e}")
                self._event(EventType.IMAGE_FAILED, tab_id=tab_id, url=src, filename=target, error=str(e))
                return False
            self.tracker.promote(src, download_id)
            return True

        started = await asyncio.gather(*(start(src, name) for src, name in result.manifest.items()))
        return sum(1 for ok in started if ok)

    async def download_tab(
        self,
        tab_id: int,
        selection: bool = False,
        options: Optional[ConversionOptions] = None,
    ) -> DeliveryOutcome:
        """Clip a tab and deliver it (or hand it to Obsidian when enabled)."""
        options = options or await self.get_options()
        if options.obsidian_integration:
            await self.send_to_obsidian(tab_id, selection, options)
            return DeliveryOutcome(strategy="obsidian")
        result = await self.clip(tab_id, selection, options)
        return await self.download(result, options, tab_id)

    async def copy_text(self, text: str, tab_id: Optional[int] = None) -> str:
        """
        Raises:
            ClipboardError: If no clipboard backend accepted the text
        """
        if not self._clipboard:
            raise ClipboardError("No clipboard available")
        backend = await copy_to_clipboard(text, self._clipboard)
        self._event(EventType.COPIED, tab_id=tab_id, message=backend)
        return backend

    async def copy_tab(
        self,
        tab_id: int,
        selection: bool = False,
        options: Optional[ConversionOptions] = None,
    ) -> str:
        """Copy the converted tab (or its selection); returns the text."""
        options = options or await self.get_options()
        options = options.model_copy(update={"download_images": False})
        result = await self.clip(tab_id, selection, options)
        await self.copy_text(result.text, tab_id)
        return result.text

    async def _tab_link(self, tab: Tab, options: ConversionOptions, bullet: bool = False) -> str:
        snapshot = await self.topology.capture(tab.id)
        record = await self.topology.extract(snapshot, options)
        title = format_title(record, options)
        url = record.base_uri or tab.url
        if options.is_org:
            link = f"[[{url}][{title}]]"
            marker = options.org_bullet_list_marker
        else:
            link = f"[{title}]({url})"
            marker = options.bullet_list_marker
        return f"{marker} {link}" if bullet else link

    async def copy_tab_link(self, tab_id: int, options: Optional[ConversionOptions] = None) -> str:
        """Copy a link to the tab in the configured syntax; returns the link."""
        options = options or await self.get_options()
        link = await self._tab_link(self.tabs.get(tab_id), options)
        await self.copy_text(link, tab_id)
        return link

    async def copy_all_tab_links(self, options: Optional[ConversionOptions] = None) -> str:
        """Copy a bulleted list of links to every open tab; unreadable tabs are skipped."""
        options = options or await self.get_options()
        links = []
        for tab in self.tabs.query():
            try:
                links.append(await self._tab_link(tab, options, bullet=True))
            except Exception as e:
                logger.warning(f"Skipping tab {tab.id} ({tab.url}): {e}")
        text = "\n".join(links)
        await self.copy_text(text)
        return text

    async def send_to_obsidian(
        self,
        tab_id: int,
        selection: bool = False,
        options: Optional[ConversionOptions] = None,
    ) -> str:
        """Copy the document and open Obsidian on a new note; returns the URI."""
        options = options or await self.get_options()
        options = options.model_copy(update={"download_images": False})
        result = await self.clip(tab_id, selection, options)
        await self.copy_text(result.text, tab_id)
        folder = format_obsidian_folder(result.record, options) if result.record is not None else ""
        uri = build_obsidian_uri(options.obsidian_vault, folder + result.title)
        self._open_uri(uri)
        return uri

    # Batches

    async def _run_batch(self, tabs: Sequence[Tab], action: TabAction, stats: ClipStats) -> ClipStats:
        started = time.monotonic()
        self._event(EventType.BATCH_STARTED, total=len(tabs))
        for index, tab in enumerate(tabs, start=1):
            try:
                await action(tab)
            except Exception as e:
                stats.items_failed += 1
                stats.failures.append((tab.url, str(e)))
                self._event(
                    EventType.BATCH_ITEM_FAILED, tab_id=tab.id, url=tab.url, error=str(e), current=index, total=len(tabs)
                )
                continue
            stats.items_converted += 1
        stats.duration_seconds += time.monotonic() - started
        self._event(EventType.BATCH_COMPLETED, total=len(tabs), message=f"{stats.items_converted} converted")
        return stats

    async def _download_action(self, tab: Tab) -> None:
        await self.download_tab(tab.id)

    async def download_all_tabs(self, action: Optional[TabAction] = None) -> ClipStats:
        """Download every open tab, one at a time."""
        tabs = self.tabs.query()
        stats = ClipStats(items_total=len(tabs))
        return await self._run_batch(tabs, action or self._download_action, stats)

    async def batch_convert(self, urls: str | Sequence[BatchItem], action: Optional[TabAction] = None) -> ClipStats:
        """
        Open each URL in a temporary tab, run ``action`` on it (download by
        default) and close the tab. Items run one after another; a failed
        item is recorded and the batch continues.
        """
        items = parse_url_list(urls) if isinstance(urls, str) else list(urls)
        stats = ClipStats(items_total=len(items))
        started = time.monotonic()
        self._event(EventType.BATCH_STARTED, total=len(items))
        run = action or self._download_action

        for index, item in enumerate(items, start=1):
            tab = None
            try:
                tab = await self.tabs.open(item.url)
                await run(tab)
            except Exception as e:
                logger.error(f"Batch item {item.url} failed: {e}")
                stats.items_failed += 1
                stats.failures.append((item.url, str(e)))
                self._event(EventType.BATCH_ITEM_FAILED, url=item.url, error=str(e), current=index, total=len(items))
                continue
            else:
                stats.items_converted += 1
            finally:
                if tab is not None:
                    self.tabs.close(tab.id)

        stats.duration_seconds = time.monotonic() - started
        self._event(EventType.BATCH_COMPLETED, total=len(items), message=f"{stats.items_converted} converted")
        return stats

    # Platform callbacks

    def handle_determining_filename(self, item: DownloadItem, suggest: Callable[[str], None]) -> None:
        filename = self.tracker.suggest_filename(item)
        if filename is not None:
            suggest(filename)

    def handle_download_changed(self, delta: DownloadDelta) -> None:
        if not delta.terminal:
            return
        record = self.tracker.complete(delta.id)
        if record is None:
            return
        self._release(record)
        if delta.state == DownloadState.COMPLETE:
            self._event(EventType.DOWNLOAD_COMPLETED, filename=delta.filename or record.filename)
        else:
            self._event(EventType.DOWNLOAD_INTERRUPTED, filename=record.filename, error=delta.error)

    def _release(self, record: TrackedDownload) -> None:
        """Free the object URL behind a finished download, in the context that owns it."""
        if record.owner is None:
            return
        if record.owner == self.context.name:
            self._object_urls.revoke(record.url, record.owner)
            return
        try:
            self.context.post(types.CLEANUP_OBJECT_URL, {"url": record.url}, target=record.owner)
        except ContextUnavailableError as e:
            logger.warning(f"Could not release {record.url} in {record.owner}: {e}")

    # Messages

    async def handle_clip_message(self, message: Message) -> None:
        """
        ``clip`` request from a UI context.

        Payload: ``tab_id``, optional ``selection`` and ``action``
        (``preview`` | ``download`` | ``copy``). The reply carries the text,
        or the error text in its place.
        """
        payload = message.payload
        action = payload.get("action", "preview")
        try:
            tab_id = int(payload["tab_id"])
            selection = bool(payload.get("selection"))
            if action == "download":
                outcome = await self.download_tab(tab_id, selection)
                reply = {"strategy": outcome.strategy, "download_id": outcome.download_id}
            elif action == "copy":
                reply = {"text": await self.copy_tab(tab_id, selection)}
            else:
                result = await self.clip(tab_id, selection)
                reply = {"text": result.text, "title": result.title}
        except Exception as e:
            self.context.send(message.reply(types.CLIP_ERROR, {"error": str(e)}))
            return
        self.context.send(message.reply(types.CLIP_RESULT, reply))
