"""Wiring of contexts, services and the coordinator."""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import Any, Callable, Optional, Sequence

from .concurrency import ConcurrencyManager
from .conversion import ArticleExtractor, DocumentConverter
from .errors import ContextUnavailableError
from .http import AsyncHttpClient
from .messaging import Capabilities, ExecutionContext, MessageBus
from .messaging import message_types as types
from .models.config import SnipdownConfig, TopologyName
from .models.events import EventCallback
from .orchestration.clipboard import ClipboardBackend, default_backends
from .orchestration.coordinator import Coordinator
from .orchestration.platform import LocalDownloadService, ObjectUrlRegistry, open_uri
from .orchestration.processor import ClipProcessor
from .orchestration.settings import MemorySettingsStore, SettingsStore, YamlSettingsStore
from .orchestration.tabs import TabRegistry
from .orchestration.topology import InlineTopology, Topology, WorkerTopology
from .orchestration.tracking import DownloadTracker
from .orchestration.worker import WorkerService

logger = logging.getLogger(__name__)


class Snipdown:
    """
    Assembles a running clipper.

    The coordinating context always exists. With the worker topology a
    second context is created that does all parsing and conversion and
    mints the object URLs the coordinator cannot.

    Example:
        config = SnipdownConfig(options=ConversionOptions(output_format="org"))

        async with Snipdown(config) as app:
            tab = await app.tabs.open("https://example.com/article")
            await app.coordinator.download_tab(tab.id)
    """

    def __init__(
        self,
        config: Optional[SnipdownConfig] = None,
        emit: Optional[EventCallback] = None,
        clipboard: Optional[Sequence[ClipboardBackend]] = None,
        uri_opener: Callable[[str], Any] = open_uri,
    ):
        """
        Args:
            config: Application configuration, defaults when omitted
            emit: Callback receiving every ClipEvent
            clipboard: Clipboard backends; detected from the system when omitted
            uri_opener: Opens ``obsidian://`` and similar URIs
        """
        self.config = config or SnipdownConfig()
        self._emit = emit
        self._clipboard = list(clipboard) if clipboard is not None else None
        self._uri_opener = uri_opener

        # Components (initialized in __aenter__)
        self.bus = MessageBus()
        self.object_urls = ObjectUrlRegistry()
        self._http_client: AsyncHttpClient | None = None
        self._cpu: ConcurrencyManager | None = None
        self._contexts: list[ExecutionContext] = []
        self.downloads: LocalDownloadService | None = None
        self.tabs: TabRegistry | None = None
        self.settings: SettingsStore | None = None
        self.capabilities: Capabilities | None = None
        self._coordinator: Coordinator | None = None

    @property
    def coordinator(self) -> Coordinator:
        if self._coordinator is None:
            raise RuntimeError("Snipdown is not running; use 'async with Snipdown(...)'")
        return self._coordinator

    def _processor(self, owner: str) -> ClipProcessor:
        return ClipProcessor(
            owner,
            extractor=ArticleExtractor(),
            converter=DocumentConverter(),
            cpu=self._cpu,
            client=self._http_client,
            object_urls=self.object_urls,
        )

    def _topology(self, name: TopologyName, context: ExecutionContext) -> Topology:
        if self.tabs is None:
            raise ContextUnavailableError("Tabs are not available before the runtime is started")
        if name == TopologyName.WORKER:
            worker = self.bus.create_context(types.WORKER)
            self._contexts.append(worker)
            WorkerService(worker, self._processor(worker.name), self.object_urls)
            return WorkerTopology(self.tabs, context, worker=worker.name)
        return InlineTopology(self.tabs, self._processor(context.name))

    async def __aenter__(self) -> Snipdown:
        """Enter async context and initialize components."""
        network = self.config.network
        self._http_client = AsyncHttpClient(
            max_retries=network.max_retries,
            user_agent=network.user_agent,
            proxy=network.proxy,
            default_timeout=network.timeout,
        )
        await self._http_client.__aenter__()
        self._cpu = ConcurrencyManager(max_workers=self.config.performance.cpu_workers)

        context = self.bus.create_context(types.COORDINATOR)
        self._contexts.append(context)

        self.downloads = LocalDownloadService(self.config.output.directory, self.object_urls, self._http_client)
        self.tabs = TabRegistry(
            self._http_client,
            selection_selector=self.config.selection_selector,
            link_handler=self.downloads.save_link,
        )

        clipboard = self._clipboard if self._clipboard is not None else default_backends()
        self.capabilities = Capabilities.detect(
            topology=self.config.topology,
            download_service=self.downloads,
            clipboard_backends=clipboard,
        )
        topology_name = self.config.topology
        if topology_name == TopologyName.AUTO:
            topology_name = self.capabilities.select_topology()
        topology = self._topology(topology_name, context)
        logger.info(f"Running with the {topology.name} topology")

        if self.config.settings_file is not None:
            self.settings = YamlSettingsStore(self.config.settings_file)
        else:
            self.settings = MemorySettingsStore()

        self._coordinator = Coordinator(
            context,
            self.tabs,
            topology,
            self.capabilities,
            self.object_urls,
            tracker=DownloadTracker(),
            downloads=self.downloads,
            settings=self.settings,
            clipboard=clipboard,
            defaults=self.config.options,
            emit=self._emit,
            uri_opener=self._uri_opener,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Wait for pending downloads and handlers, then release resources."""
        if self.downloads is not None:
            await self.downloads.wait_idle()
        # Let queued cleanup messages reach their contexts
        await asyncio.sleep(0)

        for context in self._contexts:
            await context.drain()
        for context in reversed(self._contexts):
            context.close()
        self._contexts.clear()
        self._coordinator = None

        if self._http_client:
            await self._http_client.__aexit__(exc_type, exc_val, exc_tb)
            self._http_client = None

        if self._cpu:
            self._cpu.shutdown()
            self._cpu = None
