"""Tests for the download service, object URLs and the delivery chain."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from snipdown.errors import DeliveryError
from snipdown.messaging import Capabilities, MessageBus
from snipdown.models.config import TopologyName
from snipdown.models.events import EventType
from snipdown.models.options import DownloadMode
from snipdown.orchestration.delivery import (
    ContentLinkDownload,
    DeliveryChain,
    DeliveryRequest,
    ObjectUrlDownload,
    WorkerDownload,
    build_delivery_chain,
)
from snipdown.orchestration.platform import (
    DownloadState,
    LocalDownloadService,
    ObjectUrlRegistry,
    safe_relative_path,
    uniquify,
)
from snipdown.orchestration.tabs import TabRegistry
from snipdown.orchestration.tracking import DownloadTracker
from snipdown.orchestration.worker import WorkerService


class TestObjectUrlRegistry:
    """Tests for ObjectUrlRegistry."""

    def test_only_owner_revokes(self):
        """Test that a foreign context cannot revoke an object URL."""
        registry = ObjectUrlRegistry()
        url = registry.create(b"x", "text/plain", "worker")
        assert url.startswith("blob:snipdown/")
        assert not registry.revoke(url, "coordinator")
        assert url in registry
        assert registry.revoke(url, "worker")
        assert url not in registry

    def test_resolve(self):
        """Test that data and type are returned for a live URL."""
        registry = ObjectUrlRegistry()
        url = registry.create(b"x", "text/plain", "coordinator")
        assert registry.resolve(url) == (b"x", "text/plain")
        assert registry.owner_of(url) == "coordinator"


class TestPaths:
    """Tests for download path helpers."""

    def test_unsafe_parts_dropped(self):
        """Test that absolute and parent parts are removed."""
        assert str(safe_relative_path("/../a/./b.md")) == "a/b.md"

    def test_empty_name_rejected(self):
        """Test that a name with no usable part is refused."""
        with pytest.raises(ValueError):
            safe_relative_path("../")

    def test_uniquify(self, tmp_path):
        """Test that existing files get a numbered sibling."""
        (tmp_path / "a.md").write_text("x")
        assert uniquify(tmp_path / "a.md").name == "a (1).md"


class TestLocalDownloadService:
    """Tests for LocalDownloadService."""

    @pytest.mark.asyncio
    async def test_object_url_written(self, tmp_path):
        """Test that a blob download lands under its relative name."""
        registry = ObjectUrlRegistry()
        service = LocalDownloadService(tmp_path, registry)
        deltas = []
        service.on_changed(deltas.append)

        url = registry.create(b"# Title", "text/markdown", "coordinator")
        download_id = await service.download(url, "Clips/Title.md")
        await service.wait_idle()

        assert (tmp_path / "Clips" / "Title.md").read_bytes() == b"# Title"
        assert deltas[-1].id == download_id
        assert deltas[-1].state == DownloadState.COMPLETE

    @pytest.mark.asyncio
    async def test_filename_hook(self, tmp_path):
        """Test that a filename hook can rename the download."""
        service = LocalDownloadService(tmp_path, ObjectUrlRegistry())
        service.on_determining_filename(lambda item, suggest: suggest("Renamed.txt"))
        await service.download("data:text/plain,hello", "original.txt")
        await service.wait_idle()
        assert (tmp_path / "Renamed.txt").read_text() == "hello"

    @pytest.mark.asyncio
    async def test_revoked_url_interrupts(self, tmp_path):
        """Test that an unknown object URL ends interrupted."""
        service = LocalDownloadService(tmp_path, ObjectUrlRegistry())
        deltas = []
        service.on_changed(deltas.append)
        await service.download("blob:snipdown/gone", "x.md")
        await service.wait_idle()
        assert deltas[-1].state == DownloadState.INTERRUPTED
        assert deltas[-1].terminal

    @pytest.mark.asyncio
    async def test_unsupported_scheme_refused(self, tmp_path):
        """Test that only blob, data and http(s) URLs are accepted."""
        service = LocalDownloadService(tmp_path, ObjectUrlRegistry())
        with pytest.raises(ValueError):
            await service.download("ftp://a.com/x", "x")

    @pytest.mark.asyncio
    async def test_remote_download(self, tmp_path):
        """Test that http URLs are fetched through the client."""
        client = MagicMock()
        client.get = AsyncMock(return_value=MagicMock(ok=True, content=b"PNG"))
        service = LocalDownloadService(tmp_path, ObjectUrlRegistry(), client)
        await service.download("https://a.com/x.png", "T/x.png")
        await service.wait_idle()
        assert (tmp_path / "T" / "x.png").read_bytes() == b"PNG"


def failing_strategy(name: str) -> MagicMock:
    strategy = MagicMock()
    strategy.name = name
    strategy.deliver = AsyncMock(side_effect=RuntimeError(f"{name} broke"))
    return strategy


class TestDeliveryChain:
    """Tests for DeliveryChain and its strategies."""

    @pytest.mark.asyncio
    async def test_falls_back_to_content_link(self):
        """Test that a failed strategy hands over to the next one."""
        saved = AsyncMock()
        tabs = TabRegistry(link_handler=saved)
        tab = tabs.add("https://a.com", "<p>x</p>")
        events = []
        chain = DeliveryChain([failing_strategy("object_url"), ContentLinkDownload(tabs)], events.append)

        outcome = await chain.deliver(DeliveryRequest("# Hi", "Folder/Title.md", tab_id=tab.id))

        assert outcome.strategy == "content_link"
        filename, href = saved.await_args.args
        assert filename == "Folder_Title.md"
        assert href.startswith("data:text/markdown;charset=utf-8;base64,")
        assert [event.type for event in events] == [EventType.DELIVERY_FALLBACK, EventType.DOWNLOAD_STARTED]

    @pytest.mark.asyncio
    async def test_every_strategy_failing(self):
        """Test that DeliveryError lists every failure."""
        chain = DeliveryChain([failing_strategy("a"), failing_strategy("b")])
        with pytest.raises(DeliveryError) as excinfo:
            await chain.deliver(DeliveryRequest("x", "Title.md"))
        assert [name for name, _ in excinfo.value.failures] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_object_url_download_tracked(self, tmp_path):
        """Test that the object URL download is tracked under its id."""
        registry = ObjectUrlRegistry()
        service = LocalDownloadService(tmp_path, registry)
        tracker = DownloadTracker()
        strategy = ObjectUrlDownload(service, tracker, registry, "coordinator")

        download_id = await strategy.deliver(DeliveryRequest("x", "Title.md"))

        record = tracker.lookup(download_id=download_id)
        assert record.filename == "Title.md"
        assert record.owner == "coordinator"
        assert registry.owner_of(record.url) == "coordinator"
        await service.wait_idle()

    @pytest.mark.asyncio
    async def test_refused_object_url_revoked(self):
        """Test that a refused download releases its object URL."""
        registry = ObjectUrlRegistry()
        downloads = MagicMock()
        downloads.download = AsyncMock(side_effect=ValueError("refused"))
        tracker = DownloadTracker()
        strategy = ObjectUrlDownload(downloads, tracker, registry, "coordinator")

        with pytest.raises(ValueError):
            await strategy.deliver(DeliveryRequest("x", "Title.md"))
        assert len(registry) == 0
        assert len(tracker) == 0

    @pytest.mark.asyncio
    async def test_worker_mints_object_url(self, tmp_path):
        """Test that the worker strategy downloads a URL owned by the worker."""
        bus = MessageBus()
        coordinator = bus.create_context("coordinator")
        worker = bus.create_context("worker")
        registry = ObjectUrlRegistry()
        WorkerService(worker, MagicMock(), registry)
        service = LocalDownloadService(tmp_path, registry)
        tracker = DownloadTracker()

        download_id = await WorkerDownload(service, tracker, coordinator).deliver(DeliveryRequest("body", "T.md"))
        await service.wait_idle()

        record = tracker.lookup(download_id=download_id)
        assert record.owner == "worker"
        assert (tmp_path / "T.md").read_text() == "body"

    def test_chain_for_worker_topology(self):
        """Test strategy order without DOM access."""
        bus = MessageBus()
        capabilities = Capabilities.detect(topology=TopologyName.WORKER, download_service=object())
        chain = build_delivery_chain(
            capabilities,
            DownloadMode.DOWNLOADS_API,
            tabs=TabRegistry(),
            context=bus.create_context("coordinator"),
            tracker=DownloadTracker(),
            object_urls=ObjectUrlRegistry(),
            downloads=MagicMock(),
        )
        assert [strategy.name for strategy in chain.strategies] == ["worker", "content_link"]

    def test_chain_for_content_links(self):
        """Test that content-link mode only uses the page link."""
        bus = MessageBus()
        chain = build_delivery_chain(
            Capabilities.detect(download_service=object()),
            DownloadMode.CONTENT_LINK,
            tabs=TabRegistry(),
            context=bus.create_context("coordinator"),
            tracker=DownloadTracker(),
            object_urls=ObjectUrlRegistry(),
            downloads=MagicMock(),
        )
        assert [strategy.name for strategy in chain.strategies] == ["content_link"]
