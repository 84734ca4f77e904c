"""Coordinating context, worker context and the platform services they drive."""

from .batch import BatchItem, build_obsidian_uri, normalize_url, parse_url_list
from .clipboard import ClipboardBackend, CommandClipboard, Osc52Clipboard, copy_to_clipboard, default_backends
from .coordinator import Coordinator
from .delivery import (
    ContentLinkDownload,
    DeliveryChain,
    DeliveryOutcome,
    DeliveryRequest,
    ObjectUrlDownload,
    WorkerDownload,
    build_delivery_chain,
)
from .lifecycle import ClipRequest
from .platform import DownloadDelta, DownloadItem, DownloadState, LocalDownloadService, ObjectUrlRegistry
from .processor import ClipProcessor
from .settings import MemorySettingsStore, SettingsStore, YamlSettingsStore
from .tabs import PageSnapshot, StaticPageScript, Tab, TabRegistry
from .topology import InlineTopology, Topology, WorkerTopology
from .tracking import DownloadKind, DownloadTracker, TrackedDownload
from .worker import WorkerService

__all__ = [
    # Coordinator
    "Coordinator",
    "ClipRequest",
    "ClipProcessor",
    "WorkerService",
    # Topologies
    "Topology",
    "InlineTopology",
    "WorkerTopology",
    # Tabs
    "PageSnapshot",
    "StaticPageScript",
    "Tab",
    "TabRegistry",
    # Delivery
    "DeliveryChain",
    "DeliveryOutcome",
    "DeliveryRequest",
    "ObjectUrlDownload",
    "WorkerDownload",
    "ContentLinkDownload",
    "build_delivery_chain",
    "DownloadKind",
    "DownloadTracker",
    "TrackedDownload",
    # Platform
    "DownloadDelta",
    "DownloadItem",
    "DownloadState",
    "LocalDownloadService",
    "ObjectUrlRegistry",
    # Clipboard
    "ClipboardBackend",
    "CommandClipboard",
    "Osc52Clipboard",
    "copy_to_clipboard",
    "default_backends",
    # Settings
    "SettingsStore",
    "MemorySettingsStore",
    "YamlSettingsStore",
    # Batch
    "BatchItem",
    "build_obsidian_uri",
    "normalize_url",
    "parse_url_list",
]
