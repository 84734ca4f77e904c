"""
snipdown - Clip web pages to Markdown or Org.

Usage:
    from snipdown import ConversionOptions, Snipdown, SnipdownConfig

    config = SnipdownConfig(options=ConversionOptions(download_images=True))

    async with Snipdown(config) as app:
        tab = await app.tabs.open("https://example.com/article")
        await app.coordinator.download_tab(tab.id)
"""

__version__ = "1.0.0"

from .conversion import ArticleExtractor, ConversionResult, DocumentConverter
from .errors import (
    ClipboardError,
    ContextUnavailableError,
    ConversionError,
    CrossContextError,
    DeliveryError,
    InputError,
    RemoteError,
    RequestTimeoutError,
    SnipdownError,
)
from .models.config import NetworkConfig, OutputConfig, PerformanceConfig, SnipdownConfig, TopologyName
from .models.document import DocumentRecord
from .models.events import ClipEvent, ClipState, ClipStats, EventType
from .models.options import ConversionOptions, DownloadMode, OutputFormat, TableFormatting
from .orchestration import Coordinator
from .runtime import Snipdown

__all__ = [
    "__version__",
    # Core
    "Snipdown",
    "Coordinator",
    "ArticleExtractor",
    "DocumentConverter",
    "ConversionResult",
    "DocumentRecord",
    # Config
    "SnipdownConfig",
    "ConversionOptions",
    "OutputFormat",
    "DownloadMode",
    "TableFormatting",
    "TopologyName",
    "OutputConfig",
    "NetworkConfig",
    "PerformanceConfig",
    # Events
    "ClipEvent",
    "ClipState",
    "ClipStats",
    "EventType",
    # Errors
    "SnipdownError",
    "InputError",
    "ConversionError",
    "CrossContextError",
    "RequestTimeoutError",
    "ContextUnavailableError",
    "RemoteError",
    "DeliveryError",
    "ClipboardError",
]
