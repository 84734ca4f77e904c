"""Data models for snipdown."""

from .config import NetworkConfig, OutputConfig, PerformanceConfig, SnipdownConfig, TopologyName
from .document import DocumentRecord, MathInfo
from .events import ClipEvent, ClipState, ClipStats, EventCallback, EventType
from .options import ConversionOptions, DownloadMode, OutputFormat, TableFormatting

__all__ = [
    "ClipEvent",
    "ClipState",
    "ClipStats",
    "ConversionOptions",
    "DocumentRecord",
    "DownloadMode",
    "EventCallback",
    "EventType",
    "MathInfo",
    "NetworkConfig",
    "OutputConfig",
    "OutputFormat",
    "PerformanceConfig",
    "SnipdownConfig",
    "TableFormatting",
    "TopologyName",
]
