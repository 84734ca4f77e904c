"""What the current execution context can do, resolved once at startup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ..models.config import TopologyName
from ..models.options import ConversionOptions, DownloadMode


@dataclass(frozen=True)
class Capabilities:
    """
    Capability descriptor for the coordinating context.

    Attributes:
        dom_access: HTML can be parsed and converted in this context
        downloads_api: A platform download service is available
        worker_context: A separate DOM-capable worker context exists
        clipboard: At least one clipboard backend is available
        object_urls: This context can mint object URLs for in-memory data
    """

    dom_access: bool = True
    downloads_api: bool = True
    worker_context: bool = False
    clipboard: bool = False
    object_urls: bool = True

    @classmethod
    def detect(
        cls,
        *,
        topology: TopologyName = TopologyName.AUTO,
        download_service: Optional[Any] = None,
        clipboard_backends: Sequence[Any] = (),
    ) -> Capabilities:
        """
        Build the descriptor from the collaborators wired at startup.

        A worker topology models a coordinator without DOM access that
        cannot create object URLs itself.
        """
        worker = topology == TopologyName.WORKER
        return cls(
            dom_access=not worker,
            downloads_api=download_service is not None,
            worker_context=worker,
            clipboard=bool(clipboard_backends),
            object_urls=not worker,
        )

    def select_topology(self) -> TopologyName:
        if self.dom_access:
            return TopologyName.INLINE
        return TopologyName.WORKER

    def effective_options(self, options: ConversionOptions) -> ConversionOptions:
        """Force content-link delivery when there is no download service."""
        if self.downloads_api or options.download_mode == DownloadMode.CONTENT_LINK:
            return options
        return options.model_copy(update={"download_mode": DownloadMode.CONTENT_LINK})
