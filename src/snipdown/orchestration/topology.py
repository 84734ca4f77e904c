"""
Where pages are captured and converted.

Callers use the ``Topology`` interface and never learn which one is
active:

- ``InlineTopology``: the coordinator has DOM access and converts in place.
- ``WorkerTopology``: conversion happens in a separate worker context,
  reached through correlated requests.

Capture always runs in the page's content script.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from ..conversion.converter import ConversionResult
from ..errors import InputError
from ..messaging import message_types as types
from ..messaging.bus import ExecutionContext, Message
from ..messaging.correlation import REQUEST_TIMEOUT, correlated_request
from ..models.document import DocumentRecord
from ..models.options import ConversionOptions
from .processor import ClipProcessor
from .tabs import PageSnapshot, TabRegistry

logger = logging.getLogger(__name__)


class Topology(Protocol):
    name: str

    async def capture(self, tab_id: int) -> PageSnapshot:
        """Serialized DOM and selection of a tab."""
        ...

    async def extract(
        self, snapshot: PageSnapshot, options: ConversionOptions, selection: bool = False
    ) -> DocumentRecord:
        ...

    async def convert(
        self, snapshot: PageSnapshot, options: ConversionOptions, selection: bool = False
    ) -> ConversionResult:
        ...


class _TabCapture:
    def __init__(self, tabs: TabRegistry) -> None:
        self._tabs = tabs

    async def capture(self, tab_id: int) -> PageSnapshot:
        """
        Raises:
            InputError: If the tab is unknown or returned no DOM
            ContextUnavailableError: If the tab went away
        """
        self._tabs.get(tab_id)
        snapshot = await self._tabs.execute(tab_id, lambda script: script.get_selection_and_dom())
        if snapshot is None or not snapshot.dom:
            raise InputError(f"Tab {tab_id} returned no content")
        return snapshot


class InlineTopology(_TabCapture):
    """Capture and convert within the coordinating context."""

    name = "inline"

    def __init__(self, tabs: TabRegistry, processor: ClipProcessor) -> None:
        super().__init__(tabs)
        self._processor = processor

    async def extract(
        self, snapshot: PageSnapshot, options: ConversionOptions, selection: bool = False
    ) -> DocumentRecord:
        return await self._processor.extract(snapshot, options, selection)

    async def convert(
        self, snapshot: PageSnapshot, options: ConversionOptions, selection: bool = False
    ) -> ConversionResult:
        return await self._processor.process(snapshot, options, selection)


class WorkerTopology(_TabCapture):
    """Capture in the page, convert in the worker context."""

    name = "worker"

    def __init__(
        self,
        tabs: TabRegistry,
        context: ExecutionContext,
        worker: str = types.WORKER,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        super().__init__(tabs)
        self._context = context
        self._worker = worker
        self._timeout = timeout

    def _request(
        self, message_type: str, snapshot: PageSnapshot, options: ConversionOptions, selection: bool
    ) -> Message:
        payload: dict[str, Any] = {
            "snapshot": snapshot.to_payload(),
            "options": options.model_dump(mode="json"),
            "selection": selection,
        }
        return Message(type=message_type, payload=payload, target=self._worker)

    async def extract(
        self, snapshot: PageSnapshot, options: ConversionOptions, selection: bool = False
    ) -> DocumentRecord:
        reply = await correlated_request(
            self._context,
            self._request(types.EXTRACT_CONTENT, snapshot, options, selection),
            types.ARTICLE_RESULT,
            error_type=types.PROCESS_ERROR,
            timeout=self._timeout,
        )
        return DocumentRecord.from_dict(reply.payload["record"])

    async def convert(
        self, snapshot: PageSnapshot, options: ConversionOptions, selection: bool = False
    ) -> ConversionResult:
        reply = await correlated_request(
            self._context,
            self._request(types.PROCESS_CONTENT, snapshot, options, selection),
            types.MARKDOWN_RESULT,
            error_type=types.PROCESS_ERROR,
            timeout=self._timeout,
        )
        return ConversionResult.from_payload(reply.payload["result"])
