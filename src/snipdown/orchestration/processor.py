"""Extraction and conversion of a captured page, in whichever context does it."""

from __future__ import annotations

import logging
from typing import Optional

from ..concurrency.manager import ConcurrencyManager
from ..conversion.converter import ConversionResult, DocumentConverter
from ..conversion.extractor import ArticleExtractor
from ..errors import ContextUnavailableError
from ..http.protocols import HttpClient
from ..models.document import DocumentRecord
from ..models.options import ConversionOptions
from .platform import ObjectUrlRegistry
from .tabs import PageSnapshot

logger = logging.getLogger(__name__)


class ClipProcessor:
    """
    Turns a PageSnapshot into a DocumentRecord and a ConversionResult.

    Parsing and conversion run in the CPU pool; image pre-download runs on
    the event loop. Object URLs for pre-downloaded images are owned by
    ``owner``, the context this processor lives in.
    """

    def __init__(
        self,
        owner: str,
        extractor: Optional[ArticleExtractor] = None,
        converter: Optional[DocumentConverter] = None,
        cpu: Optional[ConcurrencyManager] = None,
        client: Optional[HttpClient] = None,
        object_urls: Optional[ObjectUrlRegistry] = None,
    ) -> None:
        self.owner = owner
        self._extractor = extractor or ArticleExtractor()
        self._converter = converter or DocumentConverter()
        self._cpu = cpu or ConcurrencyManager()
        self._client = client
        self._object_urls = object_urls

    def _create_object_url(self, data: bytes, mime_type: str) -> str:
        if self._object_urls is None:
            raise ContextUnavailableError(f"Context {self.owner} cannot create object URLs")
        return self._object_urls.create(data, mime_type, self.owner)

    async def extract(
        self, snapshot: PageSnapshot, options: ConversionOptions, use_selection: bool = False
    ) -> DocumentRecord:
        """
        Extract the article from the whole page; with ``use_selection`` the
        record's content is then replaced by the selected markup, keeping
        the page's title, metadata and base URI.
        """
        record = await self._cpu.run_cpu_bound(
            self._extractor.extract, snapshot.dom, options, url=snapshot.url or None
        )
        selected = snapshot.selected_content(use_selection)
        if selected is not None:
            record = record.with_content(selected)
        return record

    async def process(
        self, snapshot: PageSnapshot, options: ConversionOptions, use_selection: bool = False
    ) -> ConversionResult:
        record = await self.extract(snapshot, options, use_selection)
        result = await self._cpu.run_cpu_bound(self._converter.convert, record, options)

        make_object_url = self._create_object_url if self._object_urls is not None else None
        result = await self._converter.prepare_images(result, options, self._client, make_object_url)
        logger.debug(
            f"[{self.owner}] processed {snapshot.url}: {len(result.text)} chars, {len(result.manifest)} images"
        )
        return result
