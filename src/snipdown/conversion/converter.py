"""Document conversion: a DocumentRecord in, Markdown or Org text out."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..errors import ConversionError
from ..http.protocols import HttpClient
from ..models.document import DocumentRecord
from ..models.options import ConversionOptions, DownloadMode, OutputFormat
from ..templating import format_date, resolve_image_prefix, substitute
from .engine import strip_control_characters
from .images import ImageManifest, ObjectUrlFactory, predownload_images
from .markdown import build_markdown_engine
from .org import build_org_engine
from .rules import ConversionContext

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    """
    A converted document.

    Attributes:
        text: Markdown or Org text
        manifest: Image source to local filename (empty unless images are downloaded)
        title: Resolved output file name, without extension
        output_format: Syntax of ``text``
        record: The document that was converted
        image_failures: (source, reason) for images that could not be fetched
    """

    text: str
    manifest: dict[str, str] = field(default_factory=dict)
    title: str = ""
    output_format: OutputFormat = OutputFormat.MARKDOWN
    record: Optional[DocumentRecord] = None
    image_failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def file_extension(self) -> str:
        return ".org" if self.output_format == OutputFormat.ORG else ".md"

    def to_payload(self) -> dict[str, Any]:
        """Plain dict suitable for a cross-context message."""
        return {
            "text": self.text,
            "manifest": dict(self.manifest),
            "title": self.title,
            "output_format": self.output_format.value,
            "record": self.record.to_dict() if self.record is not None else None,
            "image_failures": [list(item) for item in self.image_failures],
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ConversionResult:
        return cls(
            text=payload["text"],
            manifest=dict(payload.get("manifest") or {}),
            title=payload.get("title", ""),
            output_format=OutputFormat(payload.get("output_format", OutputFormat.MARKDOWN.value)),
            record=DocumentRecord.from_dict(payload["record"]) if payload.get("record") else None,
            image_failures=[tuple(item) for item in payload.get("image_failures") or []],
        )


class DocumentConverter:
    """
    Converts document records to Markdown or Org.

    A fresh rule engine is built for every document, so no state leaks
    between conversions.

    Example:
        converter = DocumentConverter()
        result = converter.convert(record, ConversionOptions(include_template=True))
        print(result.text)
    """

    def __init__(self, options: Optional[ConversionOptions] = None, now: Optional[datetime] = None):
        """
        Args:
            options: Default options when ``convert`` is called without any
            now: Fixed timestamp for date tokens (tests); local time otherwise
        """
        self._options = options or ConversionOptions()
        self._now = now

    def _moment(self) -> datetime:
        return self._now or datetime.now().astimezone()

    def _markdown(self, ctx: ConversionContext, moment: datetime) -> str:
        options, record = ctx.options, ctx.record
        frontmatter = backmatter = ""
        if options.include_template:
            frontmatter = substitute(options.frontmatter, record, now=moment) + "\n"
            backmatter = "\n" + substitute(options.backmatter, record, now=moment)
        body = build_markdown_engine(ctx).convert(record.content)
        return frontmatter + body + backmatter

    def _org(self, ctx: ConversionContext, moment: datetime) -> str:
        options, record = ctx.options, ctx.record
        parts = []
        if options.include_template and options.org_preamble_template:
            parts.append(substitute(options.org_preamble_template, record, now=moment) + "\n\n")
        if options.org_export_settings.strip():
            parts.append(f"#+OPTIONS: {options.org_export_settings.strip()}\n\n")
        if options.org_include_properties:
            parts.append(
                ":PROPERTIES:\n"
                f":SOURCE: {record.base_uri}\n"
                f":AUTHOR: {record.byline}\n"
                f":CAPTURED: {format_date(moment, 'YYYY-MM-DD HH:mm')}\n"
                ":END:\n\n"
            )
        parts.append(build_org_engine(ctx).convert(record.content))
        return "".join(parts)

    def convert(self, record: DocumentRecord, options: Optional[ConversionOptions] = None) -> ConversionResult:
        """
        Convert ``record`` into the syntax chosen by ``options.output_format``.

        Raises:
            ConversionError: If the document as a whole cannot be converted
        """
        options = resolve_image_prefix(options or self._options, record)
        ctx = ConversionContext(options=options, record=record, manifest=ImageManifest())
        moment = self._moment()

        try:
            text = self._org(ctx, moment) if options.is_org else self._markdown(ctx, moment)
        except Exception as e:
            logger.error(f"Conversion failed for {record.base_uri or record.title!r}: {e}")
            raise ConversionError(f"Conversion failed: {e}") from e

        text = strip_control_characters(text)
        logger.debug(f"Converted {record.base_uri} to {len(text)} characters of {options.output_format.value}")
        return ConversionResult(
            text=text,
            manifest=ctx.manifest.to_dict(),
            title=options.title,
            output_format=options.output_format,
            record=record,
        )

    async def prepare_images(
        self,
        result: ConversionResult,
        options: Optional[ConversionOptions] = None,
        client: Optional[HttpClient] = None,
        make_object_url: Optional[ObjectUrlFactory] = None,
    ) -> ConversionResult:
        """
        Pre-download the images of a converted document, updating it in place.

        Images are only pre-fetched when they are downloaded through the
        platform download service and a client is available.
        """
        options = options or self._options
        if not (options.download_images and options.download_mode == DownloadMode.DOWNLOADS_API):
            return result
        if client is None or not result.manifest:
            return result

        prepared = await predownload_images(result.text, result.manifest, options, client, make_object_url)
        result.text = prepared.text
        result.manifest = prepared.manifest.to_dict()
        result.image_failures = prepared.failures
        return result
