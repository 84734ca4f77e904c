"""Image manifest and image pre-download."""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from ..http.protocols import HttpClient
from ..models.options import ConversionOptions
from ..naming import PLACEHOLDER_EXTENSION, encode_uri, extension_for_mime, mime_for_filename

logger = logging.getLogger(__name__)

ObjectUrlFactory = Callable[[bytes, str], str]


def disambiguate(filename: str, taken: set[str]) -> str:
    """
    Make ``filename`` unique within ``taken``.

    A counter goes in front of the extension and is incremented until the
    name is free: ``a.png`` -> ``a.1.png`` -> ``a.2.png``.
    """
    if filename not in taken:
        return filename
    stem, dot, extension = filename.rpartition(".")
    if not dot:
        stem, extension = filename, ""
    counter = 1
    while True:
        candidate = f"{stem}.{counter}.{extension}" if extension else f"{stem}.{counter}"
        if candidate not in taken:
            return candidate
        counter += 1


class ImageManifest(Mapping):
    """
    Source URL to destination filename, with unique filenames.

    Example:
        manifest = ImageManifest()
        manifest.add("https://a.com/x/pic.png", "Title/pic.png")  # 'Title/pic.png'
        manifest.add("https://b.com/pic.png", "Title/pic.png")    # 'Title/pic.1.png'
    """

    def __init__(self, entries: Optional[Mapping[str, str]] = None) -> None:
        self._entries: dict[str, str] = dict(entries or {})

    def add(self, src: str, filename: str) -> str:
        """Register ``src``; an already-known source keeps its filename."""
        existing = self._entries.get(src)
        if existing is not None:
            return existing
        unique = disambiguate(filename, set(self._entries.values()))
        self._entries[src] = unique
        return unique

    def __getitem__(self, src: str) -> str:
        return self._entries[src]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ImageManifest({self._entries!r})"

    def to_dict(self) -> dict[str, str]:
        return dict(self._entries)


@dataclass
class PreparedImages:
    """Outcome of ``predownload_images``."""

    text: str
    manifest: ImageManifest
    failures: list[tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class _Fetched:
    src: str
    filename: str
    final_name: str
    content: bytes
    content_type: str


def _basename(path: str) -> str:
    return path[path.rfind("/") + 1 :]


def _rename_references(text: str, old: str, new: str, options: ConversionOptions) -> str:
    if old == new:
        return text
    if options.image_style == "obsidian_nofolder":
        return text.replace(_basename(old), _basename(new))
    text = text.replace(encode_uri(old), encode_uri(new))
    return text.replace(old, new)


async def predownload_images(
    text: str,
    manifest: Mapping[str, str],
    options: ConversionOptions,
    client: HttpClient,
    make_object_url: Optional[ObjectUrlFactory] = None,
) -> PreparedImages:
    """
    Fetch every manifest image ahead of delivery.

    Images are fetched concurrently. A placeholder extension is replaced
    with one derived from the response Content-Type, in both the manifest
    and ``text``. With the ``base64`` image style the image is inlined as
    a data URI instead. When ``make_object_url`` is given, fetched bytes
    are handed to it and the resulting URL replaces the source URL in the
    returned manifest.

    A failed image is logged and left in the manifest under its original
    source; it never fails the document.
    """

    async def fetch(src: str, filename: str) -> _Fetched:
        response = await client.get(src)
        if response.status_code >= 400:
            raise ValueError(f"HTTP {response.status_code}")
        content_type = response.media_type or mime_for_filename(filename)
        final_name = filename
        if filename.endswith(PLACEHOLDER_EXTENSION):
            final_name = filename[: -len(PLACEHOLDER_EXTENSION)] + "." + extension_for_mime(content_type)
        return _Fetched(src, filename, final_name, response.content, content_type)

    entries = list(manifest.items())
    results = await asyncio.gather(*(fetch(src, name) for src, name in entries), return_exceptions=True)

    prepared = ImageManifest()
    failures: list[tuple[str, str]] = []
    for (src, filename), result in zip(entries, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.warning(f"Image fetch failed for {src}: {result}")
            failures.append((src, str(result)))
            prepared.add(src, filename)
            continue

        if options.image_style == "base64":
            encoded = base64.b64encode(result.content).decode("ascii")
            text = text.replace(src, f"data:{result.content_type};base64,{encoded}")
            continue

        text = _rename_references(text, filename, result.final_name, options)
        key = make_object_url(result.content, result.content_type) if make_object_url else src
        prepared.add(key, result.final_name)

    return PreparedImages(text=text, manifest=prepared, failures=failures)
