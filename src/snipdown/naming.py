"""File name, attribute and URI helpers."""

from __future__ import annotations

import mimetypes
import re
from typing import Optional
from urllib.parse import quote, urlsplit, urlunsplit

from .models.options import ConversionOptions

ILLEGAL_FILENAME_CHARS = re.compile(r'[/?<>\\:*|"]')
NBSP = "\u00a0"

# Marks a filename whose real extension is only known after the fetch
PLACEHOLDER_EXTENSION = ".unknown"

_NEWLINE_RUNS = re.compile(r"(\n+\s*)+")
_DATA_URI = re.compile(r"^data:[\w.+-]+/([\w.+-]+)[;,]", re.IGNORECASE)

# Characters encodeURI leaves untouched
_URI_SAFE = ";,/?:@&=+$-_.!~*'()#"


def generate_valid_filename(title: Optional[str], disallowed_chars: Optional[str] = None) -> Optional[str]:
    """
    Strip characters that are illegal in file names.

    Falsy input is returned unchanged. Non-breaking spaces become regular
    spaces, and every character of ``disallowed_chars`` is removed as well.
    """
    if not title:
        return title

    name = ILLEGAL_FILENAME_CHARS.sub("", str(title)).replace(NBSP, " ")
    if disallowed_chars:
        for char in disallowed_chars:
            name = name.replace(char, "")
    return name


def clean_attribute(value: Optional[str]) -> str:
    """Collapse whitespace runs containing newlines into one newline."""
    if not value:
        return ""
    return _NEWLINE_RUNS.sub("\n", value)


def _origin(parts) -> str:
    return f"{parts.scheme}://{parts.netloc}"


def validate_uri(href: str, base_uri: str) -> str:
    """
    Resolve ``href`` against ``base_uri``.

    Absolute URIs are returned as-is. Root-relative references resolve
    against the base origin; anything else is appended to the base path.

    Example:
        >>> validate_uri("/x", "https://a.com/b/c")
        'https://a.com/x'
        >>> validate_uri("x", "https://a.com/b/c")
        'https://a.com/b/c/x'
    """
    href = href or ""
    if urlsplit(href).scheme:
        return href

    base = urlsplit(base_uri or "")
    if href.startswith("//"):
        return f"{base.scheme}:{href}" if base.scheme else href
    if href.startswith("/"):
        return _origin(base) + href

    directory = urlunsplit((base.scheme, base.netloc, base.path, "", ""))
    separator = "" if directory.endswith("/") else "/"
    return directory + separator + href


def encode_uri(path: str) -> str:
    """Percent-encode a path the way a browser's encodeURI does."""
    return quote(path, safe=_URI_SAFE)


def _image_folder(options: ConversionOptions, prepend_title_path: bool) -> str:
    prefix = options.image_prefix or ""
    if not prepend_title_path:
        return prefix

    title = options.title or ""
    if "/" in title:
        return title[: title.rfind("/") + 1] + prefix
    return title + ("" if prefix.startswith("/") else "/") + prefix


def get_image_filename(src: str, options: ConversionOptions, prepend_title_path: bool = True) -> str:
    """
    Derive the local file name for an image source.

    The name comes from the last path segment (query excluded). Data URIs
    become ``image.<subtype>``. A name without an extension gets
    ``PLACEHOLDER_EXTENSION`` until the fetched Content-Type is known.
    The result is placed under the configured image prefix.
    """
    data_uri = _DATA_URI.match(src)
    if data_uri:
        filename = f"image.{data_uri.group(1).lower()}"
    else:
        path = src.split("#", 1)[0].split("?", 1)[0]
        filename = path[path.rfind("/") + 1 :]

    if filename.rfind(".") <= 0:
        filename += PLACEHOLDER_EXTENSION

    filename = generate_valid_filename(filename, options.disallowed_chars) or ""
    return _image_folder(options, prepend_title_path) + filename


def extension_for_mime(content_type: str) -> str:
    """Extension (without dot) for a Content-Type header value."""
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    extension = mimetypes.guess_extension(mime) if mime else None
    if extension:
        return extension.lstrip(".")
    if "/" in mime:
        return mime.rsplit("/", 1)[1].split("+", 1)[0]
    return "bin"


def mime_for_filename(filename: str) -> str:
    """MIME type for a file name, by extension."""
    lowered = filename.lower()
    if lowered.endswith(".md"):
        return "text/markdown"
    if lowered.endswith(".org"):
        return "text/org"
    mime, _ = mimetypes.guess_type(filename)
    return mime or "application/octet-stream"
