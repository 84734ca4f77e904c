"""URL lists for batch conversion, and Obsidian hand-off URIs."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlsplit

logger = logging.getLogger(__name__)

_MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_SCHEME = re.compile(r"^https?://", re.IGNORECASE)

# Left unescaped by encodeURIComponent
_COMPONENT_SAFE = "!*'()"


@dataclass(frozen=True)
class BatchItem:
    url: str
    title: Optional[str] = None


def normalize_url(url: str) -> Optional[str]:
    """Absolute http(s) URL, ``https://`` added when missing; None if invalid."""
    url = url.strip()
    if not _SCHEME.match(url):
        url = "https://" + url
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.hostname or any(c.isspace() for c in url):
        return None
    return parts.geturl()


def parse_url_list(text: str) -> list[BatchItem]:
    """
    One item per line: a Markdown link ``[title](url)`` or a bare URL.

    Blank and invalid lines are skipped.
    """
    items = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        title = None
        match = _MARKDOWN_LINK.search(line)
        if match:
            title, line = match.group(1).strip(), match.group(2).strip()
        url = normalize_url(line)
        if url is None:
            logger.warning(f"Skipping invalid URL: {line}")
            continue
        items.append(BatchItem(url=url, title=title))
    return items


def build_obsidian_uri(vault: str, filepath: str) -> str:
    """Advanced-URI link that creates a note from the clipboard."""
    return (
        f"obsidian://adv-uri?vault={quote(vault, safe=_COMPONENT_SAFE)}"
        f"&filepath={quote(filepath, safe=_COMPONENT_SAFE)}&clipboard=true&mode=new"
    )
