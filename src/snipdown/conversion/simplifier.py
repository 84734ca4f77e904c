"""Structural simplification backed by readability-lxml."""

from __future__ import annotations

import logging
from typing import Optional

from bs4 import BeautifulSoup
from readability import Document

from .protocols import SimplifiedArticle

logger = logging.getLogger(__name__)

_BYLINE_META = ("author", "article:author", "dc.creator", "twitter:creator")
_EXCERPT_META = ("description", "og:description", "twitter:description")


def _meta_value(soup: BeautifulSoup, names: tuple[str, ...]) -> str:
    for meta in soup.find_all("meta"):
        key = (meta.get("name") or meta.get("property") or "").lower()
        if key in names and meta.get("content"):
            return meta["content"].strip()
    return ""


def _byline(soup: BeautifulSoup) -> str:
    value = _meta_value(soup, _BYLINE_META)
    if value:
        return value
    node = soup.find(attrs={"rel": "author"}) or soup.find(class_="byline")
    return node.get_text(" ", strip=True) if node else ""


def _excerpt(soup: BeautifulSoup, content: str) -> str:
    value = _meta_value(soup, _EXCERPT_META)
    if value:
        return value
    first = BeautifulSoup(content, "html.parser").find("p")
    return first.get_text(" ", strip=True) if first else ""


class ReadabilitySimplifier:
    """
    ArticleSimplifier using readability-lxml.

    readability-lxml reports only content and title, so the byline and
    excerpt come from meta tags, falling back to a rel=author/.byline
    element and the first paragraph of the content.
    """

    def simplify(self, html: str, url: Optional[str] = None) -> Optional[SimplifiedArticle]:
        try:
            document = Document(html, url=url)
            content = document.summary(html_partial=True)
            title = document.short_title()
        except Exception as e:
            logger.warning(f"Simplification failed for {url or 'document'}: {e}")
            return None

        if not content or not content.strip():
            return None

        soup = BeautifulSoup(html, "html.parser")
        return SimplifiedArticle(
            content=content,
            title=title or "",
            byline=_byline(soup),
            excerpt=_excerpt(soup, content),
        )
