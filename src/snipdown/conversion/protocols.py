"""Protocol definitions for the conversion collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class SimplifiedArticle:
    """
    Result of structural simplification.

    Attributes:
        content: Serialized HTML of the readable content root
        title: Article title
        byline: Author line, if found
        excerpt: Short summary, if found
    """

    content: str
    title: str = ""
    byline: str = ""
    excerpt: str = ""


class ArticleSimplifier(Protocol):
    """
    Protocol for readability-style simplifiers.

    Implementations must not raise: a page that cannot be simplified
    yields None.
    """

    def simplify(self, html: str, url: Optional[str] = None) -> Optional[SimplifiedArticle]:
        """
        Reduce a page to its readable content.

        Args:
            html: Full page markup
            url: Base URL of the page

        Returns:
            SimplifiedArticle, or None when nothing usable was found
        """
        ...
