"""Article extraction: pre-processing, simplification and enrichment."""

from __future__ import annotations

import logging
import re
import uuid
from typing import Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from ..errors import InputError
from ..models.document import DocumentRecord, MathInfo
from ..models.options import ConversionOptions
from .codeblocks import LANGUAGE_ID_PREFIX, LINE_BREAK_TAG, class_string, process_code_block
from .protocols import ArticleSimplifier
from .simplifier import ReadabilitySimplifier

logger = logging.getLogger(__name__)

HEADINGS = ("h1", "h2", "h3", "h4", "h5", "h6")

# Attribute set by the capture script on elements carrying TeX source
MATH_MARKER_ATTR = "snipdown-latex"

_HIGHLIGHT_CLASS = re.compile(r"highlight-(?:text|source)-([a-z0-9]+)")
_LANGUAGE_CLASS = re.compile(r"(?:^|\s)language-([\w+#.-]+)")


def _new_math_id() -> str:
    return str(uuid.uuid4())


class ArticleExtractor:
    """
    Turn a captured page into a DocumentRecord.

    Example:
        extractor = ArticleExtractor()
        record = extractor.extract(html, ConversionOptions(), url="https://example.com/post")
        print(record.title, len(record.content))
    """

    def __init__(self, simplifier: Optional[ArticleSimplifier] = None) -> None:
        self._simplifier = simplifier or ReadabilitySimplifier()

    def extract(self, dom: str, options: ConversionOptions, url: Optional[str] = None) -> DocumentRecord:
        """
        Extract the readable article from ``dom``.

        Args:
            dom: Serialized HTML of the page
            options: Conversion options (code handling)
            url: Page URL, used when the page declares no <base href>

        Returns:
            The enriched document record

        Raises:
            InputError: If ``dom`` is empty
        """
        if not dom or not dom.strip():
            raise InputError("No DOM content to extract")

        soup = BeautifulSoup(dom, "html.parser")
        if soup.find(True) is None:
            logger.warning(f"Document for {url or 'capture'} contains no elements; extracting best-effort")

        base_uri = self._base_uri(soup, url)

        if not options.preserve_code_formatting:
            self._normalize_code(soup)
        math = self._tag_math(soup)
        self._tag_highlighted_code(soup)
        self._keep_preformatted_breaks(soup)
        self._unwrap_headings(soup)

        article = self._simplifier.simplify(str(soup), base_uri or None)
        if article is None:
            logger.warning(f"Nothing extracted from {base_uri or 'document'}")

        page_title = soup.title.get_text(strip=True) if soup.title else ""
        keywords, meta = self._harvest_meta(soup)

        return DocumentRecord(
            content=article.content if article else "",
            title=(article.title if article else "") or page_title,
            byline=article.byline if article else "",
            excerpt=article.excerpt if article else "",
            base_uri=base_uri,
            page_title=page_title,
            keywords=keywords,
            math=math,
            meta=meta,
            **self._url_parts(base_uri),
        )

    @staticmethod
    def _base_uri(soup: BeautifulSoup, url: Optional[str]) -> str:
        base = soup.find("base", href=True)
        if base is not None:
            return urljoin(url or "", base["href"])
        return url or ""

    @staticmethod
    def _normalize_code(soup: BeautifulSoup) -> None:
        for code in soup.select("pre code"):
            block = process_code_block(code)
            code.clear()
            code.string = block.code
            if block.language:
                code["class"] = [f"language-{block.language}"]

    @staticmethod
    def _tag_math(soup: BeautifulSoup) -> dict[str, MathInfo]:
        math: dict[str, MathInfo] = {}

        for script in soup.select('script[id^="MathJax-Element-"]'):
            kind = script.get("type")
            element_id = _new_math_id()
            script["id"] = element_id
            inline = "mode=display" not in kind if kind else False
            math[element_id] = MathInfo(tex=script.string or "", inline=inline)

        for marker in soup.find_all(attrs={MATH_MARKER_ATTR: True}):
            tex = marker[MATH_MARKER_ATTR]
            display = marker.get("display") == "true"
            placeholder = soup.new_tag("p" if display else "i")
            placeholder.string = tex
            element_id = _new_math_id()
            placeholder["id"] = element_id
            marker.insert_after(placeholder)
            marker.decompose()
            math[element_id] = MathInfo(tex=tex, inline=not display)

        for mathml in soup.select(".katex-mathml"):
            annotation = mathml.find("annotation")
            if annotation is None:
                continue
            element_id = _new_math_id()
            mathml["id"] = element_id
            math[element_id] = MathInfo(tex=annotation.get_text(), inline=True)
            # Drop the visual rendering so the formula is not emitted twice
            parent = mathml.parent
            if isinstance(parent, Tag):
                for rendered in parent.select(".katex-html"):
                    rendered.decompose()

        return math

    @staticmethod
    def _tag_highlighted_code(soup: BeautifulSoup) -> None:
        for container in soup.find_all(class_=_HIGHLIGHT_CLASS):
            match = _HIGHLIGHT_CLASS.search(class_string(container))
            first = container.find(True, recursive=False)
            if match and first is not None and first.name == "pre":
                first["id"] = f"{LANGUAGE_ID_PREFIX}{match.group(1)}"

        for node in soup.find_all(class_=re.compile(r"^language-")):
            match = _LANGUAGE_CLASS.search(class_string(node))
            if match:
                node["id"] = f"{LANGUAGE_ID_PREFIX}{match.group(1)}"

        for pre in soup.select(".codehilite > pre"):
            first = pre.find(True, recursive=False)
            if (first is None or first.name != "code") and "language" not in class_string(pre):
                pre["id"] = f"{LANGUAGE_ID_PREFIX}text"

    @staticmethod
    def _keep_preformatted_breaks(soup: BeautifulSoup) -> None:
        for br in soup.select("pre br"):
            br.replace_with(soup.new_tag(LINE_BREAK_TAG))

    @staticmethod
    def _unwrap_headings(soup: BeautifulSoup) -> None:
        for anchor in soup.find_all("a"):
            children = [child for child in anchor.children if isinstance(child, Tag)]
            if len(children) == 1 and children[0].name in HEADINGS:
                heading = children[0].extract()
                anchor.replace_with(heading)

        for heading in soup.find_all(HEADINGS):
            if heading.has_attr("class"):
                del heading["class"]

    @staticmethod
    def _harvest_meta(soup: BeautifulSoup) -> tuple[tuple[str, ...], dict[str, str]]:
        keywords: tuple[str, ...] = ()
        meta: dict[str, str] = {}
        reserved = set(DocumentRecord.TEMPLATE_KEYS) | {"content"}

        for tag in soup.find_all("meta"):
            key = tag.get("name") or tag.get("property")
            value = tag.get("content")
            if not key or value is None:
                continue
            if key.lower() == "keywords" and not keywords:
                keywords = tuple(word.strip() for word in value.split(",") if word.strip())
            if key in reserved or key in meta:
                continue
            meta[key] = value

        return keywords, meta

    @staticmethod
    def _url_parts(base_uri: str) -> dict[str, str]:
        parts = urlsplit(base_uri)
        hostname = parts.hostname or ""
        try:
            port = str(parts.port) if parts.port else ""
        except ValueError:
            port = ""
        host = f"{hostname}:{port}" if port else hostname
        return {
            "protocol": f"{parts.scheme}:" if parts.scheme else "",
            "host": host,
            "hostname": hostname,
            "port": port,
            "origin": f"{parts.scheme}://{host}" if parts.scheme and host else "",
            "pathname": parts.path or ("/" if host else ""),
            "search": f"?{parts.query}" if parts.query else "",
            "hash": f"#{parts.fragment}" if parts.fragment else "",
        }
