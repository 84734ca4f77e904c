"""Element rules shared by the Markdown and Org engines."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from bs4 import Tag

from ..models.document import DocumentRecord, MathInfo
from ..models.options import ConversionOptions
from ..naming import clean_attribute, encode_uri, get_image_filename, validate_uri
from .codeblocks import CodeBlock, code_text, get_code_language, process_code_block
from .engine import HEADINGS, Rule, first_meaningful_child, is_inside
from .images import ImageManifest
from .tables import TableReconstructor

logger = logging.getLogger(__name__)

# Image styles that keep the source URL in the output
PASSTHROUGH_IMAGE_STYLES = frozenset({"original_source", "base64"})


@dataclass
class ConversionContext:
    """
    Per-document state shared by every rule of one conversion.

    Attributes:
        options: Options with image prefix and title already resolved
        record: The document being converted
        manifest: Images collected so far
        image_references: Pending reference definitions for images
        link_references: Pending reference definitions for links
    """

    options: ConversionOptions
    record: DocumentRecord
    manifest: ImageManifest = field(default_factory=ImageManifest)
    image_references: list[str] = field(default_factory=list)
    link_references: list[str] = field(default_factory=list)

    def flush_references(self) -> str:
        """Reference definitions collected so far, then reset."""
        definitions = self.image_references + self.link_references
        self.image_references = []
        self.link_references = []
        if not definitions:
            return ""
        return "\n\n" + "\n".join(definitions) + "\n"


@dataclass(frozen=True)
class ResolvedImage:
    src: str
    alt: str
    title: str


def resolve_image(node: Tag, ctx: ConversionContext, style: str) -> ResolvedImage:
    """
    Resolve an <img> against the base URI and, when images are downloaded,
    register it in the manifest and point it at the local file.
    """
    options = ctx.options
    src = validate_uri(node.get("src") or "", ctx.record.base_uri)

    if options.download_images:
        filename = ctx.manifest.add(src, get_image_filename(src, options, prepend_title_path=False))
        if style not in PASSTHROUGH_IMAGE_STYLES:
            if style == "obsidian_nofolder":
                src = filename[filename.rfind("/") + 1 :]
            elif style.startswith("obsidian") or style == "org":
                src = filename
            else:
                src = "/".join(encode_uri(segment) for segment in filename.split("/"))

    return ResolvedImage(
        src=src,
        alt=clean_attribute(node.get("alt")),
        title=clean_attribute(node.get("title")),
    )


def link_target(node: Tag, ctx: ConversionContext, in_table: bool = False) -> Optional[str]:
    """Resolved href, or None when the link should render as bare text."""
    options = ctx.options
    if options.link_style == "strip_links":
        return None
    if options.table_formatting.strip_links and (in_table or is_inside(node, "table")):
        return None
    return validate_uri(node.get("href") or "", ctx.record.base_uri)


def _is_image(node: Tag) -> bool:
    return node.name == "img"


def _is_link(node: Tag) -> bool:
    return node.name == "a" and node.has_attr("href")


def _is_code_block(node: Tag) -> bool:
    if node.name != "pre":
        return False
    first = first_meaningful_child(node)
    return first is not None and first.name == "code"


def _is_plain_pre(node: Tag) -> bool:
    return node.name == "pre" and not _is_code_block(node)


def image_rule(render: Callable[[Tag], str]) -> Rule:
    return Rule("images", _is_image, lambda content, node: render(node), needs_content=False)


def link_rule(ctx: ConversionContext, render: Callable[[str, str, str], str], in_table: bool = False) -> Rule:
    """``render(content, href, title)`` writes a resolved link."""

    def replacement(content: str, node: Tag) -> str:
        href = link_target(node, ctx, in_table)
        if href is None:
            return content
        return render(content, href, clean_attribute(node.get("title")))

    return Rule("links", _is_link, replacement)


def heading_link_rule() -> Rule:
    def matches(node: Tag) -> bool:
        return node.name == "a" and node.find(list(HEADINGS), recursive=False) is not None

    return Rule("heading_links", matches, lambda content, node: content)


def render_math(info: MathInfo) -> str:
    tex = info.tex.strip().replace("\u00a0", "")
    if info.inline:
        inline = tex.replace("\n", " ")
        return f"${inline}$"
    return f"$$\n{tex}\n$$"


def math_rule(ctx: ConversionContext) -> Rule:
    def matches(node: Tag) -> bool:
        element_id = node.get("id")
        return bool(element_id) and element_id in ctx.record.math

    return Rule("math", matches, lambda content, node: render_math(ctx.record.math[node["id"]]), needs_content=False)


def code_block_rule(ctx: ConversionContext, render: Callable[[CodeBlock], str]) -> Rule:
    def replacement(content: str, node: Tag) -> str:
        code = first_meaningful_child(node)
        return render(process_code_block(code, ctx.options.preserve_code_formatting))

    return Rule("code_blocks", _is_code_block, replacement, needs_content=False)


def preformatted_rule(render: Callable[[CodeBlock], str]) -> Rule:
    def replacement(content: str, node: Tag) -> str:
        return render(CodeBlock(code=code_text(node).strip("\n"), language=get_code_language(node)))

    return Rule("preformatted", _is_plain_pre, replacement, needs_content=False)


def table_rule(reconstructor: TableReconstructor, fallback: Callable[[Tag], str]) -> Rule:
    """
    Tables through ``reconstructor``; on failure ``fallback(node)`` converts
    the table the engine's default way so inline markup survives.
    """

    def replacement(content: str, node: Tag) -> str:
        try:
            return reconstructor.render(node)
        except Exception as e:
            logger.warning(f"Table conversion failed, using default conversion: {e}")
            return fallback(node)

    return Rule("tables", lambda node: node.name == "table", replacement, needs_content=False)


def line_break_rule(marker: str) -> Rule:
    return Rule("cell_line_breaks", lambda node: node.name == "br", lambda content, node: marker, needs_content=False)


def references_rule(ctx: ConversionContext) -> Rule:
    return Rule("references", lambda node: False, lambda content, node: content, append=ctx.flush_references)
