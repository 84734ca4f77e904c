"""Markdown output."""

from __future__ import annotations

from typing import Optional

from bs4 import Tag
from markdownify import ATX, UNDERLINED

from ..models.options import ConversionOptions
from .codeblocks import CodeBlock, fence_for
from .engine import KEPT_TAGS, Rule, RuleEngine, wrap_inline
from .rules import (
    ConversionContext,
    code_block_rule,
    heading_link_rule,
    image_rule,
    line_break_rule,
    link_rule,
    math_rule,
    preformatted_rule,
    references_rule,
    resolve_image,
    table_rule,
)
from .tables import TableReconstructor

CELL_LINE_BREAK = "<br>"


class MarkdownEngine(RuleEngine):
    """RuleEngine with the configured Markdown delimiters."""

    def __init__(self, options: ConversionOptions, escape: Optional[bool] = None) -> None:
        super().__init__(
            escape=options.escape if escape is None else escape,
            heading_style=UNDERLINED if options.heading_style == "setext" else ATX,
            bullets=options.bullet_list_marker,
        )
        self.conversion_options = options

    def convert_em(self, el, text, parent_tags):
        if "_noformat" in parent_tags:
            return text
        return wrap_inline(text, self.conversion_options.em_delimiter)

    convert_i = convert_em

    def convert_strong(self, el, text, parent_tags):
        if "_noformat" in parent_tags:
            return text
        return wrap_inline(text, self.conversion_options.strong_delimiter)

    convert_b = convert_strong

    def convert_hr(self, el, text, parent_tags):
        return f"\n\n{self.conversion_options.hr}\n\n"


def render_code_block(block: CodeBlock, options: ConversionOptions) -> str:
    if options.code_block_style == "indented":
        indented = "\n".join(f"    {line}" if line else "" for line in block.code.split("\n"))
        return f"\n\n{indented}\n\n"
    fence = fence_for(block.code, options.fence[0])
    return f"\n\n{fence}{block.language}\n{block.code}\n{fence}\n\n"


def _render_image(node: Tag, ctx: ConversionContext) -> str:
    style = ctx.options.image_style
    if style == "no_image" or not node.get("src"):
        return ""
    image = resolve_image(node, ctx, style)
    if not image.src:
        return ""
    if style.startswith("obsidian"):
        return f"![[{image.src}]]"

    title = f' "{image.title}"' if image.title else ""
    if ctx.options.image_ref_style == "referenced":
        label = f"fig{len(ctx.image_references) + 1}"
        ctx.image_references.append(f"[{label}]: {image.src}{title}")
        return f"![{image.alt}][{label}]"
    return f"![{image.alt}]({image.src}{title})"


def _render_link(content: str, href: str, title: str, ctx: ConversionContext) -> str:
    title_part = f' "{title}"' if title else ""
    if ctx.options.link_style != "referenced":
        return f"[{content}]({href}{title_part})"

    style = ctx.options.link_reference_style
    if style == "collapsed":
        ctx.link_references.append(f"[{content}]: {href}{title_part}")
        return f"[{content}][]"
    if style == "shortcut":
        ctx.link_references.append(f"[{content}]: {href}{title_part}")
        return f"[{content}]"
    label = len(ctx.link_references) + 1
    ctx.link_references.append(f"[{label}]: {href}{title_part}")
    return f"[{content}][{label}]"


def _register_common(engine: RuleEngine, ctx: ConversionContext, in_table: bool) -> None:
    options = ctx.options
    engine.add_rule(Rule("mark", lambda node: node.name == "mark", lambda content, node: f"`{content}`"))
    engine.keep(*KEPT_TAGS)
    engine.add_rule(image_rule(lambda node: _render_image(node, ctx)))
    engine.add_rule(link_rule(ctx, lambda content, href, title: _render_link(content, href, title, ctx), in_table))
    engine.add_rule(heading_link_rule())
    engine.add_rule(math_rule(ctx))
    engine.add_rule(code_block_rule(ctx, lambda block: render_code_block(block, options)))
    engine.add_rule(preformatted_rule(lambda block: render_code_block(block, options)))


def build_markdown_engine(ctx: ConversionContext) -> MarkdownEngine:
    """
    Engine for a whole Markdown document.

    Tables are rendered by a TableReconstructor whose cells go through a
    second, non-escaping engine sharing the same context.
    """
    cells = MarkdownEngine(ctx.options, escape=False)
    _register_common(cells, ctx, in_table=True)
    cells.add_rule(line_break_rule(CELL_LINE_BREAK))

    engine = MarkdownEngine(ctx.options)
    _register_common(engine, ctx, in_table=False)
    engine.add_rule(
        table_rule(TableReconstructor(ctx.options.table_formatting, cells.convert, joint="|"), engine.convert_default)
    )
    engine.add_rule(references_rule(ctx))
    return engine
