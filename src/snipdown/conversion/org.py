"""Org-mode output."""

from __future__ import annotations

from bs4 import Tag

from ..models.options import ConversionOptions
from .codeblocks import CodeBlock
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

CELL_LINE_BREAK = "@@html:<br>@@"
ORG_HR = "-----"
ORG_LINE_BREAK = "\\\\"


class OrgEngine(RuleEngine):
    """
    RuleEngine writing Org-mode syntax.

    Org has no backslash escapes, so text is never escaped.
    """

    def __init__(self, options: ConversionOptions) -> None:
        super().__init__(escape=False, bullets=options.org_bullet_list_marker)
        self.conversion_options = options

    def convert_hN(self, n, el, text, parent_tags):
        if "_inline" in parent_tags:
            return text
        level = max(1, min(6, n))
        text = " ".join(text.split())
        keyword = self.conversion_options.org_todo_keyword.strip()
        if keyword and level == 1:
            text = f"{keyword} {text}"
        return f"\n\n{'*' * level} {text}\n\n"

    def _inline(self, text, parent_tags, delimiter):
        if "_noformat" in parent_tags:
            return text
        return wrap_inline(text, delimiter)

    def convert_em(self, el, text, parent_tags):
        return self._inline(text, parent_tags, "/")

    convert_i = convert_em

    def convert_strong(self, el, text, parent_tags):
        return self._inline(text, parent_tags, "*")

    convert_b = convert_strong

    def convert_code(self, el, text, parent_tags):
        if "_noformat" in parent_tags:
            return text
        return wrap_inline(text, "~")

    def convert_s(self, el, text, parent_tags):
        return self._inline(text, parent_tags, "+")

    convert_strike = convert_s

    def convert_hr(self, el, text, parent_tags):
        return f"\n\n{ORG_HR}\n\n"

    def convert_br(self, el, text, parent_tags):
        if "_inline" in parent_tags:
            return " "
        return f"{ORG_LINE_BREAK}\n"

    def convert_blockquote(self, el, text, parent_tags):
        text = (text or "").strip()
        if "_inline" in parent_tags:
            return f" {text} "
        if not text:
            return "\n"
        return f"\n\n#+BEGIN_QUOTE\n{text}\n#+END_QUOTE\n\n"


def _escape_org_lines(code: str) -> str:
    # Lines that Org would read as headings or keywords get a comma prefix
    return "\n".join(f",{line}" if line.startswith(("*", "#+")) else line for line in code.split("\n"))


def render_org_code_block(block: CodeBlock) -> str:
    code = _escape_org_lines(block.code)
    if block.language:
        return f"\n\n#+BEGIN_SRC {block.language}\n{code}\n#+END_SRC\n\n"
    return f"\n\n#+BEGIN_EXAMPLE\n{code}\n#+END_EXAMPLE\n\n"


def _render_image(node: Tag, ctx: ConversionContext, in_table: bool) -> str:
    style = ctx.options.org_image_style
    if style == "no_image" or not node.get("src"):
        return ""
    image = resolve_image(node, ctx, style)
    if not image.src:
        return ""
    link = f"[[{image.src}][{image.alt}]]" if image.alt else f"[[{image.src}]]"
    return link if in_table else f"\n\n{link}\n\n"


def _render_link(content: str, href: str, title: str) -> str:
    text = content.strip() or href
    if title:
        text = f"{text} ({title})"
    return f"[[{href}][{text}]]"


def _register_common(engine: RuleEngine, ctx: ConversionContext, in_table: bool) -> None:
    engine.add_rule(Rule("mark", lambda node: node.name == "mark", lambda content, node: wrap_inline(content, "=")))
    engine.keep(*KEPT_TAGS)
    engine.add_rule(image_rule(lambda node: _render_image(node, ctx, in_table)))
    engine.add_rule(link_rule(ctx, _render_link, in_table))
    engine.add_rule(heading_link_rule())
    engine.add_rule(math_rule(ctx))
    engine.add_rule(code_block_rule(ctx, render_org_code_block))
    engine.add_rule(preformatted_rule(render_org_code_block))


def build_org_engine(ctx: ConversionContext) -> OrgEngine:
    """Engine for a whole Org document; tables use ``|---+---|`` separators."""
    cells = OrgEngine(ctx.options)
    _register_common(cells, ctx, in_table=True)
    cells.add_rule(line_break_rule(CELL_LINE_BREAK))

    engine = OrgEngine(ctx.options)
    _register_common(engine, ctx, in_table=False)
    engine.add_rule(
        table_rule(TableReconstructor(ctx.options.table_formatting, cells.convert, joint="+"), engine.convert_default)
    )
    engine.add_rule(references_rule(ctx))
    return engine
