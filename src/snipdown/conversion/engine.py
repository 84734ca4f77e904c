"""
Rule-extensible HTML conversion built on markdownify.

``RuleEngine`` lets callers register element rules
``{name, filter, replacement}`` that take precedence over markdownify's
own ``convert_<tag>`` handlers; the most recently added rule wins. Tags
registered with ``keep`` are emitted as their original HTML. Escaping of
Markdown-special characters is a per-instance switch.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString
from markdownify import MarkdownConverter

HEADINGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})

# Passed through as raw markup
KEPT_TAGS = ("iframe", "sub", "sup", "u", "ins", "del", "small", "big")

_CONTROL_CHARS = re.compile(
    r"[\u0000-\u0009\u000b\u000c\u000e-\u001f\u007f-\u009f\u00ad\u061c"
    r"\u200b-\u200f\u2028\u2029\ufeff\ufff9-\ufffc]"
)


def strip_control_characters(text: str) -> str:
    """Remove non-printing, formatting and zero-width characters."""
    return _CONTROL_CHARS.sub("", text)


def wrap_inline(text: str, opening: str, closing: Optional[str] = None) -> str:
    """Wrap ``text`` in delimiters, keeping surrounding whitespace outside."""
    if not text or not text.strip():
        return text
    closing = opening if closing is None else closing
    prefix = " " if text[0].isspace() else ""
    suffix = " " if text[-1].isspace() else ""
    return f"{prefix}{opening}{text.strip()}{closing}{suffix}"


def is_inside(node: Tag, name: str) -> bool:
    return node.find_parent(name) is not None


def first_meaningful_child(node: Tag) -> Optional[Tag]:
    """First child element, skipping whitespace-only text; None if text comes first."""
    for child in node.children:
        if isinstance(child, Tag):
            return child
        if isinstance(child, NavigableString) and not isinstance(child, PreformattedString) and child.strip():
            return None
    return None


@dataclass
class Rule:
    """
    A custom element rule.

    Attributes:
        name: Identifier used in logs and ``remove_rule``
        filter: Predicate selecting the elements the rule handles
        replacement: Renders ``(converted_children, node)`` to text
        append: Optional callable whose output is appended after the
            document body (e.g. a reference list); it must reset itself
        needs_content: When False the children are not converted and
            ``replacement`` receives an empty string
    """

    name: str
    filter: Callable[[Tag], bool]
    replacement: Callable[[str, Tag], str]
    append: Optional[Callable[[], str]] = None
    needs_content: bool = True


class RuleEngine(MarkdownConverter):
    """
    markdownify converter with pluggable rules.

    Example:
        engine = RuleEngine(escape=False)
        engine.add_rule(Rule("mark", lambda n: n.name == "mark", lambda c, n: f"`{c}`"))
        engine.keep("sub", "sup")
        text = engine.convert("<p>H<sub>2</sub>O is <mark>wet</mark></p>")
    """

    def __init__(self, escape: bool = True, **options) -> None:
        options.setdefault("escape_asterisks", escape)
        options.setdefault("escape_underscores", escape)
        options.setdefault("escape_misc", escape)
        super().__init__(**options)
        self.escape_enabled = escape
        self._rules: list[Rule] = []
        self._keep: set[str] = set()

    def add_rule(self, rule: Rule) -> RuleEngine:
        self._rules.append(rule)
        return self

    def remove_rule(self, name: str) -> None:
        self._rules = [rule for rule in self._rules if rule.name != name]

    def keep(self, *tags: str) -> RuleEngine:
        self._keep.update(tags)
        return self

    @property
    def rules(self) -> list[Rule]:
        return list(self._rules)

    def rule_for(self, node: Tag) -> Optional[Rule]:
        for rule in reversed(self._rules):
            if rule.filter(node):
                return rule
        return None

    def convert_children(self, node: Tag, parent_tags: Optional[set[str]] = None) -> str:
        """Convert the children of ``node`` as markdownify would."""
        child_tags = set(parent_tags or ())
        child_tags.add(node.name)
        if node.name in HEADINGS or node.name in ("td", "th"):
            child_tags.add("_inline")
        if node.name in ("pre", "code", "kbd", "samp"):
            child_tags.add("_noformat")

        parts = []
        for child in node.children:
            if isinstance(child, Tag):
                parts.append(self.process_tag(child, parent_tags=child_tags))
            elif isinstance(child, NavigableString) and not isinstance(child, PreformattedString):
                parts.append(self.process_text(child, parent_tags=child_tags))
        return "".join(parts)

    def convert_default(self, node: Tag, parent_tags: Optional[set[str]] = None) -> str:
        """Convert ``node`` with markdownify's own handler, skipping rules for this node only."""
        return super().process_tag(node, parent_tags=set(parent_tags or ()))

    def process_tag(self, node, parent_tags=None):
        if parent_tags is None:
            parent_tags = set()

        rule = self.rule_for(node)
        if rule is not None:
            content = self.convert_children(node, parent_tags) if rule.needs_content else ""
            return rule.replacement(content, node)
        if node.name in self._keep:
            return str(node)
        return super().process_tag(node, parent_tags=parent_tags)

    def convert(self, html: str) -> str:
        """Convert an HTML fragment, followed by any rule trailers."""
        soup = BeautifulSoup(html or "", "html.parser")
        output = self.convert_soup(soup)
        for rule in self._rules:
            if rule.append is not None:
                output += rule.append()
        return output
