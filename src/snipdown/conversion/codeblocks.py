"""Code block language detection and text normalization."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from bs4 import NavigableString, Tag
from pygments.lexers import guess_lexer
from pygments.util import ClassNotFound

logger = logging.getLogger(__name__)

_LANGUAGE_CLASS = re.compile(r"language-([\w+#.-]+)")
_HLJS_CLASS = re.compile(r"hljs\s+([\w+#.-]+)")
_LANGUAGE_ID = re.compile(r"^code-lang-([\w+#.-]+)$")

LANGUAGE_ID_PREFIX = "code-lang-"

# Inert tag standing in for <br> inside <pre> until code rendering
LINE_BREAK_TAG = "snip-br"

# Lexers that mean "no idea"
_GENERIC_LEXERS = frozenset({"text", "output"})


@dataclass(frozen=True)
class CodeBlock:
    code: str
    language: str


def class_string(node: Tag) -> str:
    classes = node.get("class") or []
    if isinstance(classes, str):
        return classes
    return " ".join(classes)


def get_code_language(node: Tag) -> str:
    """Language declared on a code element by class or tagged id."""
    classes = class_string(node)
    for pattern in (_LANGUAGE_CLASS, _HLJS_CLASS):
        match = pattern.search(classes)
        if match:
            return match.group(1)

    match = _LANGUAGE_ID.match(node.get("id") or "")
    if match:
        return match.group(1)
    return ""


def detect_language(code: str) -> str:
    """Best-effort language guess from content; empty string when unsure."""
    if not code.strip():
        return ""
    try:
        lexer = guess_lexer(code)
    except ClassNotFound:
        return ""
    except Exception as e:
        logger.debug(f"Language detection failed: {e}")
        return ""

    name = lexer.aliases[0] if lexer.aliases else lexer.name.lower()
    return "" if name in _GENERIC_LEXERS else name


def code_text(node: Tag) -> str:
    """Text of a code element with line breaks kept as newlines."""
    parts = []
    for descendant in node.descendants:
        if isinstance(descendant, Tag):
            if descendant.name in ("br", LINE_BREAK_TAG):
                parts.append("\n")
        elif type(descendant) is NavigableString:
            parts.append(str(descendant))
    return "".join(parts)


def process_code_block(node: Tag, preserve_formatting: bool = False) -> CodeBlock:
    """
    Read the code and language of a ``<code>`` element.

    With ``preserve_formatting`` the inner markup is kept verbatim;
    otherwise the plain text is used, trimmed.
    """
    text = code_text(node)
    code = node.decode_contents() if preserve_formatting else text.strip()

    language = get_code_language(node)
    if not language:
        language = detect_language(text)
    return CodeBlock(code=code, language=language)


def fence_for(code: str, fence_char: str = "`") -> str:
    """Shortest fence longer than any run of ``fence_char`` inside ``code``."""
    longest = 0
    for match in re.finditer(re.escape(fence_char) + "{3,}", code):
        longest = max(longest, len(match.group(0)))
    return fence_char * max(3, longest + 1)
