"""The document record produced by article extraction."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any


@dataclass(frozen=True)
class MathInfo:
    """TeX source recorded for a tagged math element."""

    tex: str
    inline: bool


@dataclass(frozen=True)
class DocumentRecord:
    """
    Readable content and metadata extracted from one page.

    ``content`` is the simplified HTML body. Every other field feeds template
    substitution through ``template_fields``; ``content`` never does.
    Records are immutable; ``with_content`` returns a copy carrying a
    different body (e.g. the user's selection).

    Attributes:
        content: Simplified HTML fragment
        title: Article title reported by the simplifier
        byline: Author line, if any
        excerpt: Short summary, if any
        base_uri: URI that relative links resolve against
        page_title: Text of the page's <title>
        host: Host with port
        hostname: Host without port
        origin: Scheme plus host
        pathname: URL path
        search: Query string including the leading "?"
        hash: Fragment including the leading "#"
        protocol: Scheme followed by ":"
        port: Explicit port or empty string
        keywords: Meta keywords, in page order
        math: Tagged math elements keyed by element id
        meta: Meta-tag values not shadowed by a named field
    """

    content: str = ""
    title: str = ""
    byline: str = ""
    excerpt: str = ""
    base_uri: str = ""
    page_title: str = ""
    host: str = ""
    hostname: str = ""
    origin: str = ""
    pathname: str = ""
    search: str = ""
    hash: str = ""
    protocol: str = ""
    port: str = ""
    keywords: tuple[str, ...] = ()
    math: dict[str, MathInfo] = field(default_factory=dict)
    meta: dict[str, str] = field(default_factory=dict)

    # Template key -> attribute name
    TEMPLATE_KEYS = {
        "title": "title",
        "byline": "byline",
        "excerpt": "excerpt",
        "baseURI": "base_uri",
        "pageTitle": "page_title",
        "host": "host",
        "hostname": "hostname",
        "origin": "origin",
        "pathname": "pathname",
        "search": "search",
        "hash": "hash",
        "protocol": "protocol",
        "port": "port",
        "keywords": "keywords",
    }

    def template_fields(self) -> dict[str, Any]:
        """Flat key/value view used by the template engine (no ``content``)."""
        values: dict[str, Any] = {key: getattr(self, attr) for key, attr in self.TEMPLATE_KEYS.items()}
        for key, value in self.meta.items():
            if key == "content" or values.get(key):
                continue
            values[key] = value
        return values

    def with_content(self, content: str) -> DocumentRecord:
        return replace(self, content=content)

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form carried in cross-context messages."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "math":
                value = {key: {"tex": info.tex, "inline": info.inline} for key, info in value.items()}
            elif f.name == "keywords":
                value = list(value)
            elif f.name == "meta":
                value = dict(value)
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentRecord:
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        values["keywords"] = tuple(values.get("keywords") or ())
        values["math"] = {
            key: MathInfo(tex=info["tex"], inline=bool(info["inline"]))
            for key, info in (values.get("math") or {}).items()
        }
        values["meta"] = dict(values.get("meta") or {})
        return cls(**values)
