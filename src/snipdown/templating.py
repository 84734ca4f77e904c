"""
Placeholder substitution over document records.

Templates reference record fields as ``{key}`` with an optional case
transform (``{title:kebab}``), the current time as ``{date:<format>}``
using moment-style tokens, and the keyword list as
``{keywords:<separator>}``. Unknown tokens resolve to the empty string.

All tokens are resolved in a single left-to-right pass over the template,
so text produced by a substitution is never scanned again.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from .models.document import DocumentRecord
from .models.options import ConversionOptions, DownloadMode
from .naming import generate_valid_filename

_TOKEN = re.compile(r"\{([^{}]*)\}")
_SPACE_AND_NEXT = re.compile(r" .")


def _join_words(value: str) -> str:
    return _SPACE_AND_NEXT.sub(lambda m: m.group(0).strip().upper(), value)


def _camel(value: str) -> str:
    joined = _join_words(value)
    return joined[:1].lower() + joined[1:]


def _pascal(value: str) -> str:
    joined = _join_words(value)
    return joined[:1].upper() + joined[1:]


TRANSFORMS: dict[str, Callable[[str], str]] = {
    "kebab": lambda value: value.replace(" ", "-").lower(),
    "snake": lambda value: value.replace(" ", "_").lower(),
    "camel": _camel,
    "pascal": _pascal,
}

_MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
_WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

# Longest tokens first so "MMMM" wins over "MM"
_DATE_TOKEN = re.compile(
    r"\[([^\]]*)\]|YYYY|YY|Q|MMMM|MMM|MM|M|Do|DDDD|DDD|DD|D|dddd|ddd|dd|d|"
    r"HH|H|hh|h|kk|k|mm|m|ss|s|SSS|SS|S|A|a|ZZ|Z|X|x"
)


def _ordinal(day: int) -> str:
    if 10 <= day % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def _utc_offset(moment: datetime, separator: str) -> str:
    offset = moment.utcoffset()
    minutes = int(offset.total_seconds() // 60) if offset is not None else 0
    sign = "+" if minutes >= 0 else "-"
    hours, minutes = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}{separator}{minutes:02d}"


def format_date(moment: datetime, pattern: str) -> str:
    """
    Format ``moment`` with moment.js-style tokens.

    Supports year, quarter, month, day-of-month/-year/-week, 12/24 hour,
    minute, second, fraction, meridiem, UTC offset and epoch tokens.
    Text inside ``[brackets]`` is emitted literally.
    """
    hour12 = moment.hour % 12 or 12

    def token(match: re.Match) -> str:
        if match.group(1) is not None:
            return match.group(1)
        tok = match.group(0)
        table: dict[str, Callable[[], str]] = {
            "YYYY": lambda: f"{moment.year:04d}",
            "YY": lambda: f"{moment.year % 100:02d}",
            "Q": lambda: str((moment.month - 1) // 3 + 1),
            "MMMM": lambda: _MONTHS[moment.month - 1],
            "MMM": lambda: _MONTHS[moment.month - 1][:3],
            "MM": lambda: f"{moment.month:02d}",
            "M": lambda: str(moment.month),
            "Do": lambda: _ordinal(moment.day),
            "DDDD": lambda: f"{moment.timetuple().tm_yday:03d}",
            "DDD": lambda: str(moment.timetuple().tm_yday),
            "DD": lambda: f"{moment.day:02d}",
            "D": lambda: str(moment.day),
            "dddd": lambda: _WEEKDAYS[moment.weekday()],
            "ddd": lambda: _WEEKDAYS[moment.weekday()][:3],
            "dd": lambda: _WEEKDAYS[moment.weekday()][:2],
            "d": lambda: str((moment.weekday() + 1) % 7),
            "HH": lambda: f"{moment.hour:02d}",
            "H": lambda: str(moment.hour),
            "hh": lambda: f"{hour12:02d}",
            "h": lambda: str(hour12),
            "kk": lambda: f"{moment.hour or 24:02d}",
            "k": lambda: str(moment.hour or 24),
            "mm": lambda: f"{moment.minute:02d}",
            "m": lambda: str(moment.minute),
            "ss": lambda: f"{moment.second:02d}",
            "s": lambda: str(moment.second),
            "SSS": lambda: f"{moment.microsecond // 1000:03d}",
            "SS": lambda: f"{moment.microsecond // 10000:02d}",
            "S": lambda: str(moment.microsecond // 100000),
            "A": lambda: "AM" if moment.hour < 12 else "PM",
            "a": lambda: "am" if moment.hour < 12 else "pm",
            "ZZ": lambda: _utc_offset(moment, ""),
            "Z": lambda: _utc_offset(moment, ":"),
            "X": lambda: str(int(moment.timestamp())),
            "x": lambda: str(int(moment.timestamp() * 1000)),
        }
        return table[tok]()

    return _DATE_TOKEN.sub(token, pattern)


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_stringify(item) for item in value)
    if isinstance(value, Mapping):
        return ""
    return str(value)


def _unescape_separator(separator: str) -> str:
    try:
        return json.loads('"' + separator.replace('"', '\\"') + '"')
    except ValueError:
        return separator


def substitute(
    template: str,
    record: DocumentRecord | Mapping[str, Any],
    disallowed_chars: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Fill ``template`` from ``record``.

    Field tokens win over date and keyword tokens; whatever remains
    unresolved becomes the empty string. When ``disallowed_chars`` is given,
    substituted field values are made safe for use in file names.

    Args:
        template: Text containing ``{...}`` tokens
        record: Document record or a flat key/value mapping
        disallowed_chars: Extra characters to strip from field values
        now: Timestamp for ``{date:...}`` tokens (defaults to local now)

    Returns:
        The substituted text
    """
    if not template:
        return ""

    fields = record.template_fields() if isinstance(record, DocumentRecord) else dict(record)
    fields.pop("content", None)
    values = {key: _stringify(value) for key, value in fields.items()}
    if disallowed_chars:
        values = {key: generate_valid_filename(value, disallowed_chars) or "" for key, value in values.items()}

    keywords = fields.get("keywords") or ()
    if isinstance(keywords, str):
        keywords = [keywords]
    moment = now or datetime.now().astimezone()

    def resolve(match: re.Match) -> str:
        body = match.group(1)
        if body in values:
            return values[body]

        key, _, transform = body.rpartition(":")
        if key in values and transform in TRANSFORMS:
            return TRANSFORMS[transform](values[key])

        if body.startswith("date:"):
            return format_date(moment, body[len("date:") :])

        if body == "keywords" or body.startswith("keywords:"):
            separator = _unescape_separator(body[len("keywords:") :]) if ":" in body else ""
            return separator.join(str(keyword) for keyword in keywords)

        return ""

    return _TOKEN.sub(resolve, template)


def _sanitize_segments(path: str, disallowed_chars: str) -> str:
    return "/".join(generate_valid_filename(segment, disallowed_chars) or "" for segment in path.split("/"))


def format_title(record: DocumentRecord, options: ConversionOptions) -> str:
    """
    Resolve the output file name (without extension) from ``options.title``.

    A ``/`` written in the template creates sub-folders; ``/`` produced by
    field values is removed.
    """
    title = substitute(options.title, record, options.disallowed_chars + "/")
    return _sanitize_segments(title, options.disallowed_chars)


def format_clips_folder(record: DocumentRecord, options: ConversionOptions) -> str:
    """Resolve the downloads sub-folder, always ending in ``/`` when set."""
    if not options.clips_folder or options.download_mode != DownloadMode.DOWNLOADS_API:
        return ""
    folder = substitute(options.clips_folder, record, options.disallowed_chars)
    folder = _sanitize_segments(folder, options.disallowed_chars)
    if folder and not folder.endswith("/"):
        folder += "/"
    return folder


def resolve_image_prefix(options: ConversionOptions, record: DocumentRecord) -> ConversionOptions:
    """Copy of ``options`` with ``image_prefix`` and ``title`` made concrete."""
    prefix = _sanitize_segments(
        substitute(options.image_prefix, record, options.disallowed_chars), options.disallowed_chars
    )
    return options.model_copy(update={"image_prefix": prefix, "title": format_title(record, options)})


def format_obsidian_folder(record: DocumentRecord, options: ConversionOptions) -> str:
    """Resolve the vault folder for Obsidian hand-off, ending in ``/`` when set."""
    if not options.obsidian_folder:
        return ""
    folder = substitute(options.obsidian_folder, record, options.disallowed_chars)
    folder = _sanitize_segments(folder, options.disallowed_chars)
    if not folder.endswith("/"):
        folder += "/"
    return folder
