"""Custom syntax layered on top of CommonMark.

Callouts are blockquotes whose first line carries a type tag, written either
GitHub style (``> [!NOTE] Title``) or with a leading emoji
(``> 📝 tip: Title``). Toggles are ``<details>`` regions, or alternatively
bullet items starting with ``▸``.
"""

import re
from typing import NamedTuple

from mdmapper.models import CALLOUT_TYPES, CalloutType

# Emoji -> callout type. Variation selectors (U+FE0F) are optional on input.
CALLOUT_EMOJI: dict[str, CalloutType] = {
    "\u2139\ufe0f": "note",
    "\U0001f4a1": "info",
    "\U0001f4dd": "tip",
    "\u26a0\ufe0f": "warning",
    "\u274c": "danger",
}

EMOJI_FOR_TYPE: dict[CalloutType, str] = {type_: emoji for emoji, type_ in CALLOUT_EMOJI.items()}

_ADMONITION = re.compile(r"^\[!([A-Za-z]+)\][ \t]*(.*)$")
_EMOJI_CALLOUT = re.compile(
    r"^(\u2139\ufe0f?|\U0001f4a1|\U0001f4dd|\u26a0\ufe0f?|\u274c)[ \t]*"
    r"(note|tip|warning|danger|info)\b[:.]?[ \t]*(.*)$",
    re.IGNORECASE,
)

TOGGLE_LIST_MARKER = "\u25b8"  # ▸

DETAILS_OPEN = re.compile(r"^<details\b", re.IGNORECASE)
DETAILS_TAG = re.compile(r"<(/?)details\b[^>]*>", re.IGNORECASE)
SUMMARY = re.compile(r"[ \t\r\n]*<summary\b[^>]*>(.*?)</summary>", re.IGNORECASE | re.DOTALL)


class CalloutHeader(NamedTuple):
    type: CalloutType
    title: str | None
    style: str  # "admonition" or "emoji"


def match_callout_header(line: str) -> CalloutHeader | None:
    """Recognize a callout tag on the first line of a blockquote.

    Unknown admonition tags (``[!INVALID]``) do not match, so the quote stays
    a quote.
    """
    line = line.strip()
    if match := _ADMONITION.match(line):
        tag = match.group(1).lower()
        if tag not in CALLOUT_TYPES:
            return None
        return CalloutHeader(tag, match.group(2).strip() or None, "admonition")  # type: ignore[arg-type]
    if match := _EMOJI_CALLOUT.match(line):
        emoji = match.group(1)
        if not emoji.endswith("\ufe0f") and emoji + "\ufe0f" in CALLOUT_EMOJI:
            emoji += "\ufe0f"
        return CalloutHeader(CALLOUT_EMOJI[emoji], match.group(3).strip() or None, "emoji")
    return None


def strip_blank_edges(lines: list[str]) -> list[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


def callout_header_line(type_: CalloutType, title: str | None, style: str) -> str:
    """First line of a serialized callout, without the ``> `` prefix."""
    if style == "emoji":
        head = f"{EMOJI_FOR_TYPE[type_]} {type_}:"
    else:
        head = f"[!{type_.upper()}]"
    return f"{head} {title}" if title else head


def scan_details_tags(text: str, pos: int, end: int, depth: int = 1) -> tuple[int, tuple[int, int] | None]:
    """Count ``<details>`` nesting over ``text[pos:end]``.

    ``depth`` is the number of toggles open before ``pos``. Returns the depth
    after the scan and the ``(start, end)`` offsets of the tag that brought it
    to zero, if any.
    """
    for match in DETAILS_TAG.finditer(text, pos, end):
        depth += -1 if match.group(1) else 1
        if depth == 0:
            return 0, (match.start(), match.end())
    return depth, None


def toggle_list_summary(item_text: str) -> str | None:
    """Summary of a ``▸`` list item, or None if the item is not a toggle."""
    if not item_text.startswith(TOGGLE_LIST_MARKER):
        return None
    return item_text[len(TOGGLE_LIST_MARKER) :].strip()
