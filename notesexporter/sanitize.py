"""Turn untrusted note and folder names into safe path segments."""

import unicodedata
from dataclasses import dataclass

import regex

from .models import ExportFormat

# Characters no mainstream filesystem accepts in a name
ILLEGAL_CHARACTERS = frozenset('\\/:*?"<>|')

# Markdown treats these as syntax in wiki links and headings
MARKDOWN_CHARACTERS = frozenset("[]#^")

LINE_BREAKS = frozenset("\n\r\x0b\x0c\x85\u2028\u2029")

# Cc (control), Cf (format), Cs (lone surrogate), Cn (unassigned)
REMOVED_CATEGORIES = frozenset({"Cc", "Cf", "Cs", "Cn"})

DEFAULT_MAX_BYTES = 200

_GRAPHEME = regex.compile(r"\X")
_EMOJI_BASE = regex.compile(r"(?=\p{Emoji})\p{Emoji_Presentation}")


@dataclass(frozen=True)
class FormatRules:
    """Rule set applied by :func:`sanitize`."""

    extra_illegal: frozenset[str] = frozenset()
    strip_emoji: bool = True
    max_bytes: int = DEFAULT_MAX_BYTES


def rules_for(
    fmt: ExportFormat,
    strip_emoji: bool = True,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> FormatRules:
    """Build the rule set for an output format."""
    extra = MARKDOWN_CHARACTERS if fmt is ExportFormat.MD else frozenset()
    return FormatRules(extra_illegal=extra, strip_emoji=strip_emoji, max_bytes=max_bytes)


def _is_removed(char: str, rules: FormatRules) -> bool:
    return (
        char in ILLEGAL_CHARACTERS
        or char in LINE_BREAKS
        or char in rules.extra_illegal
        or unicodedata.category(char) in REMOVED_CATEGORIES
    )


def _strip_emoji(text: str) -> str:
    """Drop grapheme clusters whose base scalar is presented as emoji.

    Emoji in archive member names break extraction on several platforms.
    """
    return "".join(
        cluster for cluster in _GRAPHEME.findall(text)
        if not _EMOJI_BASE.match(cluster)
    )


def _truncate(text: str, max_bytes: int) -> str:
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def sanitize(raw: str, rules: FormatRules = FormatRules()) -> str:
    """Make a string safe to use as a single file or folder name.

    Removes filesystem-illegal characters, control and format characters,
    line breaks, format-specific characters and emoji, then truncates to
    ``rules.max_bytes`` UTF-8 bytes. Names consisting only of dots are
    reserved and come back empty.

    Args:
        raw: Untrusted name, e.g. a note title
        rules: Rule set for the selected output format

    Returns:
        The sanitized name, or "" if nothing usable remained. Callers are
        responsible for substituting a fallback name.
    """
    text = "".join(char for char in raw if not _is_removed(char, rules))
    if rules.strip_emoji:
        text = _strip_emoji(text)
    text = _truncate(text, rules.max_bytes)

    if text.strip(".") == "":
        return ""
    return text
