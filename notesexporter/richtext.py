"""Structured representation of Apple Notes HTML content.

Apple Notes bodies are HTML fragments made of ``div`` paragraphs, headings,
lists, simple inline formatting and images embedded as ``data:`` URIs. This
module parses such a fragment once with BeautifulSoup into a flat list of
paragraphs whose runs are either styled text or decoded images, which the
RTF, plain text and PDF renderers consume.
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field, replace

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment

from .models import Attachment

logger = logging.getLogger(__name__)

BLOCK_TAGS = frozenset({
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt",
    "figure", "footer", "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr",
    "li", "main", "nav", "ol", "p", "pre", "section", "table", "tr", "ul",
})
SKIPPED_TAGS = frozenset({"head", "script", "style", "title"})
HEADING_TAGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}

DATA_URI = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^;,]*)*?;base64,(?P<data>.*)$",
    re.DOTALL | re.IGNORECASE,
)
WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class TextStyle:
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strike: bool = False
    monospace: bool = False
    link: str | None = None


@dataclass
class TextRun:
    text: str
    style: TextStyle = TextStyle()


@dataclass
class ImageRun:
    attachment: Attachment


@dataclass
class Paragraph:
    """One line of the document.

    ``kind`` is ``"body"``, ``"heading"`` (with ``level`` 1-6) or ``"item"``
    (a list item, ``level`` being the nesting depth and ``marker`` its
    bullet or number).
    """

    runs: list[TextRun | ImageRun] = field(default_factory=list)
    kind: str = "body"
    level: int = 0
    marker: str = ""

    @property
    def text(self) -> str:
        text = "".join(run.text for run in self.runs if isinstance(run, TextRun))
        if self.marker:
            return f"{self.marker} {text}"
        return text

    @property
    def images(self) -> list[ImageRun]:
        return [run for run in self.runs if isinstance(run, ImageRun)]


@dataclass
class RichDocument:
    paragraphs: list[Paragraph] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Plain text of the document, one line per paragraph."""
        return "\n".join(paragraph.text for paragraph in self.paragraphs)

    @property
    def attachments(self) -> list[Attachment]:
        return [
            run.attachment
            for paragraph in self.paragraphs
            for run in paragraph.images
        ]


def decode_data_uri(uri: str) -> Attachment | None:
    """Decode a base64 ``data:`` URI into an attachment.

    Returns None for anything that is not a well-formed base64 data URI.
    """
    match = DATA_URI.match(uri.strip())
    if not match:
        return None
    payload = WHITESPACE.sub("", match.group("data"))
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return None
    if not data:
        return None
    mime_type = (match.group("mime") or "application/octet-stream").lower()
    return Attachment(data=data, mime_type=mime_type)


class _Builder:
    """Walks a parsed tree, accumulating paragraphs."""

    def __init__(self, extract_images: bool):
        self.extract_images = extract_images
        self.document = RichDocument()
        self.current = Paragraph()
        self.list_stack: list[list] = []  # [tag name, next number]

    def flush(self, keep_empty: bool = False, trim: bool = True):
        runs = self.current.runs
        if trim:
            # Trim whitespace at the paragraph edges
            while runs and isinstance(runs[0], TextRun) and not runs[0].text.strip():
                runs.pop(0)
            if runs and isinstance(runs[0], TextRun):
                runs[0].text = runs[0].text.lstrip()
            while runs and isinstance(runs[-1], TextRun) and not runs[-1].text.strip():
                runs.pop()
            if runs and isinstance(runs[-1], TextRun):
                runs[-1].text = runs[-1].text.rstrip()

        if runs or keep_empty:
            self.document.paragraphs.append(self.current)
        # Continuation lines of a list item are not bulleted again
        self.current = Paragraph(kind=self.current.kind, level=self.current.level)

    def add_text(self, text: str, style: TextStyle, preformatted: bool):
        if preformatted:
            lines = text.split("\n")
            for index, line in enumerate(lines):
                if index:
                    self.flush(keep_empty=True, trim=False)
                if line:
                    self.current.runs.append(TextRun(line, style))
            return

        text = WHITESPACE.sub(" ", text)
        if not text.strip() and not self.current.runs:
            return
        runs = self.current.runs
        if runs and isinstance(runs[-1], TextRun) and runs[-1].style == style:
            runs[-1].text += text
        else:
            runs.append(TextRun(text, style))

    def add_image(self, tag: Tag):
        if not self.extract_images:
            return
        source = tag.get("src") or ""
        attachment = decode_data_uri(source)
        if attachment is None:
            if source.startswith("data:"):
                logger.warning("Skipping inline image with undecodable data")
            else:
                logger.debug(f"Skipping non-embedded image {source[:60]!r}")
            return
        self.current.runs.append(ImageRun(attachment))

    def walk(self, node, style: TextStyle, preformatted: bool = False):
        for child in node.children:
            if isinstance(child, Comment):
                continue
            if isinstance(child, NavigableString):
                self.add_text(str(child), style, preformatted)
                continue
            if not isinstance(child, Tag):
                continue
            self.element(child, style, preformatted)

    def element(self, tag: Tag, style: TextStyle, preformatted: bool):
        name = tag.name.lower()
        if name in SKIPPED_TAGS:
            return
        if name == "br":
            self.flush(keep_empty=True)
            return
        if name == "img":
            self.add_image(tag)
            return

        style = _apply_style(name, tag, style)
        preformatted = preformatted or name == "pre"

        if name in ("td", "th"):
            if self.current.runs:
                self.current.runs.append(TextRun("\t", style))
            self.walk(tag, style, preformatted)
            return

        if name not in BLOCK_TAGS:
            self.walk(tag, style, preformatted)
            return

        self.flush()
        saved_kind, saved_level = self.current.kind, self.current.level

        if name in ("ul", "ol"):
            self.list_stack.append([name, 1])
            self.walk(tag, style, preformatted)
            self.list_stack.pop()
        elif name == "li":
            self.current.kind = "item"
            self.current.level = max(len(self.list_stack), 1)
            self.current.marker = self._next_marker()
            self.walk(tag, style, preformatted)
        elif name in HEADING_TAGS:
            self.current.kind = "heading"
            self.current.level = HEADING_TAGS[name]
            self.walk(tag, style, preformatted)
        else:
            self.walk(tag, style, preformatted)

        self.flush(trim=not preformatted)
        self.current.kind, self.current.level, self.current.marker = saved_kind, saved_level, ""

    def _next_marker(self) -> str:
        if not self.list_stack:
            return "•"
        entry = self.list_stack[-1]
        if entry[0] == "ol":
            marker = f"{entry[1]}."
            entry[1] += 1
            return marker
        return "•"


def _apply_style(name: str, tag: Tag, style: TextStyle) -> TextStyle:
    if name in ("b", "strong"):
        return replace(style, bold=True)
    if name in ("i", "em"):
        return replace(style, italic=True)
    if name == "u":
        return replace(style, underline=True)
    if name in ("s", "strike", "del"):
        return replace(style, strike=True)
    if name in ("code", "tt", "pre", "kbd"):
        return replace(style, monospace=True)
    if name == "a" and tag.get("href"):
        return replace(style, link=tag["href"])
    if name == "span":
        css = (tag.get("style") or "").replace(" ", "").lower()
        if "font-weight:bold" in css or "font-weight:700" in css:
            style = replace(style, bold=True)
        if "font-style:italic" in css:
            style = replace(style, italic=True)
        if "text-decoration:underline" in css:
            style = replace(style, underline=True)
        if "text-decoration:line-through" in css:
            style = replace(style, strike=True)
    return style


def parse_content(html: str, extract_images: bool = True) -> RichDocument:
    """Parse note HTML into a rich document.

    Args:
        html: Canonical note content
        extract_images: Decode embedded ``data:`` images into image runs.
            When False images are dropped entirely.

    Returns:
        The parsed document
    """
    soup = BeautifulSoup(html or "", "html.parser")
    builder = _Builder(extract_images)
    builder.walk(soup, TextStyle())
    builder.flush()
    return builder.document
