"""Render notes into output document formats."""

import html
import io
import logging
import threading
from dataclasses import dataclass
from xml.sax.saxutils import escape

from PIL import Image
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.pdfgen import canvas
from reportlab.platypus import Frame, Spacer
from reportlab.platypus import Image as PDFImage
from reportlab.platypus import Paragraph as PDFParagraph

from .converters import html_to_markdown
from .exceptions import ExportCancelled
from .models import Attachment, ExportFormat, Note
from .richtext import ImageRun, Paragraph, RichDocument, TextRun, parse_content

logger = logging.getLogger(__name__)

LETTER = letter
DEFAULT_MARGIN = 72.0

SUPPORTED_FORMATS = (
    ExportFormat.HTML,
    ExportFormat.PDF,
    ExportFormat.RTF,
    ExportFormat.TXT,
    ExportFormat.MD,
)

HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="created" content="{created}">
<meta name="modified" content="{modified}">
<title>{title}</title>
<style>
body {{
    padding: 2em;
    font-family: sans-serif;
}}
</style>
</head>
<body>
<div class="note-content">{content}</div>
</body>
</html>
"""

# Point sizes for RTF headings by level
RTF_HEADING_SIZES = {1: 36, 2: 30, 3: 26}
RTF_BODY_SIZE = 24  # half-points
TWIPS_PER_POINT = 20


@dataclass
class PreparedImage:
    """Image bytes in a format both RTF and PDF can embed."""

    data: bytes
    kind: str  # "png" or "jpeg"
    width: int
    height: int


def render_html(note: Note) -> bytes:
    """Wrap the note content in a standalone HTML document.

    Embedded images are left in place, so the document is self-contained.
    """
    document = HTML_TEMPLATE.format(
        title=html.escape(note.title),
        created=note.creation_date.isoformat(),
        modified=note.modification_date.isoformat(),
        content=note.content,
    )
    return document.encode("utf-8")


def render_text(note: Note) -> bytes:
    """Plain text of the note; images are dropped."""
    text = parse_content(note.content, extract_images=False).text
    return (text + "\n").encode("utf-8") if text else b""


def render_markdown(note: Note) -> bytes:
    return html_to_markdown(note.content).encode("utf-8")


def prepare_image(attachment: Attachment) -> PreparedImage | None:
    """Decode an attachment with Pillow, converting it to PNG when needed.

    Returns None (and logs) when the data is not a readable image.
    """
    try:
        with Image.open(io.BytesIO(attachment.data)) as image:
            width, height = image.size
            if image.format in ("PNG", "JPEG"):
                return PreparedImage(attachment.data, image.format.lower(), width, height)
            if image.mode not in ("RGB", "RGBA", "L"):
                has_alpha = image.mode == "P" or "A" in image.getbands()
                image = image.convert("RGBA" if has_alpha else "RGB")
            buffer = io.BytesIO()
            image.save(buffer, format="PNG")
            return PreparedImage(buffer.getvalue(), "png", width, height)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        logger.warning(f"Skipping unreadable {attachment.mime_type} image: {e}")
        return None


def _fit(width: float, height: float, max_width: float, max_height: float) -> tuple[float, float]:
    scale = min(1.0, max_width / width, max_height / height)
    return width * scale, height * scale


# -- RTF ---------------------------------------------------------------------


def rtf_escape(text: str) -> str:
    """Escape text for an RTF document, encoding non-ASCII as \\uN."""
    out = []
    for char in text:
        code = ord(char)
        if char in "\\{}":
            out.append("\\" + char)
        elif char == "\t":
            out.append("\\tab ")
        elif char == "\n":
            out.append("\\line ")
        elif code < 128:
            out.append(char)
        elif code < 0x10000:
            out.append(_rtf_unicode(code))
        else:
            code -= 0x10000
            out.append(_rtf_unicode(0xD800 + (code >> 10)))
            out.append(_rtf_unicode(0xDC00 + (code & 0x3FF)))
    return "".join(out)


def _rtf_unicode(code: int) -> str:
    # \uN takes a signed 16-bit value
    if code > 32767:
        code -= 65536
    return f"\\u{code}?"


def _rtf_run(run: TextRun) -> str:
    style = run.style
    controls = ""
    if style.bold:
        controls += "\\b"
    if style.italic:
        controls += "\\i"
    if style.underline:
        controls += "\\ul"
    if style.strike:
        controls += "\\strike"
    if style.monospace:
        controls += "\\f1"
    text = rtf_escape(run.text)
    if controls:
        text = f"{{{controls} {text}}}"
    if style.link:
        url = rtf_escape(style.link.replace('"', "%22"))
        return f'{{\\field{{\\*\\fldinst{{HYPERLINK "{url}"}}}}{{\\fldrslt{{\\ul {text}}}}}}}'
    return text


def _rtf_image(image: PreparedImage, max_width_twips: int, max_height_twips: int) -> str:
    # Assume 72 dpi source pixels (1 px = 1 pt = 20 twips)
    goal_width, goal_height = _fit(
        image.width * TWIPS_PER_POINT,
        image.height * TWIPS_PER_POINT,
        max_width_twips,
        max_height_twips,
    )
    blip = "\\pngblip" if image.kind == "png" else "\\jpegblip"
    hexdata = image.data.hex()
    lines = "\n".join(hexdata[i:i + 128] for i in range(0, len(hexdata), 128))
    return (
        f"{{\\pict{blip}\\picw{image.width}\\pich{image.height}"
        f"\\picwgoal{int(goal_width)}\\pichgoal{int(goal_height)}\n{lines}}}"
    )


def _rtf_paragraph(paragraph: Paragraph, max_width: int, max_height: int) -> str:
    controls = "\\pard\\plain\\f0"
    if paragraph.kind == "heading":
        size = RTF_HEADING_SIZES.get(paragraph.level, RTF_BODY_SIZE)
        controls += f"\\b\\fs{size}"
    else:
        controls += f"\\fs{RTF_BODY_SIZE}"
    if paragraph.kind == "item":
        indent = 360 * paragraph.level
        controls += f"\\li{indent}"
        if paragraph.marker:
            controls += "\\fi-360"

    parts = [controls, " "]
    if paragraph.marker:
        parts.append(rtf_escape(paragraph.marker) + "\\tab ")
    for run in paragraph.runs:
        if isinstance(run, ImageRun):
            image = prepare_image(run.attachment)
            if image is not None:
                parts.append(_rtf_image(image, max_width, max_height))
        else:
            parts.append(_rtf_run(run))
    parts.append("\\par\n")
    return "".join(parts)


def document_to_rtf(
    document: RichDocument,
    page_size: tuple[float, float] = LETTER,
    margin: float = DEFAULT_MARGIN,
) -> str:
    """Serialize a rich document as an RTF string."""
    width = int(page_size[0] * TWIPS_PER_POINT)
    height = int(page_size[1] * TWIPS_PER_POINT)
    margin_twips = int(margin * TWIPS_PER_POINT)
    header = (
        "{\\rtf1\\ansi\\ansicpg1252\\deff0\\uc1\n"
        "{\\fonttbl{\\f0\\fswiss Helvetica;}{\\f1\\fmodern Courier;}}\n"
        f"\\paperw{width}\\paperh{height}\\margl{margin_twips}\\margr{margin_twips}"
        f"\\margt{margin_twips}\\margb{margin_twips}\n"
    )
    max_width = width - 2 * margin_twips
    max_height = height - 2 * margin_twips
    body = "".join(_rtf_paragraph(p, max_width, max_height) for p in document.paragraphs)
    return header + body + "}"


def render_rtf(note: Note, page_size: tuple[float, float] = LETTER, margin: float = DEFAULT_MARGIN) -> bytes:
    """Render the note as RTF with inline images embedded as pictures."""
    document = parse_content(note.content)
    # Everything outside ASCII is escaped, so the output is pure ASCII
    return document_to_rtf(document, page_size, margin).encode("ascii")


# -- PDF ---------------------------------------------------------------------


def _pdf_markup(run: TextRun) -> str:
    style = run.style
    text = escape(run.text).replace("\t", "&nbsp;" * 4)
    if style.monospace:
        text = f'<font face="Courier">{text}</font>'
    if style.bold:
        text = f"<b>{text}</b>"
    if style.italic:
        text = f"<i>{text}</i>"
    if style.underline:
        text = f"<u>{text}</u>"
    if style.strike:
        text = f"<strike>{text}</strike>"
    if style.link:
        href = escape(style.link, {'"': "&quot;"})
        text = f'<a href="{href}" color="blue">{text}</a>'
    return text


class _StoryBuilder:
    """Turns a rich document into reportlab flowables."""

    def __init__(self, frame_width: float, frame_height: float):
        self.frame_width = frame_width
        self.frame_height = frame_height
        self.styles = getSampleStyleSheet()
        self.item_styles: dict[int, ParagraphStyle] = {}

    def style_for(self, paragraph: Paragraph) -> ParagraphStyle:
        if paragraph.kind == "heading":
            return self.styles[f"Heading{min(paragraph.level, 6)}"]
        if paragraph.kind == "item":
            level = max(paragraph.level, 1)
            if level not in self.item_styles:
                self.item_styles[level] = ParagraphStyle(
                    f"Item{level}",
                    parent=self.styles["BodyText"],
                    leftIndent=18 * level,
                    bulletIndent=18 * level - 12,
                )
            return self.item_styles[level]
        return self.styles["BodyText"]

    def image(self, attachment: Attachment):
        prepared = prepare_image(attachment)
        if prepared is None:
            return None
        width, height = _fit(prepared.width, prepared.height, self.frame_width, self.frame_height)
        return PDFImage(io.BytesIO(prepared.data), width=width, height=height)

    def build(self, document: RichDocument) -> list:
        story = []
        for paragraph in document.paragraphs:
            style = self.style_for(paragraph)
            bullet = paragraph.marker or None
            markup = ""
            for run in paragraph.runs:
                if isinstance(run, ImageRun):
                    if markup.strip():
                        story.append(PDFParagraph(markup, style, bulletText=bullet))
                        bullet = None
                    markup = ""
                    flowable = self.image(run.attachment)
                    if flowable is not None:
                        story.append(flowable)
                else:
                    markup += _pdf_markup(run)
            if markup.strip() or bullet:
                story.append(PDFParagraph(markup, style, bulletText=bullet))
            elif not paragraph.images:
                story.append(Spacer(1, style.leading))
        return story


def _fill_frame(frame: Frame, story: list, canv: canvas.Canvas) -> int:
    """Draw as much of the story as fits into one frame.

    Consumed flowables are removed from ``story``. A flowable straddling the
    bottom of the frame is split and its first part drawn.

    Returns:
        Number of flowables (or flowable parts) drawn
    """
    placed = 0
    while story:
        if frame.add(story[0], canv):
            story.pop(0)
            placed += 1
            continue
        parts = frame.split(story[0], canv)
        if parts:
            story[0:1] = parts
            if frame.add(story[0], canv):
                story.pop(0)
                placed += 1
        break
    return placed


def paginate(
    story: list,
    canv: canvas.Canvas,
    page_size: tuple[float, float] = LETTER,
    margin: float = DEFAULT_MARGIN,
    cancel_event: threading.Event | None = None,
) -> int:
    """Lay out a story page by page onto ``canv``.

    Each iteration fills one page's content frame with what fits, emits the
    page and continues with the remainder. Cancellation is checked before
    every page.

    Returns:
        Number of pages emitted (at least one)

    Raises:
        ExportCancelled: If ``cancel_event`` is set during layout
    """
    width, height = page_size
    story = list(story)
    pages = 0
    while story or pages == 0:
        if cancel_event is not None and cancel_event.is_set():
            raise ExportCancelled("Export cancelled during PDF layout")
        frame = Frame(
            margin, margin, width - 2 * margin, height - 2 * margin,
            leftPadding=0, rightPadding=0, topPadding=0, bottomPadding=0,
        )
        if not _fill_frame(frame, story, canv) and story:
            dropped = story.pop(0)
            logger.warning(f"Dropping {type(dropped).__name__} that does not fit on a page")
        canv.showPage()
        pages += 1
    return pages


def render_pdf(
    note: Note,
    page_size: tuple[float, float] = LETTER,
    margin: float = DEFAULT_MARGIN,
    cancel_event: threading.Event | None = None,
) -> bytes:
    """Render the note as a paginated PDF document."""
    width, height = page_size
    document = parse_content(note.content)
    story = _StoryBuilder(width - 2 * margin, height - 2 * margin).build(document)

    buffer = io.BytesIO()
    canv = canvas.Canvas(buffer, pagesize=page_size)
    canv.setTitle(note.title)
    pages = paginate(story, canv, page_size, margin, cancel_event)
    canv.save()
    logger.debug(f"Laid out note {note.id} on {pages} page(s)")
    return buffer.getvalue()


def render(
    note: Note,
    fmt: ExportFormat,
    page_size: tuple[float, float] = LETTER,
    margin: float = DEFAULT_MARGIN,
    cancel_event: threading.Event | None = None,
) -> bytes | None:
    """Render a note to the bytes of an output document.

    Returns:
        The document bytes, or None when ``fmt`` has no renderer
    """
    if fmt is ExportFormat.HTML:
        return render_html(note)
    if fmt is ExportFormat.TXT:
        return render_text(note)
    if fmt is ExportFormat.MD:
        return render_markdown(note)
    if fmt is ExportFormat.RTF:
        return render_rtf(note, page_size, margin)
    if fmt is ExportFormat.PDF:
        return render_pdf(note, page_size, margin, cancel_event)

    logger.warning(f"{fmt.value} export is not supported")
    return None
