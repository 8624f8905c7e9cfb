"""Data models for the Apple Notes exporter."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from .exceptions import DateParseError

# AppleScript's `date as string`, e.g. "Monday, June 21, 2021 at 10:40:09 PM"
APPLE_DATE_FORMAT = "%A, %B %d, %Y at %I:%M:%S %p"


class ExportFormat(str, Enum):
    """Output document formats."""

    HTML = "html"
    RTF = "rtf"
    TXT = "txt"
    PDF = "pdf"
    MD = "md"
    RTFD = "rtfd"

    @property
    def extension(self) -> str:
        return self.value


class ExportState(str, Enum):
    """Phases of an export job."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ExportState.COMPLETED, ExportState.FAILED, ExportState.CANCELLED)


def parse_note_date(value: str) -> datetime:
    """Parse a date string supplied by a note source.

    Accepts AppleScript's long date format (interpreted in the local
    timezone) and ISO 8601. The result is always timezone-aware.

    Raises:
        DateParseError: If the string matches neither format
    """
    # Recent macOS versions put a narrow no-break space before AM/PM
    text = " ".join(value.replace("\u202f", " ").replace("\xa0", " ").split())
    if not text:
        raise DateParseError("Empty date string")

    try:
        parsed = datetime.strptime(text, APPLE_DATE_FORMAT)
    except ValueError:
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise DateParseError(f"Unrecognized date: {value!r}") from None

    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


@dataclass(frozen=True)
class RawNote:
    """A note record as returned by a note source, before any parsing."""

    id: str
    title: str
    content: str
    creation_date: str
    modification_date: str
    path: tuple[str, ...] = ()


@dataclass(frozen=True)
class Attachment:
    """Binary data embedded in a note's content."""

    data: bytes
    mime_type: str


@dataclass(frozen=True)
class Note:
    """Represents an Apple Note ready for export."""

    id: str
    title: str
    content: str
    creation_date: datetime
    modification_date: datetime
    path: tuple[str, ...] = ()

    @classmethod
    def from_record(cls, record: RawNote) -> "Note":
        """Build a note from a raw source record.

        Raises:
            DateParseError: If either date cannot be parsed
        """
        return cls(
            id=record.id,
            title=record.title,
            content=record.content,
            creation_date=parse_note_date(record.creation_date),
            modification_date=parse_note_date(record.modification_date),
            path=tuple(record.path),
        )

    @property
    def attachments(self) -> list[Attachment]:
        """Inline images extracted from the note content."""
        from .richtext import parse_content

        return parse_content(self.content).attachments


@dataclass(frozen=True)
class ExportJob:
    """Immutable configuration of one export run."""

    account: str
    output_format: ExportFormat
    destination: Path
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class ExportProgress:
    """Progress update sent to the interactive layer."""

    state: ExportState
    processed: int = 0
    total: int = 0
    message: str = ""


@dataclass
class NoteFailure:
    """A note that could not be exported."""

    note_id: str
    title: str
    reason: str


@dataclass
class ExportResult:
    """Final result of an export job."""

    state: ExportState
    job_id: str
    destination: Path
    exported: int = 0
    failures: list[NoteFailure] = field(default_factory=list)
    error_message: str = ""
    working_dir: Path | None = None

    @property
    def success(self) -> bool:
        return self.state is ExportState.COMPLETED
