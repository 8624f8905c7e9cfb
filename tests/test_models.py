"""Tests for note records, dates and job results."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from notesexporter.exceptions import DateParseError
from notesexporter.models import (
    ExportFormat,
    ExportJob,
    ExportResult,
    ExportState,
    Note,
    RawNote,
    parse_note_date,
)


class TestParseNoteDate:
    """Tests for parse_note_date."""

    def test_applescript_long_format(self):
        parsed = parse_note_date("Monday, January 15, 2024 at 9:30:00 AM")
        assert (parsed.year, parsed.month, parsed.day) == (2024, 1, 15)
        assert (parsed.hour, parsed.minute) == (9, 30)
        assert parsed.tzinfo is not None

    def test_narrow_no_break_space_before_meridiem(self):
        """macOS 13+ separates the time and AM/PM with U+202F."""
        parsed = parse_note_date("Tuesday, January 16, 2024 at 6:45:10\u202fPM")
        assert parsed.hour == 18
        assert parsed.second == 10

    def test_iso_with_zulu(self):
        parsed = parse_note_date("2024-03-01T12:00:00Z")
        assert parsed == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_naive_iso_gets_local_timezone(self):
        parsed = parse_note_date("2024-03-01T12:00:00")
        assert parsed.tzinfo is not None
        assert parsed.replace(tzinfo=None) == datetime(2024, 3, 1, 12, 0)

    @pytest.mark.parametrize("value", ["", "   ", "yesterday", "2024-13-45"])
    def test_invalid_dates_raise(self, value):
        with pytest.raises(DateParseError):
            parse_note_date(value)


class TestNote:
    """Tests for Note.from_record."""

    def test_from_record(self, make_record):
        record = make_record(title="Groceries", path=("Notes", "Home"))
        note = Note.from_record(record)
        assert note.title == "Groceries"
        assert note.path == ("Notes", "Home")
        assert note.creation_date < note.modification_date

    def test_bad_date_raises(self):
        record = RawNote("1", "t", "", "not a date", "also not")
        with pytest.raises(DateParseError):
            Note.from_record(record)

    def test_attachments(self, make_note, png_data_uri):
        note = make_note(content=f'<div>Photo</div><div><img src="{png_data_uri}"></div>')
        assert len(note.attachments) == 1
        assert note.attachments[0].mime_type == "image/png"


class TestExportTypes:
    """Tests for formats, states and job values."""

    def test_extensions(self):
        assert ExportFormat.HTML.extension == "html"
        assert ExportFormat.MD.extension == "md"
        assert ExportFormat("pdf") is ExportFormat.PDF
        assert ExportFormat.RTFD.extension == "rtfd"

    def test_terminal_states(self):
        assert ExportState.COMPLETED.is_terminal
        assert ExportState.CANCELLED.is_terminal
        assert ExportState.FAILED.is_terminal
        assert not ExportState.RUNNING.is_terminal
        assert not ExportState.IDLE.is_terminal

    def test_jobs_get_unique_ids(self):
        first = ExportJob("iCloud", ExportFormat.HTML, Path("a.zip"))
        second = ExportJob("iCloud", ExportFormat.HTML, Path("a.zip"))
        assert first.job_id != second.job_id

    def test_result_success(self):
        result = ExportResult(ExportState.COMPLETED, "id", Path("a.zip"))
        assert result.success
        result.state = ExportState.FAILED
        assert not result.success
