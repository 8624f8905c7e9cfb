"""Shared fixtures for the exporter tests."""

import base64
import io
import json
from pathlib import Path

import pytest
from PIL import Image

from notesexporter.models import Note, RawNote

CREATED = "Monday, January 15, 2024 at 9:30:00 AM"
MODIFIED = "Tuesday, January 16, 2024 at 6:45:10 PM"


@pytest.fixture
def png_bytes():
    """A small red PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (40, 20), (220, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_data_uri(png_bytes):
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def make_record():
    """Factory for raw note records with sensible defaults."""
    counter = iter(range(1, 10_000))

    def factory(title="Note", content="<div>Hello</div>", path=("Notes",), **kwargs):
        return RawNote(
            id=kwargs.pop("id", f"x-coredata://note/p{next(counter)}"),
            title=title,
            content=content,
            creation_date=kwargs.pop("creation_date", CREATED),
            modification_date=kwargs.pop("modification_date", MODIFIED),
            path=tuple(path),
        )

    return factory


@pytest.fixture
def make_note(make_record):
    """Factory for parsed notes."""
    def factory(**kwargs):
        return Note.from_record(make_record(**kwargs))

    return factory


@pytest.fixture
def fixture_file(tmp_path):
    """Write a JSON notes fixture and return its path."""
    def factory(accounts: dict) -> Path:
        path = tmp_path / "notes.json"
        path.write_text(json.dumps({"accounts": accounts}), encoding="utf-8")
        return path

    return factory


class ListSource:
    """In-memory note source."""

    def __init__(self, notes=None, accounts=("iCloud",), error=None):
        self.notes = list(notes or [])
        self.accounts = list(accounts)
        self.error = error

    def list_accounts(self):
        return list(self.accounts)

    def fetch_notes(self, account):
        if self.error is not None:
            raise self.error
        return list(self.notes)


@pytest.fixture
def list_source():
    return ListSource
