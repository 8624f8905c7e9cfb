"""Note sources: where raw note records come from."""

import json
import logging
from pathlib import Path
from typing import Protocol

from .converters import markdown_to_html
from .exceptions import NoteSourceError
from .models import RawNote

logger = logging.getLogger(__name__)


class NoteSource(Protocol):
    """Anything that can enumerate accounts and return their notes."""

    def list_accounts(self) -> list[str]:
        ...

    def fetch_notes(self, account: str) -> list[RawNote]:
        """Return every exportable note of ``account``.

        Raises:
            NoteSourceError: If the source cannot be read at all
        """
        ...


class FixtureNoteSource:
    """Notes loaded from a JSON file.

    The file maps account names to lists of note records::

        {"accounts": {"iCloud": [{"id": "1", "title": "Groceries",
                                  "body": "<div>Milk</div>",
                                  "created": "...", "modified": "...",
                                  "path": ["Notes"]}]}}

    A record may provide ``markdown`` instead of ``body``; it is converted
    to Apple Notes HTML.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> dict:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise NoteSourceError(f"Fixture file not found: {self.path}") from None
        except json.JSONDecodeError as e:
            raise NoteSourceError(f"Invalid fixture file {self.path}: {e}") from e

        accounts = data.get("accounts") if isinstance(data, dict) else None
        if not isinstance(accounts, dict):
            raise NoteSourceError(f"Fixture file {self.path} has no 'accounts' mapping")
        return accounts

    def list_accounts(self) -> list[str]:
        return list(self._load())

    def fetch_notes(self, account: str) -> list[RawNote]:
        records = self._load().get(account)
        if records is None:
            logger.warning(f"Account {account!r} not found in {self.path}")
            return []
        if not isinstance(records, list):
            raise NoteSourceError(f"Notes of account {account!r} must be a list")

        notes = []
        for index, record in enumerate(records):
            try:
                notes.append(_record_to_note(record, index))
            except (KeyError, TypeError, AttributeError) as e:
                raise NoteSourceError(f"Malformed note record #{index} in {self.path}: {e}") from e
        return notes


def _record_to_note(record: dict, index: int) -> RawNote:
    if "markdown" in record:
        content = markdown_to_html(record["markdown"])
    else:
        content = record.get("body", "")

    return RawNote(
        id=str(record.get("id", index)),
        title=record.get("title", ""),
        content=content,
        creation_date=record["created"],
        modification_date=record.get("modified", record["created"]),
        path=tuple(str(segment) for segment in record.get("path", [])),
    )
