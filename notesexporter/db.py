"""SQLite read layer for the Apple Notes database."""

import gzip
import html
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .exceptions import NoteSourceError
from .models import RawNote

logger = logging.getLogger(__name__)

# Apple Notes database location
NOTES_DB_PATH = Path(
    "~/Library/Group Containers/group.com.apple.notes/NoteStore.sqlite"
).expanduser()

# Core Data stores timestamps as seconds since this moment
CORE_DATA_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)


class NotesDBError(NoteSourceError):
    """Base exception for Notes database errors."""
    pass


class DatabaseNotFoundError(NotesDBError):
    """Notes database file not found."""
    pass


class DatabaseLockedError(NotesDBError):
    """Notes database is locked by another process."""
    pass


def get_connection(db_path: Path = NOTES_DB_PATH) -> sqlite3.Connection:
    """Get a read-only connection to the Notes database."""
    if not db_path.exists():
        raise DatabaseNotFoundError(f"Notes database not found at {db_path}")

    try:
        # Connect in read-only mode with timeout for locked database
        conn = sqlite3.connect(
            f"file:{db_path}?mode=ro",
            uri=True,
            timeout=5.0
        )
        conn.row_factory = sqlite3.Row
        return conn
    except sqlite3.OperationalError as e:
        raise _translate_error(e) from e


def _translate_error(e: sqlite3.Error) -> NotesDBError:
    error_msg = str(e).lower()
    if "database is locked" in error_msg:
        return DatabaseLockedError(
            "Notes database is locked. Please close Notes app and try again."
        )
    if "unable to open database file" in error_msg:
        return NotesDBError(
            "Cannot access Notes database. Please grant Full Disk Access to Terminal:\n"
            "System Settings > Privacy & Security > Full Disk Access > Enable Terminal"
        )
    return NotesDBError(f"Database error: {e}")


def extract_text_from_note_data(data: bytes) -> str:
    """Extract plain text from compressed note data.

    Apple Notes stores content as gzip-compressed protobuf.
    This pulls out the readable UTF-8 runs; formatting and attachments
    are lost.
    """
    if not data:
        return ""

    try:
        decompressed = gzip.decompress(data)
    except (OSError, EOFError):
        logger.debug("Note data is not gzip-compressed, skipping")
        return ""

    # Extract UTF-8 text sequences from protobuf binary
    text_parts = []
    current_text = bytearray()

    for byte in decompressed:
        # Printable ASCII, whitespace, or UTF-8 lead/continuation bytes
        if 32 <= byte <= 126 or byte in (9, 10, 13) or byte >= 128:
            current_text.append(byte)
        else:
            if len(current_text) >= 3:
                text_parts.append(current_text.decode("utf-8", errors="ignore"))
            current_text = bytearray()

    # Handle remaining text
    if len(current_text) >= 3:
        text_parts.append(current_text.decode("utf-8", errors="ignore"))

    return " ".join(text_parts)


def text_to_note_html(text: str) -> str:
    """Wrap plain text lines in the ``<div>`` markup Notes uses for bodies."""
    lines = []
    for line in text.splitlines():
        if line.strip():
            lines.append(f"<div>{html.escape(line)}</div>")
        else:
            lines.append("<div><br></div>")
    return "\n".join(lines)


def core_data_to_iso(value: float | None) -> str:
    """Convert a Core Data timestamp to ISO 8601 ("" when missing)."""
    if value is None:
        return ""
    return (CORE_DATA_EPOCH + timedelta(seconds=value)).isoformat()


ENTITY_QUERY = "SELECT Z_ENT FROM Z_PRIMARYKEY WHERE Z_NAME = ?"


class DatabaseNoteSource:
    """Reads notes straight from NoteStore.sqlite.

    Works without automation permission (Full Disk Access is enough) but
    only recovers the plain text of each note.
    """

    def __init__(self, db_path: Path = NOTES_DB_PATH):
        self.db_path = Path(db_path)

    def list_accounts(self) -> list[str]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"""
                SELECT ZNAME as name
                FROM ZICCLOUDSYNCINGOBJECT
                WHERE Z_ENT = ({ENTITY_QUERY})
                AND ZNAME IS NOT NULL
                AND COALESCE(ZMARKEDFORDELETION, 0) = 0
                ORDER BY Z_PK
                """,
                ("ICAccount",),
            )
            return [row["name"] for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise _translate_error(e) from e
        finally:
            conn.close()

    def fetch_notes(self, account: str) -> list[RawNote]:
        conn = get_connection(self.db_path)
        try:
            account_row = conn.execute(
                f"""
                SELECT Z_PK as id
                FROM ZICCLOUDSYNCINGOBJECT
                WHERE Z_ENT = ({ENTITY_QUERY})
                AND ZNAME = ?
                """,
                ("ICAccount", account),
            ).fetchone()
            if account_row is None:
                logger.warning(f"Account {account!r} not found in {self.db_path}")
                return []

            folders = self._load_folders(conn)

            cursor = conn.execute(
                """
                SELECT
                    n.Z_PK as id,
                    COALESCE(n.ZTITLE1, n.ZTITLE, n.ZSNIPPET) as title,
                    n.ZCREATIONDATE as created,
                    n.ZMODIFICATIONDATE as modified,
                    n.ZFOLDER as folder,
                    nd.ZDATA as data
                FROM ZICCLOUDSYNCINGOBJECT n
                JOIN ZICCLOUDSYNCINGOBJECT f ON n.ZFOLDER = f.Z_PK
                LEFT JOIN ZICNOTEDATA nd ON n.ZNOTEDATA = nd.Z_PK
                WHERE f.ZOWNER = ?
                AND n.ZNOTEDATA IS NOT NULL
                AND COALESCE(n.ZMARKEDFORDELETION, 0) = 0
                AND COALESCE(n.ZISPASSWORDPROTECTED, 0) = 0
                ORDER BY n.Z_PK
                """,
                (account_row["id"],),
            )
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise _translate_error(e) from e
        finally:
            conn.close()

        notes = []
        for row in rows:
            created = core_data_to_iso(row["created"])
            modified = core_data_to_iso(row["modified"]) or created
            notes.append(RawNote(
                id=str(row["id"]),
                title=row["title"] or "",
                content=text_to_note_html(extract_text_from_note_data(row["data"])),
                creation_date=created,
                modification_date=modified,
                path=_folder_path(folders, row["folder"]),
            ))
        logger.info(f"Read {len(notes)} notes of account {account!r} from {self.db_path}")
        return notes

    @staticmethod
    def _load_folders(conn: sqlite3.Connection) -> dict[int, sqlite3.Row]:
        cursor = conn.execute(
            f"""
            SELECT Z_PK as id, ZTITLE as title, ZPARENT as parent
            FROM ZICCLOUDSYNCINGOBJECT
            WHERE Z_ENT = ({ENTITY_QUERY})
            """,
            ("ICFolder",),
        )
        return {row["id"]: row for row in cursor.fetchall()}


def _folder_path(folders: dict[int, sqlite3.Row], folder_id: int | None) -> tuple[str, ...]:
    """Folder titles from the top-level folder down to ``folder_id``."""
    path = []
    seen = set()
    while folder_id in folders and folder_id not in seen:
        seen.add(folder_id)
        folder = folders[folder_id]
        path.append(folder["title"] or "")
        folder_id = folder["parent"]
    return tuple(reversed(path))
