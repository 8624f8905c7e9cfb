"""AppleScript read layer for exporting Apple Notes."""

import logging
import subprocess

from .exceptions import NoteSourceError
from .models import RawNote

logger = logging.getLogger(__name__)

# ASCII separators the export script joins its output with
RECORD_SEPARATOR = "\x1e"
FIELD_SEPARATOR = "\x1f"
PATH_SEPARATOR = "\x1d"

RECORD_FIELDS = 6


class AppleScriptError(NoteSourceError):
    """Base exception for AppleScript errors."""
    pass


class AppleScriptPermissionError(AppleScriptError):
    """TCC permission denied error."""
    pass


class AppleScriptExecutionError(AppleScriptError):
    """AppleScript execution failed."""
    pass


def escape_for_applescript(text: str) -> str:
    """Escape a string for safe use in AppleScript.

    Handles backslashes and double quotes which have special meaning.
    """
    # Escape backslashes first, then quotes
    text = text.replace("\\", "\\\\")
    text = text.replace('"', '\\"')
    return text


def run_applescript(script: str, timeout: float | None = None) -> str:
    """Execute AppleScript and return the result.

    Args:
        script: The AppleScript code to execute
        timeout: Seconds to wait before giving up (None waits forever)

    Returns:
        The stdout from the script execution, without the trailing newline

    Raises:
        AppleScriptPermissionError: If TCC permissions are denied
        AppleScriptExecutionError: If the script fails to execute
    """
    try:
        result = subprocess.run(
            ["osascript", "-e", script],
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
        return result.stdout.removesuffix("\n")
    except FileNotFoundError as e:
        raise AppleScriptExecutionError(
            "osascript not found. Exporting through AppleScript requires macOS."
        ) from e
    except subprocess.TimeoutExpired as e:
        raise AppleScriptExecutionError(
            f"AppleScript timed out after {timeout} seconds"
        ) from e
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.strip()

        # Check for TCC permission errors
        if "not allowed" in stderr.lower() or "permission" in stderr.lower():
            raise AppleScriptPermissionError(
                "AppleScript access denied. Please grant automation permission:\n"
                "System Settings > Privacy & Security > Automation > Enable Terminal"
            ) from e

        # Check for Notes-specific errors
        if "notes" in stderr.lower() and "doesn't understand" in stderr.lower():
            raise AppleScriptExecutionError(
                f"Notes app error: {stderr}"
            ) from e

        # Generic error
        raise AppleScriptExecutionError(
            f"AppleScript failed: {stderr}"
        ) from e


def build_export_script(account: str) -> str:
    """AppleScript that dumps every unlocked note of an account.

    Records are separated by RS, fields by US and folder names by GS:
    id, title, body, creation date, modification date, folder path.
    """
    account_escaped = escape_for_applescript(account)

    return f'''
    on joinList(theList, theDelimiter)
        set savedDelimiters to AppleScript's text item delimiters
        set AppleScript's text item delimiters to theDelimiter
        set joined to theList as string
        set AppleScript's text item delimiters to savedDelimiters
        return joined
    end joinList

    set recordSep to character id 30
    set fieldSep to character id 31
    set pathSep to character id 29
    set output to {{}}

    tell application "Notes"
        set chosenAccount to missing value
        repeat with theAccount in accounts
            if name of theAccount as string = "{account_escaped}" then
                set chosenAccount to theAccount
            end if
        end repeat
        if chosenAccount is missing value then error "Account not found: {account_escaped}"

        repeat with currentNote in notes of chosenAccount
            if not (password protected of currentNote as boolean) then
                set noteID to id of currentNote as string
                set noteTitle to name of currentNote as string
                set noteBody to body of currentNote as string
                set creationDate to creation date of currentNote as string
                set modificationDate to modification date of currentNote as string

                -- Climb the folder chain up to the account
                set internalPath to {{}}
                set currentContainer to container of currentNote
                repeat while class of currentContainer is folder
                    set beginning of internalPath to name of currentContainer as string
                    set currentContainer to container of currentContainer
                end repeat

                set pathText to my joinList(internalPath, pathSep)
                set noteRecord to {{noteID, noteTitle, noteBody, creationDate, modificationDate, pathText}}
                set end of output to my joinList(noteRecord, fieldSep)
            end if
        end repeat
    end tell

    return my joinList(output, recordSep)
    '''


ACCOUNTS_SCRIPT = '''
set theAccountNames to {}
tell application "Notes"
    repeat with theAccount in accounts
        copy name of theAccount as string to end of theAccountNames
    end repeat
end tell
set AppleScript's text item delimiters to linefeed
return theAccountNames as string
'''


def parse_export_output(output: str) -> list[RawNote]:
    """Parse the export script's output into raw note records.

    Raises:
        AppleScriptExecutionError: If a record does not have the expected fields
    """
    if not output:
        return []

    notes = []
    for index, record in enumerate(output.split(RECORD_SEPARATOR)):
        fields = record.split(FIELD_SEPARATOR)
        if len(fields) != RECORD_FIELDS:
            raise AppleScriptExecutionError(
                f"Malformed note record #{index}: expected {RECORD_FIELDS} fields, got {len(fields)}"
            )
        note_id, title, body, created, modified, path_text = fields
        path = tuple(segment for segment in path_text.split(PATH_SEPARATOR) if segment)
        notes.append(RawNote(
            id=note_id,
            title=title,
            content=body,
            creation_date=created,
            modification_date=modified,
            path=path,
        ))
    return notes


class AppleScriptNoteSource:
    """Reads notes from the Notes app through osascript."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    def list_accounts(self) -> list[str]:
        output = run_applescript(ACCOUNTS_SCRIPT, timeout=self.timeout)
        return [line for line in output.splitlines() if line.strip()]

    def fetch_notes(self, account: str) -> list[RawNote]:
        logger.info(f"Reading notes of account {account!r} from Notes (this can take a while)")
        output = run_applescript(build_export_script(account), timeout=self.timeout)
        notes = parse_export_output(output)
        logger.info(f"Read {len(notes)} notes from Notes")
        return notes
