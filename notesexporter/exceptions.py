"""Exceptions raised by the export pipeline."""


class ExportError(Exception):
    """Base exception for run-level export errors."""
    pass


class ExportCancelled(ExportError):
    """Raised when the user cancels the export."""
    pass


class WorkingDirectoryError(ExportError):
    """The temporary working directory or destination folder is unusable."""
    pass


class ArchiveError(ExportError):
    """The final archive could not be written."""
    pass


class NoteError(Exception):
    """Base exception for errors confined to a single note."""
    pass


class DateParseError(NoteError):
    """A note date string is not in a recognized format."""
    pass


class RenderError(NoteError):
    """A note could not be rendered to the requested format."""
    pass


class NoteSourceError(Exception):
    """Base exception for failures of a note source as a whole."""
    pass


class ConfigError(Exception):
    """Invalid export configuration."""
    pass
