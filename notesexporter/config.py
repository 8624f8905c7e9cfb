"""Export settings, read from NOTES_EXPORT_* environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path

from reportlab.lib.pagesizes import A4, letter

from .exceptions import ConfigError
from .sanitize import DEFAULT_MAX_BYTES

PAGE_SIZES = {
    "letter": letter,
    "a4": A4,
}


@dataclass
class ExportSettings:
    """Tunables of an export run.

    Values are validated on construction, so an invalid override raises
    ``ConfigError`` as early as one read from the environment.
    """

    workers: int = 4
    fallback_name: str = "Untitled"
    temp_dir: Path | None = None
    page_size: str = "letter"
    page_margin: float = 72.0
    strip_emoji: bool = True
    max_name_bytes: int = DEFAULT_MAX_BYTES

    def __post_init__(self):
        if self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}")
        if not self.fallback_name.strip():
            raise ConfigError("fallback_name must not be empty")
        if self.page_size not in PAGE_SIZES:
            raise ConfigError(
                f"Unknown page size {self.page_size!r}, expected one of: {', '.join(PAGE_SIZES)}"
            )
        if self.max_name_bytes < 16:
            raise ConfigError(f"max_name_bytes must be at least 16, got {self.max_name_bytes}")

    @property
    def page_dimensions(self) -> tuple[float, float]:
        return PAGE_SIZES[self.page_size]

    @classmethod
    def from_env(cls) -> "ExportSettings":
        """
        Load settings from NOTES_EXPORT_* environment variables.

        Unset variables keep their defaults.

        Raises:
            ConfigError: If a variable holds an invalid value.
        """
        values = {}

        workers = os.environ.get("NOTES_EXPORT_WORKERS")
        if workers:
            values["workers"] = _parse_int("NOTES_EXPORT_WORKERS", workers)

        max_bytes = os.environ.get("NOTES_EXPORT_MAX_NAME_BYTES")
        if max_bytes:
            values["max_name_bytes"] = _parse_int("NOTES_EXPORT_MAX_NAME_BYTES", max_bytes)

        temp_dir = os.environ.get("NOTES_EXPORT_TEMP_DIR")
        if temp_dir:
            values["temp_dir"] = Path(temp_dir).expanduser()

        fallback = os.environ.get("NOTES_EXPORT_FALLBACK_NAME")
        if fallback:
            values["fallback_name"] = fallback

        page_size = os.environ.get("NOTES_EXPORT_PAGE_SIZE")
        if page_size:
            values["page_size"] = page_size.lower()

        return cls(**values)


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
