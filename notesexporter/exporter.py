"""Export orchestration: notes in, one ZIP archive out."""

import logging
import shutil
import tempfile
import threading
import uuid
from concurrent.futures import CancelledError, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable

from .archive import archive_directory
from .config import ExportSettings
from .exceptions import (
    ArchiveError,
    ExportCancelled,
    ExportError,
    NoteSourceError,
    RenderError,
    WorkingDirectoryError,
)
from .models import (
    ExportJob,
    ExportProgress,
    ExportResult,
    ExportState,
    Note,
    NoteFailure,
    RawNote,
)
from .paths import ensure_path, write_unique
from .render import render
from .sanitize import FormatRules, rules_for, sanitize
from .sources import NoteSource

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".zip"
DEFAULT_ROOT_NAME = "export"
DEFAULT_NOTE_NAME = "Untitled"
WORKING_DIR_PREFIX = "notes-export-"


def export_root_name(destination: Path, rules: FormatRules = FormatRules()) -> str:
    """Name of the top-level folder inside the archive.

    The destination file name without its ``.zip`` suffix, sanitized;
    ``"export"`` when nothing usable remains.
    """
    name = destination.name
    if name.lower().endswith(ARCHIVE_SUFFIX):
        name = name[: -len(ARCHIVE_SUFFIX)]
    return sanitize(name, rules) or DEFAULT_ROOT_NAME


class NotesExporter:
    """Runs export jobs against a note source.

    Notes are rendered concurrently and written in batch order into a
    private working directory, which is archived to the job's destination
    once every note has been handled.
    Progress goes to ``progress_callback``; setting ``cancel_event`` (or
    calling :meth:`cancel`) stops the run between notes.
    """

    def __init__(
        self,
        source: NoteSource,
        settings: ExportSettings | None = None,
        progress_callback: Callable[[ExportProgress], None] | None = None,
        cancel_event: threading.Event | None = None,
    ):
        self.source = source
        self.settings = settings or ExportSettings()
        self.progress_callback = progress_callback
        self.cancel_event = cancel_event or threading.Event()
        self.result: ExportResult | None = None

        self._lock = threading.Lock()
        self._progress = ExportProgress(ExportState.IDLE)

    @property
    def state(self) -> ExportState:
        with self._lock:
            return self._progress.state

    @property
    def progress(self) -> ExportProgress:
        with self._lock:
            return ExportProgress(
                self._progress.state,
                self._progress.processed,
                self._progress.total,
                self._progress.message,
            )

    def report_progress(
        self,
        state: ExportState | None = None,
        processed: int | None = None,
        total: int | None = None,
        message: str = "",
    ):
        """Update the progress signal and notify the callback."""
        with self._lock:
            if state is not None:
                self._progress.state = state
            if processed is not None:
                self._progress.processed = processed
            if total is not None:
                self._progress.total = total
            self._progress.message = message
        if self.progress_callback:
            self.progress_callback(self.progress)

    def check_cancelled(self):
        """Raise if the user requested cancellation."""
        if self.cancel_event.is_set():
            raise ExportCancelled("Export cancelled by user")

    def cancel(self):
        self.cancel_event.set()

    def run(self, job: ExportJob) -> ExportResult:
        """Execute ``job`` on the calling thread.

        Raises:
            ExportError: If the job is rejected before it starts
        """
        self._begin(job)
        return self._execute(job)

    def start(self, job: ExportJob) -> threading.Thread:
        """Execute ``job`` on a background thread.

        The result is stored in :attr:`result` once the thread finishes.

        Raises:
            ExportError: If the job is rejected before it starts
        """
        self._begin(job)
        thread = threading.Thread(
            target=self._execute, args=(job,), name=f"export-{job.job_id}", daemon=True
        )
        thread.start()
        return thread

    def _begin(self, job: ExportJob):
        if not job.account:
            raise ExportError("No account selected")
        if job.destination is None or str(job.destination) in ("", "."):
            raise ExportError("No destination selected")

        with self._lock:
            if self._progress.state is ExportState.RUNNING:
                raise ExportError("An export is already running")
            self._progress = ExportProgress(ExportState.RUNNING, message="Starting export")
            self.result = None
        self.cancel_event.clear()
        logger.info(
            f"Exporting account {job.account!r} as {job.output_format.value} to {job.destination}"
        )

    def _execute(self, job: ExportJob) -> ExportResult:
        destination = Path(job.destination)
        result = ExportResult(ExportState.RUNNING, job.job_id, destination)
        working_dir = None
        try:
            self.report_progress(message=f"Reading notes of {job.account}")
            records = self.source.fetch_notes(job.account)
            self.check_cancelled()

            working_dir = self._create_working_dir()
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise WorkingDirectoryError(
                    f"Cannot create destination folder {destination.parent}: {e}"
                ) from e

            rules = rules_for(
                job.output_format,
                strip_emoji=self.settings.strip_emoji,
                max_bytes=self.settings.max_name_bytes,
            )
            root = working_dir / export_root_name(destination, rules)
            root.mkdir()

            self._export_notes(records, job, root, rules, result)

            if self.cancel_event.is_set():
                raise ExportCancelled("Export cancelled by user")

            self.report_progress(message=f"Writing {destination.name}")
            try:
                archive_directory(root, destination)
            except ArchiveError:
                # Keep the rendered notes so they can be recovered by hand
                result.working_dir = working_dir
                working_dir = None
                raise

            return self._finish(result, ExportState.COMPLETED)
        except ExportCancelled as e:
            logger.info("Export cancelled")
            result.error_message = str(e)
            return self._finish(result, ExportState.CANCELLED)
        except (NoteSourceError, ExportError) as e:
            logger.error(f"Export failed: {e}")
            result.error_message = str(e)
            return self._finish(result, ExportState.FAILED)
        except Exception as e:
            # Runs on a background thread, so the state must never stay RUNNING
            logger.exception("Unexpected error during export")
            result.error_message = f"Unexpected error: {e}"
            return self._finish(result, ExportState.FAILED)
        finally:
            if working_dir is not None:
                shutil.rmtree(working_dir, ignore_errors=True)

    def _create_working_dir(self) -> Path:
        base = self.settings.temp_dir or Path(tempfile.gettempdir())
        # Named per run, so a job retried after a kept working dir gets its own
        working_dir = base / f"{WORKING_DIR_PREFIX}{uuid.uuid4().hex}"
        try:
            working_dir.mkdir(parents=True)
        except OSError as e:
            raise WorkingDirectoryError(f"Cannot create working directory {working_dir}: {e}") from e
        logger.debug(f"Working directory: {working_dir}")
        return working_dir

    def _export_notes(
        self,
        records: list[RawNote],
        job: ExportJob,
        root: Path,
        rules: FormatRules,
        result: ExportResult,
    ):
        total = len(records)
        processed = 0
        self.report_progress(processed=0, total=total, message=f"Exporting {total} notes")

        with ThreadPoolExecutor(max_workers=self.settings.workers) as executor:
            futures = [
                executor.submit(self._render_note, record, job, rules) for record in records
            ]
            future_to_index = {future: index for index, future in enumerate(futures)}

            # Notes render in any order but are written in batch order, so
            # collision numbers follow the order the source returned them in
            finished = set()
            next_index = 0
            for future in as_completed(futures):
                finished.add(future_to_index[future])
                while next_index in finished:
                    if self.cancel_event.is_set():
                        for pending in future_to_index:
                            pending.cancel()
                        return

                    record = records[next_index]
                    ready = futures[next_index]
                    futures[next_index] = None
                    del future_to_index[ready]
                    next_index += 1
                    try:
                        note, name, data = ready.result()
                        path = self._write_note(root, note, name, data, job, rules)
                        result.exported += 1
                        logger.debug(f"Wrote {path.relative_to(root.parent)}")
                    except (ExportCancelled, CancelledError):
                        continue
                    except Exception as e:
                        logger.warning(f"Failed to export note {record.id} ({record.title!r}): {e}")
                        result.failures.append(NoteFailure(record.id, record.title, str(e)))

                    processed += 1
                    self.report_progress(
                        processed=processed,
                        total=total,
                        message=f"Exported {processed} of {total}",
                    )

    def _render_note(self, record: RawNote, job: ExportJob, rules: FormatRules):
        self.check_cancelled()

        note = Note.from_record(record)
        name = (
            sanitize(note.title, rules)
            or sanitize(self.settings.fallback_name, rules)
            or DEFAULT_NOTE_NAME
        )

        data = render(
            note,
            job.output_format,
            page_size=self.settings.page_dimensions,
            margin=self.settings.page_margin,
            cancel_event=self.cancel_event,
        )
        if data is None:
            raise RenderError(f"{job.output_format.value} export is not supported")
        return note, name, data

    def _write_note(
        self, root: Path, note: Note, name: str, data: bytes, job: ExportJob, rules: FormatRules
    ) -> Path:
        folder = ensure_path(root, note.path, rules)
        return write_unique(folder, name, job.output_format.extension, data)

    def _finish(self, result: ExportResult, state: ExportState) -> ExportResult:
        result.state = state
        self.result = result
        if state is ExportState.COMPLETED:
            message = f"Exported {result.exported} notes"
            if result.failures:
                message += f", {len(result.failures)} failed"
            logger.info(f"{message} to {result.destination}")
        else:
            message = result.error_message
        self.report_progress(state=state, message=message)
        return result
