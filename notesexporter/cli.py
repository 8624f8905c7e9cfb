"""CLI entry point for the Apple Notes exporter."""

import dataclasses
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn

from . import __version__
from .applescript import AppleScriptNoteSource
from .config import PAGE_SIZES, ExportSettings
from .db import NOTES_DB_PATH, DatabaseNoteSource
from .exceptions import ConfigError, ExportError, NoteSourceError
from .exporter import NotesExporter
from .models import ExportFormat, ExportJob, ExportProgress, ExportState
from .render import SUPPORTED_FORMATS
from .sanitize import sanitize
from .sources import FixtureNoteSource, NoteSource

logger = logging.getLogger(__name__)

SOURCES = ("applescript", "database", "fixture")

# Conventional exit status for a run stopped with Ctrl-C
EXIT_CANCELLED = 130


def setup_logging(verbose: bool, quiet: bool) -> None:
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=verbose)],
        force=True,
    )


def make_source(source: str, fixture: Path | None, db_path: Path | None) -> NoteSource:
    """Build the note source selected on the command line."""
    if source == "fixture":
        if fixture is None:
            raise click.UsageError("--fixture is required with --source fixture")
        return FixtureNoteSource(fixture)
    if source == "database":
        return DatabaseNoteSource(db_path or NOTES_DB_PATH)
    return AppleScriptNoteSource()


def source_options(f):
    f = click.option(
        "--db", "db_path", type=click.Path(dir_okay=False, path_type=Path),
        help="NoteStore.sqlite to read with --source database",
    )(f)
    f = click.option(
        "--fixture", type=click.Path(exists=True, dir_okay=False, path_type=Path),
        help="JSON file of notes to read with --source fixture",
    )(f)
    f = click.option(
        "--source", "-s", type=click.Choice(SOURCES), default="applescript", show_default=True,
        help="Where to read notes from",
    )(f)
    return f


def logging_options(f):
    f = click.option("--quiet", "-q", is_flag=True, help="Only show errors")(f)
    f = click.option("--verbose", "-v", is_flag=True, help="Show debug output")(f)
    return f


@click.group()
@click.version_option(version=__version__, prog_name="notes-export")
def cli():
    """Apple Notes Exporter - export a Notes account to a ZIP archive."""
    pass


@cli.command()
@source_options
@logging_options
def accounts(source: str, fixture: Path | None, db_path: Path | None, verbose: bool, quiet: bool):
    """List the Notes accounts that can be exported."""
    setup_logging(verbose, quiet)
    try:
        names = make_source(source, fixture, db_path).list_accounts()
    except NoteSourceError as e:
        raise click.ClickException(str(e))

    if not names:
        click.echo("No accounts found.")
        return

    for name in names:
        click.echo(name)


@cli.command()
@click.option("--account", "-a", help="Account name (default: first account)")
@click.option(
    "--format", "-f", "output_format",
    type=click.Choice([fmt.value for fmt in SUPPORTED_FORMATS], case_sensitive=False),
    default=ExportFormat.HTML.value, show_default=True,
    help="Output format of each note",
)
@click.option(
    "--output", "-o", type=click.Path(dir_okay=False, path_type=Path),
    help="Destination archive (default: <account>.zip in the current folder)",
)
@click.option("--workers", "-w", type=int, help="Notes rendered in parallel")
@click.option("--page-size", type=click.Choice(list(PAGE_SIZES)), help="Page size for PDF and RTF")
@source_options
@logging_options
@click.pass_context
def export(
    ctx: click.Context,
    account: str | None,
    output_format: str,
    output: Path | None,
    workers: int | None,
    page_size: str | None,
    source: str,
    fixture: Path | None,
    db_path: Path | None,
    verbose: bool,
    quiet: bool,
):
    """Export every note of an account into a ZIP archive.

    Notes keep their folder hierarchy inside the archive. Press Ctrl-C to
    cancel; nothing is written to the destination in that case.
    """
    setup_logging(verbose, quiet)

    try:
        settings = ExportSettings.from_env()
        overrides = {}
        if workers is not None:
            overrides["workers"] = workers
        if page_size is not None:
            overrides["page_size"] = page_size
        settings = dataclasses.replace(settings, **overrides)
    except ConfigError as e:
        raise click.ClickException(f"Configuration error: {e}")

    note_source = make_source(source, fixture, db_path)

    try:
        if account is None:
            names = note_source.list_accounts()
            if not names:
                raise click.ClickException("No accounts found.")
            account = names[0]
            logger.info(f"Using account {account!r}")
    except NoteSourceError as e:
        raise click.ClickException(str(e))

    if output is None:
        output = Path.cwd() / f"{sanitize(account) or 'Notes'}.zip"

    job = ExportJob(account, ExportFormat(output_format), output)
    result = run_with_progress(NotesExporter(note_source, settings), job, quiet)

    if result.state is ExportState.CANCELLED:
        click.echo("Export cancelled.", err=True)
        ctx.exit(EXIT_CANCELLED)

    if result.state is ExportState.FAILED:
        message = result.error_message
        if result.working_dir is not None:
            message += f"\nExported notes were kept in {result.working_dir}"
        raise click.ClickException(message)

    click.echo(f"Exported {result.exported} notes to {result.destination}")
    if result.failures:
        click.echo(f"{len(result.failures)} notes could not be exported:")
        for failure in result.failures:
            title = failure.title or "(Untitled)"
            click.echo(f"  {failure.note_id:<10} {title}: {failure.reason}")


def run_with_progress(exporter: NotesExporter, job: ExportJob, quiet: bool = False):
    """Run ``job`` on a background thread while drawing a progress bar.

    Ctrl-C requests cancellation and waits for in-flight notes to finish.
    """
    console = Console(stderr=True)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
        disable=quiet,
    ) as progress:
        task = progress.add_task("Starting export...", total=None)

        def on_progress(update: ExportProgress):
            progress.update(
                task,
                description=update.message,
                completed=update.processed,
                total=update.total or None,
            )

        exporter.progress_callback = on_progress
        try:
            thread = exporter.start(job)
        except ExportError as e:
            raise click.ClickException(str(e))

        try:
            while thread.is_alive():
                thread.join(0.1)
        except KeyboardInterrupt:
            progress.update(task, description="Cancelling...")
            exporter.cancel()
            thread.join()

    return exporter.result


if __name__ == "__main__":
    cli()
