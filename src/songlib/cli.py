import sys
from pathlib import Path

import click

from . import config
from .exceptions import SongLibError
from .library import SongLibrary
from .logging_config import setup_logging
from .search import SearchMode
from .sniffer import detect

_MODES = {"phrase": SearchMode.PHRASE, "all": SearchMode.ALL_WORDS, "any": SearchMode.ANY_WORD}

library_option = click.option(
    "--library", "library_dir", default=None, metavar="DIR",
    type=click.Path(file_okay=False, path_type=Path),
    help="Library directory (default: $SONGLIB_LIBRARY_DIR or ~/.songlib/songs).",
)


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _open(library_dir: Path | None) -> SongLibrary:
    try:
        return SongLibrary.open(library_dir)
    except OSError as exc:
        _fail(f"Could not open library: {exc}")


@click.group()
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log debug output.")
def main(verbose: bool) -> None:
    """Import song lyrics and search them.

    \b
    Supported formats:
      - OpenLyrics XML
      - songlib JSON
      - songlib XML (versions 1 and 2)
      - ChurchView datasets (.cvdat)
    Any of these may also be wrapped in a zip archive.
    """
    setup_logging("DEBUG" if verbose else config.LOG_LEVEL, verbose=verbose)


@main.command("detect")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def detect_command(file: Path) -> None:
    """Print the format of FILE."""
    try:
        fmt = detect(file.read_bytes(), file.name)
    except SongLibError as exc:
        _fail(str(exc))
    click.echo(fmt.value)


@main.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@library_option
def import_command(file: Path, library_dir: Path | None) -> None:
    """Import the songs in FILE into the library."""
    with _open(library_dir) as library:
        try:
            songs = library.import_songs(file)
        except (SongLibError, OSError) as exc:
            _fail(str(exc))

        for song in songs:
            click.echo(f"Imported {song.title or song.id}")
        click.echo(f"{len(songs)} song(s) imported into {library.directory}")


@main.command("search")
@click.argument("text")
@click.option("--mode", type=click.Choice(list(_MODES)), default="phrase", show_default=True,
              help="phrase: words in order; all: every word; any: at least one word.")
@click.option("--max", "max_results", type=int, default=config.DEFAULT_MAX_RESULTS,
              show_default=True, help="Maximum number of results.")
@library_option
def search_command(text: str, mode: str, max_results: int, library_dir: Path | None) -> None:
    """Search the library for TEXT."""
    with _open(library_dir) as library:
        results = library.search(text, _MODES[mode], max_results)

    if not results:
        click.echo("No matches.")
        return

    for result in results:
        click.echo(f"{result.score:7.3f}  {result.song.title}  ({result.path})")
        for name, snippet in result.highlights.items():
            click.echo(f"         {name}: {' / '.join(line for line in snippet.splitlines() if line.strip())}")


@main.command("reindex")
@library_option
def reindex_command(library_dir: Path | None) -> None:
    """Rebuild the index from the song files in the library."""
    with _open(library_dir) as library:
        report = library.reindex()

    click.echo(f"Indexed {report.indexed} song(s), removed {len(report.removed)}")
    for path, reason in report.failures.items():
        click.echo(f"Failed: {path}: {reason}", err=True)
