"""A directory of song files with a full-text index and per-song metadata.

Layout::

    <library>/
        amazing-grace.json          song files, any supported format
        how-great-thou-art.xml
        _index/songs.db             SQLite FTS5 index (disposable)
        _metadata/amazing-grace.json_metadata.json

The song files are the source of truth.  Opening a library reconciles the
index and the sidecars with the files on disk before returning.
"""

import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from . import config
from .exceptions import SongLibError
from .index import IndexDocument, SongIndex
from .metadata import MetadataStore
from .models import Song, SongMetadata, VerseAnnotation
from .reconcile import ScannedFile, plan_reconciliation
from .search import SearchMode, SearchResult, search
from .serialize import dumps
from .sniffer import import_path

logger = logging.getLogger(__name__)


def _slugify(text: str) -> str:
    """Turn a song title into a file name stem, e.g. "It Is Well" -> "it-is-well"."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug)
    return slug.strip("-")


@dataclass
class ReindexReport:
    """Summary of one reconciliation pass."""

    indexed: int = 0
    removed: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


class SongLibrary:
    """Songs stored in one directory, searchable through a SongIndex.

    All mutating operations hold a single lock; searches don't need it.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.index_dir = self.directory / config.INDEX_DIR
        self.metadata_dir = self.directory / config.METADATA_DIR

        self._lock = threading.RLock()
        self._store = MetadataStore(self.metadata_dir)
        self._index: SongIndex | None = None
        self._songs: dict[str, Song] = {}
        self._paths_by_id: dict[str, str] = {}
        self._metadata: dict[str, SongMetadata] = {}

    @classmethod
    def open(cls, directory: str | Path | None = None) -> "SongLibrary":
        """Open (creating if needed) the library in *directory* and reconcile it.

        Raises OSError if the library directories can't be created.
        """
        library = cls(directory if directory is not None else config.get_library_dir())
        library._open()
        return library

    def _open(self) -> None:
        for directory in (self.directory, self.index_dir, self.metadata_dir):
            directory.mkdir(parents=True, exist_ok=True)

        self._metadata = self._store.load_all()
        self._index = SongIndex(self.index_dir / config.INDEX_FILENAME)
        report = self.reindex()
        logger.info(
            "Opened library %s: %d songs, %d failures",
            self.directory, report.indexed, len(report.failures),
        )

    def close(self) -> None:
        if self._index is not None:
            self._index.close()
            self._index = None

    def _require_index(self) -> SongIndex:
        if self._index is None:
            raise RuntimeError(f"library {self.directory} is closed")
        return self._index

    def __enter__(self) -> "SongLibrary":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _song_files(self) -> list[Path]:
        return sorted(
            entry for entry in self.directory.iterdir()
            if entry.is_file() and not entry.name.startswith(".")
        )

    def _scan(self, file: Path) -> ScannedFile:
        try:
            songs = import_path(file)
        except (SongLibError, OSError) as exc:
            logger.warning("Failed to read song file '%s': %s", file.name, exc)
            return ScannedFile(file.name, error=str(exc))

        if len(songs) > 1:
            logger.warning("'%s' contains %d songs; only the first is indexed.", file.name, len(songs))
        logger.debug("Read '%s' from %s", songs[0].title, file.name)
        return ScannedFile(file.name, song=songs[0])

    def reindex(self) -> ReindexReport:
        """Bring the index and sidecars in line with the song files on disk."""
        with self._lock:
            index = self._require_index()
            scanned = [self._scan(file) for file in self._song_files()]
            plan = plan_reconciliation(
                scanned, self._metadata, index.indexed_paths(), datetime.now(timezone.utc)
            )

            index.apply(plan.upserts, plan.deletions)
            self._songs = plan.songs
            self._paths_by_id = {song.id: path for path, song in plan.songs.items()}

            report = ReindexReport(
                indexed=len(plan.upserts), removed=plan.deletions, failures=dict(plan.failures)
            )
            for record in plan.new_metadata:
                # retried on the next pass since the path stays unknown
                try:
                    self._store.create(record)
                except OSError as exc:
                    logger.warning("Failed to write metadata for '%s': %s", record.path, exc)
                    report.failures[record.path] = str(exc)
                    continue
                self._metadata[record.path] = record
                report.added.append(record.path)
            return report

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @staticmethod
    def _key(path: str | Path) -> str:
        # song files live directly in the library directory
        return Path(path).name

    def get(self, path: str | Path) -> Song | None:
        return self._songs.get(self._key(path))

    def get_by_id(self, song_id: str) -> Song | None:
        path = self._paths_by_id.get(song_id)
        return self._songs.get(path) if path else None

    def path_of(self, song_id: str) -> Path | None:
        path = self._paths_by_id.get(song_id)
        return self.directory / path if path else None

    def metadata(self, path: str | Path) -> SongMetadata | None:
        return self._metadata.get(self._key(path))

    def all(self) -> list[Song]:
        return list(self._songs.values())

    def __len__(self) -> int:
        return len(self._songs)

    def search(self, text: str | None, mode: SearchMode = SearchMode.PHRASE,
               max_results: int | None = None) -> list[SearchResult]:
        """Search the library and attach the matching Song to each result."""
        if max_results is None:
            max_results = config.DEFAULT_MAX_RESULTS

        results = []
        for result in search(self._require_index(), text, mode, max_results):
            song = self._songs.get(result.path)
            if song is None:
                logger.warning("Search hit '%s' has no loaded song; skipping it.", result.path)
                continue
            result.song = song
            results.append(result)
        return results

    # ------------------------------------------------------------------
    # Changes
    # ------------------------------------------------------------------

    def _file_name_for(self, song: Song) -> str:
        existing = self._paths_by_id.get(song.id)
        if existing:
            return existing

        slug = _slugify(song.title)
        if slug:
            name = f"{slug}{config.SONG_EXTENSION}"
            if name not in self._songs and not (self.directory / name).exists():
                return name
        return f"{song.id}{config.SONG_EXTENSION}"

    def save(self, song: Song) -> Path:
        """Write *song* into the library as an internal JSON file and index it."""
        with self._lock:
            index = self._require_index()
            name = self._file_name_for(song)
            target = self.directory / name
            target.write_text(dumps(song), encoding="utf-8")

            index.upsert(IndexDocument.from_song(name, song))
            if name not in self._metadata:
                record = SongMetadata(path=name, date_added=datetime.now(timezone.utc))
                self._store.create(record)
                self._metadata[name] = record

            self._songs[name] = song
            self._paths_by_id[song.id] = name
            logger.debug("Saved '%s' as %s", song.title, name)
            return target

    def import_songs(self, path: str | Path) -> list[Song]:
        """Import every song in a file or archive into the library.

        Raises UnknownFormatError / InvalidFormatError for an unreadable
        single document.  Songs that fail to save are logged and skipped.
        """
        saved = []
        for song in import_path(path):
            try:
                self.save(song)
            except OSError as exc:
                logger.warning("Failed to save '%s' from %s: %s", song.title, path, exc)
                continue
            saved.append(song)
        return saved

    def remove(self, path: str | Path) -> None:
        """Delete a song file together with its index document and sidecar."""
        with self._lock:
            index = self._require_index()
            key = self._key(path)
            (self.directory / key).unlink(missing_ok=True)
            index.delete(key)
            self._store.delete(key)
            self._metadata.pop(key, None)
            song = self._songs.pop(key, None)
            if song is not None:
                self._paths_by_id.pop(song.id, None)

    def annotate(self, path: str | Path, section: str, note: str) -> SongMetadata:
        """Attach a note to one section of a song and persist it.

        Raises KeyError if the library has no metadata for *path*.
        """
        with self._lock:
            key = self._key(path)
            record = self._metadata.get(key)
            if record is None:
                raise KeyError(key)
            record.annotations.append(VerseAnnotation(section=section, note=note))
            self._store.write(record)
            return record


def open_library(directory: str | Path | None = None) -> SongLibrary:
    """Open the library in *directory* (default: ``SONGLIB_LIBRARY_DIR``)."""
    return SongLibrary.open(directory)
