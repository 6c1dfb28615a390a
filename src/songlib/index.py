"""SQLite FTS5 full-text index over a song library.

One row in ``documents`` per song file, keyed by the file's library path.
``documents_fts`` is an external-content FTS5 table over the three
searchable fields, kept in sync with ``documents`` by triggers.

The index is derived data: an unreadable file or one written by a different
schema version is deleted and recreated, and the library then repopulates it
from the song files on disk.
"""

import logging
import sqlite3
import warnings
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from . import config
from .analysis import FTS_TOKENIZER
from .exceptions import IndexCorruptionWarning
from .models import Song

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("title", "verse", "keywords")

# Snippet match delimiters.  They are stripped from indexed text, so their
# presence in a snippet always marks a real match.
MATCH_START = "\x02"
MATCH_END = "\x03"
_MATCH_MARKERS = str.maketrans("", "", MATCH_START + MATCH_END)

SCHEMA = f"""
CREATE TABLE documents (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    path      TEXT NOT NULL UNIQUE,
    song_id   TEXT NOT NULL,
    title     TEXT,
    verse     TEXT,
    keywords  TEXT
);

CREATE INDEX idx_documents_song_id ON documents(song_id);

CREATE VIRTUAL TABLE documents_fts USING fts5(
    title, verse, keywords,
    content='documents',
    content_rowid='id',
    tokenize='{FTS_TOKENIZER}'
);

CREATE TRIGGER documents_ai AFTER INSERT ON documents BEGIN
    INSERT INTO documents_fts(rowid, title, verse, keywords)
    VALUES (new.id, new.title, new.verse, new.keywords);
END;

CREATE TRIGGER documents_ad AFTER DELETE ON documents BEGIN
    INSERT INTO documents_fts(documents_fts, rowid, title, verse, keywords)
    VALUES ('delete', old.id, old.title, old.verse, old.keywords);
END;

CREATE TRIGGER documents_au AFTER UPDATE ON documents BEGIN
    INSERT INTO documents_fts(documents_fts, rowid, title, verse, keywords)
    VALUES ('delete', old.id, old.title, old.verse, old.keywords);
    INSERT INTO documents_fts(rowid, title, verse, keywords)
    VALUES (new.id, new.title, new.verse, new.keywords);
END;

CREATE TABLE schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S', 'now'))
);

INSERT INTO schema_version (version) VALUES ({config.INDEX_SCHEMA_VERSION});
"""

_UPSERT = """
INSERT INTO documents (path, song_id, title, verse, keywords)
VALUES (:path, :song_id, :title, :verse, :keywords)
ON CONFLICT(path) DO UPDATE SET
    song_id = excluded.song_id,
    title = excluded.title,
    verse = excluded.verse,
    keywords = excluded.keywords
"""

_SEARCH = """
SELECT d.path, d.song_id, -bm25(documents_fts) AS score,
       snippet(documents_fts, 0, :start, :end, :ellipsis, :tokens),
       snippet(documents_fts, 1, :start, :end, :ellipsis, :tokens),
       snippet(documents_fts, 2, :start, :end, :ellipsis, :tokens)
FROM documents_fts
JOIN documents d ON d.id = documents_fts.rowid
WHERE documents_fts MATCH :query
ORDER BY bm25(documents_fts)
LIMIT :limit
"""


class IndexSchemaError(Exception):
    """The index file exists but is not a usable songlib index."""


@dataclass
class IndexDocument:
    """The searchable projection of one song file."""

    path: str
    song_id: str
    title: str = ""
    verse: str = ""
    keywords: str = ""

    @classmethod
    def from_song(cls, path: str, song: Song) -> "IndexDocument":
        titles = []
        verses = []
        for lyrics in song.lyrics:
            if lyrics.title and lyrics.title not in titles:
                titles.append(lyrics.title)
            verses.extend(section.text for section in lyrics.sections if section.text)
        return cls(
            path=path,
            song_id=song.id,
            title="\n".join(titles),
            verse="\n\n".join(verses),
            keywords=song.keywords or "",
        )


@dataclass
class IndexHit:
    path: str
    song_id: str
    score: float
    snippets: dict[str, str | None]


def _row(document: IndexDocument) -> dict:
    row = vars(document).copy()
    for name in SEARCH_FIELDS:
        row[name] = (row[name] or "").translate(_MATCH_MARKERS)
    return row


class SongIndex:
    """Writer handle on the index database plus per-search readers.

    Only one SongIndex may write to a database at a time; searches open
    their own read-only connection and see a consistent snapshot even while
    a write transaction is in progress.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._conn = self._open()

    # --- lifecycle ---

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _check_schema(self, conn: sqlite3.Connection) -> None:
        try:
            status = conn.execute("PRAGMA quick_check").fetchone()
            row = conn.execute("SELECT version FROM schema_version").fetchone()
            conn.execute("SELECT count(*) FROM documents_fts").fetchone()
        except sqlite3.DatabaseError as exc:
            raise IndexSchemaError(str(exc)) from exc
        if status is None or status[0] != "ok":
            raise IndexSchemaError(f"integrity check failed: {status}")
        if row is None or row[0] != config.INDEX_SCHEMA_VERSION:
            found = row[0] if row else None
            raise IndexSchemaError(f"schema version {found}, expected {config.INDEX_SCHEMA_VERSION}")

    def _create(self) -> sqlite3.Connection:
        conn = self._connect()
        conn.executescript(SCHEMA)
        logger.info("Created song index at %s", self.db_path)
        return conn

    def _open(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            return self._create()

        conn = None
        try:
            conn = self._connect()
            self._check_schema(conn)
            return conn
        except (sqlite3.DatabaseError, IndexSchemaError) as exc:
            if conn is not None:
                conn.close()
            message = f"Song index {self.db_path} is unusable ({exc}); rebuilding it."
            warnings.warn(message, IndexCorruptionWarning, stacklevel=3)
            logger.warning(message)

        self._remove_files()
        return self._create()

    def _remove_files(self) -> None:
        for suffix in ("", "-wal", "-shm"):
            Path(f"{self.db_path}{suffix}").unlink(missing_ok=True)

    def close(self) -> None:
        self._conn.close()

    # --- writing ---

    def apply(self, upserts: Iterable[IndexDocument] = (), deletions: Iterable[str] = ()) -> None:
        """Delete and upsert documents in a single transaction."""
        with self._conn:
            self._conn.executemany(
                "DELETE FROM documents WHERE path = ?", [(path,) for path in deletions]
            )
            self._conn.executemany(_UPSERT, [_row(doc) for doc in upserts])

    def upsert(self, document: IndexDocument) -> None:
        self.apply(upserts=[document])

    def delete(self, path: str) -> None:
        self.apply(deletions=[path])

    # --- reading ---

    def indexed_paths(self) -> set[str]:
        return {row[0] for row in self._conn.execute("SELECT path FROM documents")}

    def __len__(self) -> int:
        return self._conn.execute("SELECT count(*) FROM documents").fetchone()[0]

    def query(self, match: str, limit: int, snippet_tokens: int = config.SNIPPET_TOKENS) -> list[IndexHit]:
        """Run an FTS5 MATCH expression and return ranked hits with snippets.

        Scores are negated bm25 values, so a higher score is a better match.
        Matched terms in the snippets are wrapped in MATCH_START / MATCH_END.
        """
        params = {
            "start": MATCH_START,
            "end": MATCH_END,
            "ellipsis": config.SNIPPET_ELLIPSIS,
            "tokens": snippet_tokens,
            "query": match,
            "limit": limit,
        }
        reader = sqlite3.connect(f"{self.db_path.resolve().as_uri()}?mode=ro", uri=True)
        try:
            rows = reader.execute(_SEARCH, params).fetchall()
        finally:
            reader.close()

        return [
            IndexHit(
                path=row[0],
                song_id=row[1],
                score=row[2],
                snippets=dict(zip(SEARCH_FIELDS, row[3:])),
            )
            for row in rows
        ]
