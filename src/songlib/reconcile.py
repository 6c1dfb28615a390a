"""Planning a library reindex.

:func:`plan_reconciliation` compares what is on disk with what the index
and the sidecars already hold and returns the changes to make.  It does no
I/O; :meth:`songlib.library.SongLibrary.reindex` applies the plan.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from .index import IndexDocument
from .models import Song, SongMetadata


@dataclass
class ScannedFile:
    """Outcome of reading one library file: a song or the reason it failed."""

    path: str
    song: Song | None = None
    error: str | None = None


@dataclass
class ReconcilePlan:
    upserts: list[IndexDocument] = field(default_factory=list)
    deletions: list[str] = field(default_factory=list)
    new_metadata: list[SongMetadata] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    songs: dict[str, Song] = field(default_factory=dict)


def plan_reconciliation(scanned: Iterable[ScannedFile], metadata: Mapping[str, SongMetadata],
                        indexed_paths: set[str], now: datetime) -> ReconcilePlan:
    """Return the index and sidecar changes that bring the library in line with *scanned*.

    - every readable file gets its document rewritten
    - a file seen for the first time gets a sidecar dated *now*
    - an unreadable file loses its document, so stale text is never served
    - a document whose file is gone is deleted
    """
    plan = ReconcilePlan()
    seen: set[str] = set()

    for item in scanned:
        seen.add(item.path)
        if item.song is None:
            plan.failures[item.path] = item.error or "unreadable"
            if item.path in indexed_paths:
                plan.deletions.append(item.path)
            continue

        plan.songs[item.path] = item.song
        plan.upserts.append(IndexDocument.from_song(item.path, item.song))
        if item.path not in metadata:
            plan.new_metadata.append(SongMetadata(path=item.path, date_added=now))

    plan.deletions.extend(sorted(indexed_paths - seen))
    return plan
