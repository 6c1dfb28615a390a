from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

from .exceptions import InvalidFormatError


def _new_id() -> str:
    return str(uuid4())


def _same(a: str | None, b: str | None) -> bool:
    """Case-insensitive equality where None and "" are the same value."""
    return (a or "").lower() == (b or "").lower()


@dataclass
class Author:
    """A person credited on a set of lyrics."""

    name: str = ""
    type: str | None = None  # e.g. "words", "music", "translation"


@dataclass
class Songbook:
    """A hymnal entry, e.g. Songbook(name="Hymns of Faith", entry="48")."""

    name: str = ""
    entry: str | None = None


@dataclass
class Section:
    """A named block of lyric text such as a verse or chorus.

    ``name`` follows the short form used by most song formats: a type letter
    and a number, e.g. "v1", "c1", "b1".  ``text`` holds display lines joined
    with ``\\n``.
    """

    name: str
    text: str = ""
    font_size: int | None = None


@dataclass
class Lyrics:
    """One language / transliteration variant of a song."""

    title: str = ""
    language: str | None = None
    transliteration: str | None = None
    original: bool = False
    authors: list[Author] = field(default_factory=list)
    songbooks: list[Songbook] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)
    id: str = field(default_factory=_new_id)

    def get_section(self, name: str) -> Section | None:
        for section in self.sections:
            if section.name.lower() == name.lower():
                return section
        return None


@dataclass
class Song:
    """Canonical representation of a song, format-agnostic."""

    lyrics: list[Lyrics] = field(default_factory=list)
    id: str = field(default_factory=_new_id)
    source: str | None = None  # application that created the file
    modified_date: datetime | None = None
    copyright: str | None = None
    ccli: int | None = None
    released: str | None = None
    transposition: int | None = None
    tempo: str | None = None
    key: str | None = None
    variant: str | None = None
    publisher: str | None = None
    keywords: str | None = None
    comments: str | None = None
    sequence: list[str] = field(default_factory=list)  # playback order of section names
    tags: set[str] = field(default_factory=set)
    primary_lyrics: str | None = None

    @property
    def title(self) -> str:
        lyrics = self.default_lyrics()
        return lyrics.title if lyrics else ""

    def get_lyrics(self, language: str | None, transliteration: str | None) -> Lyrics | None:
        for lyrics in self.lyrics:
            if _same(lyrics.language, language) and _same(lyrics.transliteration, transliteration):
                return lyrics
        return None

    def default_lyrics(self) -> Lyrics | None:
        """Return the Lyrics block to show when no language is requested.

        Blocks without sections are never chosen while a non-empty one
        exists.  Among non-empty blocks the first one that is the explicit
        primary, is marked original, or has no language wins; failing that
        the first non-empty block wins.
        """
        if not self.lyrics:
            return None

        first_non_empty = None
        for lyrics in self.lyrics:
            if not lyrics.sections:
                continue
            if first_non_empty is None:
                first_non_empty = lyrics
            if (self.primary_lyrics is not None and lyrics.id == self.primary_lyrics) \
                    or lyrics.original or not lyrics.language:
                return lyrics

        return first_non_empty or self.lyrics[0]

    def validate(self, name: str = "") -> None:
        """Raise InvalidFormatError unless the song has at least one Lyrics block."""
        if not self.lyrics:
            raise InvalidFormatError(name or self.id, "song has no lyrics")


@dataclass
class VerseAnnotation:
    """A user note attached to one section of an indexed song."""

    section: str
    note: str


@dataclass
class SongMetadata:
    """Sidecar record for one song file in a library.

    ``date_added`` is set the first time the library sees ``path`` and is
    never rewritten afterwards.
    """

    path: str
    date_added: datetime
    annotations: list[VerseAnnotation] = field(default_factory=list)
