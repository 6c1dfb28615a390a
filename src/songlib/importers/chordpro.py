"""Importer for ChordPro song files (``.cho``, ``.chordpro``, ``.chopro``, ...).

A ChordPro file is a run of directives, lyric lines with inline chords, and
blank lines::

    {title: Amazing Grace}
    {artist: John Newton}
    {key: G}

    {start_of_verse}
    A[G]mazing grace, how [C]sweet the [G]sound
    That saved a wretch like me
    {end_of_verse}

    {c: Sing the first verse again}

Directive -> Song mapping
-------------------------

+------------------------------------------+----------------------------------+
| Directive                                | Target                           |
+==========================================+==================================+
| ``title`` / ``t``                        | Lyrics title                     |
| ``subtitle`` / ``st`` / ``su``, ``album``| ``variant``                      |
| ``artist`` / ``author`` / ``a``          | ``publisher``                    |
| ``composer``, ``arranger``               | Author (type "music")            |
| ``lyricist``                             | Author (type "words")            |
| ``translator``                           | Author (type "translation")      |
| ``copyright``, ``key`` / ``k``,          | same-named Song fields           |
| ``tempo`` / ``bpm``, ``keywords``        |                                  |
| ``year``                                 | ``released``                     |
| ``transpose``, ``ccli``                  | ``transposition``, ``ccli``      |
| ``tag``                                  | ``tags``                         |
| ``book``                                 | Songbook                         |
| ``comment`` / ``c`` / ``ci`` / ``cb`` /  | ``comments`` (newline-joined)    |
| ``highlight``                            |                                  |
| ``language``, ``transliteration``        | Lyrics language fields           |
| ``meta: <name> <value>``                 | as ``<name>: <value>``           |
| ``new_song`` / ``ns``                    | starts the next song in the file |
+------------------------------------------+----------------------------------+

Sections are named in the short form used by every other format:
``start_of_verse`` blocks and lyric lines outside any block become v1, v2, ...,
``start_of_chorus`` c1, ``start_of_bridge`` b1 and any other ``start_of_*``
block o1.  Tab, grid and ABC blocks hold no lyrics and are skipped.
"""

import logging
import re
from dataclasses import dataclass, field

from ..exceptions import InvalidFormatError
from ..fragments import Chord, Comment, DisplayMode, LineBreak, Text
from ..models import Author, Lyrics, Song, Songbook
from .base import SongImporter
from .utils import build_section, parse_int

logger = logging.getLogger(__name__)

CHORDPRO_EXTENSIONS = (".cho", ".crd", ".chopro", ".chord", ".pro", ".chordpro", ".cpm")

# {name}, {name: value}, {name value}; a "-selector" suffix on the name is dropped
_DIRECTIVE_RE = re.compile(r"^\{\s*(?P<name>[A-Za-z_]\w*)(?:-\w+)?\s*:?\s*(?P<value>[^}]*?)\s*\}$")
_CHORD_RE = re.compile(r"\[([^\]]*)\]")
_MARKUP_RE = re.compile(r"<[^>]+>")
_ANNOTATION_LINE_RE = re.compile(r"^\[\*[^\]]*\]$")

_SHORT_NAMES = {
    "soc": "start_of_chorus",
    "eoc": "end_of_chorus",
    "sov": "start_of_verse",
    "eov": "end_of_verse",
    "sob": "start_of_bridge",
    "eob": "end_of_bridge",
    "sot": "start_of_tab",
    "eot": "end_of_tab",
    "sog": "start_of_grid",
    "eog": "end_of_grid",
}

_BLOCK_CODES = {"verse": "v", "chorus": "c", "bridge": "b"}
_SKIPPED_BLOCKS = {"tab", "grid", "abc"}

_SONG_FIELDS = {
    "subtitle": "variant",
    "st": "variant",
    "su": "variant",
    "album": "variant",
    "artist": "publisher",
    "author": "publisher",
    "a": "publisher",
    "copyright": "copyright",
    "year": "released",
    "key": "key",
    "k": "key",
    "tempo": "tempo",
    "bpm": "tempo",
    "metronome": "tempo",
    "keywords": "keywords",
}

_AUTHOR_TYPES = {
    "composer": "music",
    "arranger": "music",
    "lyricist": "words",
    "translator": "translation",
}

_COMMENTS = {"c", "comment", "ci", "comment_italic", "cb", "comment_box", "highlight"}


def is_directive(line: str) -> bool:
    """True if *line* is a single ChordPro directive such as ``{title: x}``."""
    return _DIRECTIVE_RE.match(line.strip()) is not None


def line_fragments(line: str) -> list:
    """Split one lyric line into text runs, chords and ``[*...]`` annotations."""
    line = _MARKUP_RE.sub("", line)
    fragments = []
    position = 0
    for match in _CHORD_RE.finditer(line):
        if match.start() > position:
            fragments.append(Text(line[position:match.start()]))
        chord = match.group(1).strip()
        if chord.startswith("*"):
            fragments.append(Comment(chord[1:].strip()))
        elif chord:
            fragments.append(Chord(chord))
        position = match.end()
    if position < len(line):
        fragments.append(Text(line[position:]))
    return fragments


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------


@dataclass
class SectionDraft:
    name: str
    fragments: list = field(default_factory=list)

    def add_line(self, line: str) -> None:
        if self.fragments:
            self.fragments.append(LineBreak())
        self.fragments.extend(line_fragments(line))


@dataclass
class SongDraft:
    song: Song
    lyrics: Lyrics
    sections: list[SectionDraft] = field(default_factory=list)
    counters: dict[str, int] = field(default_factory=dict)

    def new_section(self, code: str) -> SectionDraft:
        self.counters[code] = self.counters.get(code, 0) + 1
        section = SectionDraft(f"{code}{self.counters[code]}")
        self.sections.append(section)
        return section

    def is_empty(self) -> bool:
        return not self.sections and not self.lyrics.title


class ChordProReader:
    """Reads a ChordPro file one line at a time."""

    def __init__(self, mode: DisplayMode = DisplayMode.PRESENTATION):
        self.mode = mode
        self.drafts: list[SongDraft] = []
        self.directives = 0
        self.section: SectionDraft | None = None
        self.in_block = False
        self.skipping = False  # inside a tab, grid or abc block

    @property
    def current(self) -> SongDraft:
        if not self.drafts:
            self._new_song()
        return self.drafts[-1]

    def _new_song(self) -> None:
        lyrics = Lyrics()
        self.drafts.append(SongDraft(Song(lyrics=[lyrics], primary_lyrics=lyrics.id), lyrics))
        self.section = None
        self.in_block = False
        self.skipping = False

    def feed(self, line: str) -> None:
        stripped = line.strip()
        if not stripped:
            # a blank line ends a verse that has no explicit block around it
            if not self.in_block:
                self.section = None
            return
        if stripped.startswith("#"):
            return

        match = _DIRECTIVE_RE.match(stripped)
        if match is not None:
            self.directives += 1
            name = match.group("name").lower()
            self._directive(_SHORT_NAMES.get(name, name), match.group("value"))
            return

        if self.skipping or _ANNOTATION_LINE_RE.match(stripped):
            return
        if self.section is None:
            self.section = self.current.new_section("v")
        self.section.add_line(line)

    def _directive(self, name: str, value: str) -> None:
        if name.startswith("start_of_"):
            kind = name[len("start_of_"):]
            self.section = None
            if kind in _SKIPPED_BLOCKS:
                self.skipping = True
                return
            self.section = self.current.new_section(_BLOCK_CODES.get(kind, "o"))
            self.in_block = True
        elif name.startswith("end_of_"):
            self.section = None
            self.in_block = False
            self.skipping = False
        elif name in ("new_song", "ns"):
            self._new_song()
        else:
            if not self.in_block:
                self.section = None
            self._metadata(name, value)

    def _metadata(self, name: str, value: str) -> None:
        draft = self.current
        song, lyrics = draft.song, draft.lyrics

        if name == "meta":
            parts = value.split(None, 1)
            if len(parts) == 2:
                self._metadata(parts[0].lower(), parts[1])
            return
        if not value:
            logger.debug("Ignoring empty directive '%s'.", name)
            return

        if name in ("title", "t"):
            lyrics.title = value
        elif name in _SONG_FIELDS:
            setattr(song, _SONG_FIELDS[name], value)
        elif name in _AUTHOR_TYPES:
            lyrics.authors.append(Author(name=value, type=_AUTHOR_TYPES[name]))
        elif name in _COMMENTS:
            song.comments = f"{song.comments}\n{value}" if song.comments else value
        elif name == "transpose":
            song.transposition = parse_int(value, "transpose")
        elif name == "ccli":
            song.ccli = parse_int(value, "ccli")
        elif name == "tag":
            song.tags.add(value)
        elif name == "book":
            lyrics.songbooks.append(Songbook(name=value))
        elif name == "language":
            lyrics.language = value
        elif name == "transliteration":
            lyrics.transliteration = value
        else:
            logger.debug("Ignoring unsupported directive '%s'.", name)

    def songs(self) -> list[Song]:
        songs = []
        for draft in self.drafts:
            if draft.is_empty():
                continue
            sections = [build_section(s.name, s.fragments, self.mode) for s in draft.sections]
            draft.lyrics.sections = [section for section in sections if section.text]
            songs.append(draft.song)
        return songs


class ChordProImporter(SongImporter):
    """Importer for ChordPro text files; one file may hold several songs."""

    def __init__(self, mode: DisplayMode = DisplayMode.PRESENTATION):
        self.mode = mode

    def read(self, data: bytes, name: str) -> list[Song]:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise InvalidFormatError(name, f"not UTF-8 text ({exc})") from exc

        reader = ChordProReader(self.mode)
        for line in text.splitlines():
            reader.feed(line)

        # plain text without a single directive isn't ChordPro
        if not reader.directives:
            raise InvalidFormatError(name, "no ChordPro directives found")

        songs = reader.songs()
        for song in songs:
            logger.debug("Read song '%s' with %d sections.", song.title, len(song.lyrics[0].sections))
        return songs
