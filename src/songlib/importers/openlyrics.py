"""Importer for OpenLyrics XML songs (http://openlyrics.info).

Document structure::

    <song xmlns="http://openlyrics.info/namespace/2009/song"
          createdIn="OpenLP 1.9.0" modifiedDate="2012-04-10T12:00:00Z">
        <properties>
            <titles><title lang="en">Amazing Grace</title></titles>
            <authors><author type="words">John Newton</author></authors>
            <songbooks><songbook name="Hymns" entry="48"/></songbooks>
            <copyright/> <ccliNo/> <released/> <transposition/> <tempo/>
            <key/> <variant/> <publisher/> <keywords/> <verseOrder/>
            <themes><theme/></themes> <comments><comment/></comments>
        </properties>
        <lyrics>
            <verse name="v1" lang="en">
                <lines>Amazing grace how sweet <tag name="b">the</tag> sound<br/>
                       that <chord name="G"/>saved a wretch like me</lines>
            </verse>
        </lyrics>
    </song>

The document is read in a single pass by :class:`OpenLyricsParser`, an lxml
parser target.  lxml calls ``start``/``data``/``end``/``close`` as it
streams through the bytes; the parser keeps a small stack of contexts (song,
lyrics block, verse) and buffers character data until the element that owns
it closes.  The parser has no lxml dependency of its own and can be driven
directly with synthetic events.
"""

import dataclasses
import logging
from dataclasses import dataclass, field

from lxml import etree

from ..exceptions import InvalidFormatError
from ..fragments import Chord, Comment, DisplayMode, FormatTag, LineBreak, Text
from ..models import Author, Lyrics, Song, Songbook
from ..serialize import parse_datetime
from .base import SongImporter
from .utils import build_section, parse_int, xml_parser

logger = logging.getLogger(__name__)

OPENLYRICS_NAMESPACE = "http://openlyrics.info/namespace/2009/song"

# Song-level properties copied verbatim (element name, lower-cased -> attribute)
_TEXT_PROPERTIES = {
    "copyright": "copyright",
    "released": "released",
    "tempo": "tempo",
    "key": "key",
    "variant": "variant",
    "publisher": "publisher",
    "keywords": "keywords",
}

# Song-level properties holding an integer
_INT_PROPERTIES = {
    "cclino": "ccli",
    "transposition": "transposition",
}


# ---------------------------------------------------------------------------
# Parsing contexts
# ---------------------------------------------------------------------------


@dataclass
class SongContext:
    song: Song
    songbooks: list[Songbook] = field(default_factory=list)


@dataclass
class LyricsContext:
    lyrics: Lyrics
    author: Author | None = None


@dataclass
class OpenNode:
    """A <tag> or <comment> inside a verse whose children are being collected."""

    kind: str
    name: str | None = None
    children: list = field(default_factory=list)


@dataclass
class VerseContext:
    lyrics: Lyrics
    name: str
    fragments: list = field(default_factory=list)
    open_nodes: list[OpenNode] = field(default_factory=list)
    lines_seen: int = 0

    @property
    def sink(self) -> list:
        """The fragment list new content is appended to."""
        return self.open_nodes[-1].children if self.open_nodes else self.fragments


Context = SongContext | LyricsContext | VerseContext


def _local_name(tag) -> str:
    """Return the lower-cased local part of a ``{namespace}name`` tag."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].lower()


def _attr(attrib, name: str) -> str | None:
    """Look up an attribute by local name, ignoring any namespace prefix."""
    for key, value in attrib.items():
        if _local_name(key) == name.lower():
            return value or None
    return None


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class OpenLyricsParser:
    """Event-driven OpenLyrics reader.

    Usable as an lxml parser target; ``close()`` returns the finished Song
    (or None if no ``<song>`` element was seen).
    """

    def __init__(self, mode: DisplayMode = DisplayMode.PRESENTATION):
        self.mode = mode
        self.song: Song | None = None
        self.stack: list[Context] = []
        self._buffer: list[str] = []

    # --- target interface ---

    def start(self, tag, attrib) -> None:
        name = _local_name(tag)
        context = self.stack[-1] if self.stack else None

        if isinstance(context, VerseContext):
            self._start_in_verse(context, name, attrib)
            return

        self._buffer.clear()
        if name == "song":
            self._start_song(attrib)
        elif self.song is None:
            return
        elif name == "title":
            lyrics = self._lyrics_for(_attr(attrib, "lang"), _attr(attrib, "translit"))
            original = _attr(attrib, "original")
            if original is not None:
                lyrics.original = original.strip().lower() in ("true", "1")
            self.stack.append(LyricsContext(lyrics))
        elif name == "author":
            lyrics = self._lyrics_for(_attr(attrib, "lang"), None)
            author = Author(type=_attr(attrib, "type"))
            lyrics.authors.append(author)
            self.stack.append(LyricsContext(lyrics, author))
        elif name == "songbook":
            self._song_context().songbooks.append(
                Songbook(name=_attr(attrib, "name") or "", entry=_attr(attrib, "entry"))
            )
        elif name == "verse":
            lyrics = self._lyrics_for(_attr(attrib, "lang"), _attr(attrib, "translit"))
            verse_name = (_attr(attrib, "name") or "").strip() or f"o{len(lyrics.sections) + 1}"
            self.stack.append(VerseContext(lyrics, verse_name))

    def data(self, text: str) -> None:
        # lxml may deliver one logical text run in several calls
        self._buffer.append(text)

    def end(self, tag) -> None:
        name = _local_name(tag)
        context = self.stack[-1] if self.stack else None

        if isinstance(context, VerseContext):
            if name == "verse":
                self._flush(context)
                self.stack.pop()
                self._commit_verse(context)
            else:
                self._end_in_verse(context, name)
            return

        text = "".join(self._buffer).strip()
        self._buffer.clear()

        if self.song is None:
            return
        if name == "song":
            self._finish_song()
        elif name in ("title", "author") and isinstance(context, LyricsContext):
            if name == "title":
                context.lyrics.title = text
            elif context.author is not None:
                context.author.name = text
            self.stack.pop()
        elif name in _TEXT_PROPERTIES:
            if text:
                setattr(self.song, _TEXT_PROPERTIES[name], text)
        elif name in _INT_PROPERTIES:
            value = parse_int(text, name)
            if value is not None:
                setattr(self.song, _INT_PROPERTIES[name], value)
        elif name == "verseorder":
            self.song.sequence.extend(text.split())
        elif name == "theme":
            if text:
                self.song.tags.add(text)
        elif name == "comment":
            self._add_comment(text)

    def close(self) -> Song | None:
        return self.song

    # --- song level ---

    def _start_song(self, attrib) -> None:
        song = Song(source=_attr(attrib, "createdIn") or _attr(attrib, "modifiedIn"))
        modified = _attr(attrib, "modifiedDate")
        if modified:
            try:
                song.modified_date = parse_datetime(modified)
            except ValueError:
                logger.warning("Failed to parse modifiedDate '%s' as a datetime.", modified)
        self.song = song
        self.stack = [SongContext(song)]

    def _song_context(self) -> SongContext:
        return self.stack[0]

    def _lyrics_for(self, language: str | None, transliteration: str | None) -> Lyrics:
        lyrics = self.song.get_lyrics(language, transliteration)
        if lyrics is None:
            lyrics = Lyrics(language=language, transliteration=transliteration)
            self.song.lyrics.append(lyrics)
        return lyrics

    def _add_comment(self, text: str) -> None:
        if not text:
            return
        if self.song.comments:
            self.song.comments = self.song.comments + "\n" + text
        else:
            self.song.comments = text

    def _finish_song(self) -> None:
        song = self.song
        songbooks = self._song_context().songbooks

        default_title = ""
        default = song.default_lyrics()
        if default is not None and default.title:
            default_title = default.title
        else:
            default_title = next((lyrics.title for lyrics in song.lyrics if lyrics.title), "")

        for lyrics in song.lyrics:
            lyrics.songbooks.extend(dataclasses.replace(songbook) for songbook in songbooks)
            if not lyrics.title:
                lyrics.title = default_title

        if default is not None:
            song.primary_lyrics = default.id
        self.stack.clear()

    # --- verse level ---

    def _flush(self, context: VerseContext) -> None:
        if self._buffer:
            text = "".join(self._buffer)
            self._buffer.clear()
            if text:
                context.sink.append(Text(text))

    def _start_in_verse(self, context: VerseContext, name: str, attrib) -> None:
        self._flush(context)
        if name == "lines":
            # several <lines> blocks in one verse read as consecutive lines
            if context.lines_seen:
                context.sink.append(LineBreak())
            context.lines_seen += 1
        elif name == "br":
            context.sink.append(LineBreak())
        elif name == "chord":
            chord = _attr(attrib, "name") or _attr(attrib, "root")
            if chord:
                context.sink.append(Chord(chord))
        elif name == "comment":
            context.open_nodes.append(OpenNode("comment"))
        elif name == "tag":
            context.open_nodes.append(OpenNode("tag", _attr(attrib, "name")))

    def _end_in_verse(self, context: VerseContext, name: str) -> None:
        self._flush(context)
        if name not in ("comment", "tag") or not context.open_nodes:
            return
        node = context.open_nodes.pop()
        if node.kind == "comment":
            text = " ".join(
                f.text.strip() for f in node.children if isinstance(f, Text) and f.text.strip()
            )
            context.sink.append(Comment(text))
            self._add_comment(text)
        else:
            context.sink.append(FormatTag(node.name or "", tuple(node.children)))

    def _commit_verse(self, context: VerseContext) -> None:
        section = build_section(context.name, context.fragments, self.mode)
        existing = context.lyrics.get_section(context.name)
        if existing is None:
            context.lyrics.sections.append(section)
        elif section.text:
            # the format forbids duplicate names but files in the wild have them
            existing.text = f"{existing.text}\n{section.text}" if existing.text else section.text


# ---------------------------------------------------------------------------
# Importer
# ---------------------------------------------------------------------------


class OpenLyricsImporter(SongImporter):
    """Importer for OpenLyrics ``<song>`` documents."""

    def __init__(self, mode: DisplayMode = DisplayMode.PRESENTATION):
        self.mode = mode

    def read(self, data: bytes, name: str) -> list[Song]:
        target = OpenLyricsParser(self.mode)
        try:
            song = etree.fromstring(data, xml_parser(target=target))
        except etree.XMLSyntaxError as exc:
            raise InvalidFormatError(name, f"malformed XML ({exc})") from exc

        if song is None:
            raise InvalidFormatError(name, "no <song> element found")
        return [song]
