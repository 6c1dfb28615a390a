"""Importer for CCLI SongSelect exports.

SongSelect hands out two plain-text layouts.

``.usr`` files are key/value lists; sections are ``/t`` separated and lines
inside a section ``/n`` separated::

    [File]
    Type=SongSelect Import File
    Version=3.0
    [S A22025]
    Title=Amazing Grace
    Author=John Newton | Edwin Othello Excell
    Copyright=Public Domain
    Themes=Grace/tSalvation
    Keys=G
    Fields=Verse 1/tVerse 2
    Words=Amazing grace how sweet the sound/nThat saved a wretch like me/t...

``.txt`` files are what the site shows on screen: the title, blank-line
separated sections that start with a heading, and a CCLI footer::

    Amazing Grace

    Verse 1
    Amazing grace how sweet the sound
    That saved a wretch like me

    Misc 1
    (BRIDGE)
    ...

    CCLI Song # 22025
    John Newton | Edwin Othello Excell
    © Public Domain
    CCLI License # 1234567

A heading such as "Verse 2" or "Misc 1 (BRIDGE)" becomes the short section
name (v2, b1); a name that is already taken gets the next free number.
"""

import logging
import re
from itertools import zip_longest

from ..exceptions import InvalidFormatError
from ..models import Author, Lyrics, Section, Song
from .base import SongImporter
from .utils import part_type_code, section_from_text

logger = logging.getLogger(__name__)

USR_HEADER = "[File]"
USR_EXTENSION = ".usr"
TXT_EXTENSION = ".txt"
CCLI_SONG_PREFIX = "CCLI Song"

_USR_CCLI_RE = re.compile(r"^\[S\s+A?(\d+)\]$")
_DIGITS_RE = re.compile(r"(\d+)")
_HEADING_RE = re.compile(r"^(?P<kind>[A-Za-z][A-Za-z -]*?)\s*(?P<number>\d*)\s*(?:\((?P<hint>[^)]*)\))?$")
_AUTHOR_SPLIT_RE = re.compile(r"\s*[|/]\s*")

_HEADING_CODES = {
    "verse": "v",
    "chorus": "c",
    "pre-chorus": "p",
    "prechorus": "p",
    "bridge": "b",
    "tag": "t",
    "ending": "e",
    "vamp": "e",
}

# Headings SongSelect uses for parts without a section type of their own
_OTHER_HEADINGS = {"misc", "intro", "outro", "interlude", "instrumental", "refrain", "coda"}


def has_ccli_footer(text: str) -> bool:
    """True if *text* carries the "CCLI Song # ..." line of a SongSelect export."""
    return any(line.strip().startswith(CCLI_SONG_PREFIX) for line in text.splitlines())


def section_name(heading: str, hint: str | None = None) -> str | None:
    """Return the short section name for a heading, or None if it isn't one.

    >>> section_name("Verse 2")
    'v2'
    >>> section_name("Misc 1 (BRIDGE)")
    'b1'
    """
    match = _HEADING_RE.match(heading.strip())
    if match is None:
        return None
    kind = match.group("kind").strip().lower()
    if kind not in _HEADING_CODES and kind not in _OTHER_HEADINGS:
        return None
    code = _HEADING_CODES.get(kind, "o")
    hint = match.group("hint") or hint
    if code == "o" and hint:
        hint = hint.strip("() ").lower()
        code = _HEADING_CODES.get(hint) or part_type_code(hint)
    return f"{code}{match.group('number') or 1}"


def _add_section(lyrics: Lyrics, name: str, lines: list[str]) -> None:
    if lyrics.get_section(name) is not None:
        code, number = name[0], int(name[1:])
        while lyrics.get_section(f"{code}{number}") is not None:
            number += 1
        name = f"{code}{number}"
    section: Section = section_from_text(name, "\n".join(lines))
    if section.text:
        lyrics.sections.append(section)


def _ccli(value: str) -> int | None:
    match = _DIGITS_RE.search(value)
    return int(match.group(1)) if match else None


# ---------------------------------------------------------------------------
# .usr
# ---------------------------------------------------------------------------


def _read_usr(lines: list[str], song: Song, lyrics: Lyrics) -> None:
    fields: list[str] = []
    words: list[str] = []

    for line in lines:
        line = line.strip()
        match = _USR_CCLI_RE.match(line)
        if match is not None:
            song.ccli = int(match.group(1))
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        value = value.strip()
        if key == "Title":
            lyrics.title = value
        elif key == "Author":
            lyrics.authors.extend(Author(name=a.strip()) for a in value.split("|") if a.strip())
        elif key == "Copyright":
            song.copyright = value or None
        elif key == "Themes":
            song.tags.update(t.strip() for t in value.split("/t") if t.strip())
        elif key == "Keys":
            song.key = value or None
        elif key == "Type":
            song.source = value or None
        elif key == "Fields":
            fields = value.split("/t")
        elif key == "Words":
            words = value.split("/t")

    for i, (heading, text) in enumerate(zip_longest(fields, words, fillvalue="")):
        text_lines = text.split("/n")
        # words may open with a "(PRECHORUS)" style hint
        hint = None
        if text_lines and text_lines[0].startswith("("):
            hint = text_lines.pop(0)
        name = section_name(heading, hint) or f"v{i + 1}"
        _add_section(lyrics, name, text_lines)


# ---------------------------------------------------------------------------
# .txt
# ---------------------------------------------------------------------------


def _blocks(lines: list[str]) -> list[list[str]]:
    blocks: list[list[str]] = [[]]
    for line in lines:
        if line.strip():
            blocks[-1].append(line.strip())
        elif blocks[-1]:
            blocks.append([])
    return [block for block in blocks if block]


def _read_footer(lines: list[str], song: Song, lyrics: Lyrics) -> None:
    for line in lines:
        if line.startswith(CCLI_SONG_PREFIX):
            song.ccli = _ccli(line)
        elif line.startswith("©"):
            song.copyright = line
        elif line.startswith("CCLI License") or line.startswith("For use solely"):
            continue
        elif not lyrics.authors:
            lyrics.authors.extend(Author(name=a) for a in _AUTHOR_SPLIT_RE.split(line) if a)


def _read_txt(lines: list[str], song: Song, lyrics: Lyrics) -> None:
    blocks = _blocks(lines)
    if not blocks:
        return
    lyrics.title = blocks[0].pop(0)

    footer: list[str] = []
    for block in blocks:
        if not block:
            continue
        if footer or block[0].startswith(CCLI_SONG_PREFIX):
            footer.extend(block)
            continue

        heading, body = block[0], block[1:]
        hint = None
        if body and body[0].startswith("("):
            hint = body.pop(0)
        name = section_name(heading, hint)
        if name is None:
            # no heading, the whole block is lyrics
            name, body = f"v{len(lyrics.sections) + 1}", block
        _add_section(lyrics, name, body)

    _read_footer(footer, song, lyrics)


class SongSelectImporter(SongImporter):
    """Importer for SongSelect ``.usr`` and ``.txt`` exports."""

    def read(self, data: bytes, name: str) -> list[Song]:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise InvalidFormatError(name, f"not UTF-8 text ({exc})") from exc

        lines = text.splitlines()
        first = next((line.strip() for line in lines if line.strip()), "")
        lyrics = Lyrics()
        song = Song(lyrics=[lyrics], primary_lyrics=lyrics.id)

        if first == USR_HEADER or name.lower().endswith(USR_EXTENSION):
            _read_usr(lines, song, lyrics)
        elif has_ccli_footer(text):
            _read_txt(lines, song, lyrics)
        else:
            raise InvalidFormatError(name, "no SongSelect header or CCLI footer found")

        if not lyrics.sections:
            raise InvalidFormatError(name, "no song sections found")
        logger.debug("Read song '%s' with %d sections.", lyrics.title, len(lyrics.sections))
        return [song]
