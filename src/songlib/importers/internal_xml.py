"""Importers for the two generations of the internal XML song format.

Version 1 (no version attribute)::

    <Songs>
      <Song>
        <Title>Amazing Grace</Title>
        <Notes>Traditional</Notes>
        <DateAdded>2012-04-10 12:00:00</DateAdded>
        <SongParts>
          <SongPart>
            <Type>VERSE</Type> <Index>1</Index> <FontSize>40</FontSize>
            <Text>Amazing grace how sweet the sound
    that saved a wretch like me</Text>
          </SongPart>
        </SongParts>
      </Song>
    </Songs>

Version 2::

    <Songs Version="2.0.0">
      <Song Id="..." DateAdded="2014-01-01T10:00:00">
        <Title>Amazing Grace</Title>
        <Notes/>
        <Part Type="VERSE" Index="1" Order="1" FontSize="40">
          <Text>Amazing grace how sweet the sound</Text>
        </Part>
      </Song>
    </Songs>

Both formats hold a single, language-less Lyrics block per song.
"""

import logging

from bs4 import Tag

from ..exceptions import InvalidFormatError
from ..models import Lyrics, Song
from .base import SongImporter
from .utils import child_text, parse_int, parse_xml, part_type_code, section_from_text

logger = logging.getLogger(__name__)


def _new_song(title: str | None, notes: str | None) -> tuple[Song, Lyrics]:
    lyrics = Lyrics(title=title or "")
    song = Song(lyrics=[lyrics], comments=notes or None, primary_lyrics=lyrics.id)
    return song, lyrics


def _section_name(part_type: str | None, index: str | None) -> str:
    number = parse_int(index, "part index")
    return part_type_code(part_type) + str(number if number is not None else 1)


def _songs_root(data: bytes, name: str) -> Tag:
    soup = parse_xml(data, name)
    root = soup.find("Songs")
    if root is None:
        raise InvalidFormatError(name, "missing <Songs> root element")
    return root


# ---------------------------------------------------------------------------
# Version 1
# ---------------------------------------------------------------------------


class InternalXmlV1Importer(SongImporter):
    """Importer for version 1 ``<Songs>`` documents."""

    def read(self, data: bytes, name: str) -> list[Song]:
        root = _songs_root(data, name)

        songs = []
        for song_tag in root.find_all("Song"):
            song, lyrics = _new_song(child_text(song_tag, "Title"), child_text(song_tag, "Notes"))

            for part in song_tag.find_all("SongPart"):
                section_name = _section_name(child_text(part, "Type"), child_text(part, "Index"))
                font_size = parse_int(child_text(part, "FontSize"), "font size")
                lyrics.sections.append(
                    section_from_text(section_name, child_text(part, "Text") or "", font_size)
                )

            logger.debug("Read song '%s' with %d parts.", lyrics.title, len(lyrics.sections))
            songs.append(song)
        return songs


# ---------------------------------------------------------------------------
# Version 2
# ---------------------------------------------------------------------------


class InternalXmlV2Importer(SongImporter):
    """Importer for ``<Songs Version="2.0.0">`` documents.

    A part's ``Order`` attribute gives its position in the playback sequence;
    parts without one are left out of the sequence.
    """

    def read(self, data: bytes, name: str) -> list[Song]:
        root = _songs_root(data, name)

        songs = []
        for song_tag in root.find_all("Song"):
            song, lyrics = _new_song(child_text(song_tag, "Title"), child_text(song_tag, "Notes"))
            if song_tag.get("Id"):
                song.id = song_tag["Id"].strip()

            ordered = []
            for part in song_tag.find_all("Part"):
                section_name = _section_name(part.get("Type"), part.get("Index"))
                font_size = parse_int(part.get("FontSize"), "font size")
                lyrics.sections.append(
                    section_from_text(section_name, child_text(part, "Text") or "", font_size)
                )
                order = parse_int(part.get("Order"), "part order")
                if order is not None:
                    ordered.append((order, section_name))

            song.sequence = [section_name for _, section_name in sorted(ordered, key=lambda o: o[0])]
            logger.debug("Read song '%s' with %d parts.", lyrics.title, len(lyrics.sections))
            songs.append(song)
        return songs
