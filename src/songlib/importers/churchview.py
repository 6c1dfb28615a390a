"""Importer for ChurchView song database exports (``.cvdat``).

A dataset holds one ``<Songs>`` element per song::

    <_CV5_SongsDataSet>
      <Songs>
        <SongTitle>Amazing Grace</SongTitle>
        <Verse1>Amazing grace how sweet the sound
    that saved a wretch like me</Verse1>
        <Chorus1>...</Chorus1>
        <Bridge>...</Bridge>
        <NOTES>Traditional</NOTES>
        <V1Size>30</V1Size>
        <C1Size>30</C1Size>
        <BSize>28</BSize>
      </Songs>
    </_CV5_SongsDataSet>
"""

import logging
import math
import re

from bs4 import Tag

from .. import config
from ..exceptions import InvalidFormatError
from ..models import Lyrics, Section, Song
from .base import SongImporter
from .utils import parse_int, parse_xml, section_from_text

logger = logging.getLogger(__name__)

DATASET_ELEMENT = "_CV5_SongsDataSet"

_PART_RE = re.compile(r"^(Song|Verse|Chorus|Bridge|Tag|Ending|Vamp)(\d*)$", re.IGNORECASE)
_SIZE_RE = re.compile(r"^([CVBTE])(\d+)?Size$", re.IGNORECASE)

_PART_TYPES = {
    "song": "c",
    "verse": "v",
    "chorus": "c",
    "bridge": "b",
    "tag": "t",
    "ending": "e",
    "vamp": "e",
}


def _size_target(element: str) -> str | None:
    """Return the section name an ``<X>Size`` element applies to, if any."""
    match = _SIZE_RE.match(element)
    if match is None:
        return None
    kind, index = match.group(1).lower(), match.group(2)
    if index is None:
        return f"{kind}1" if kind in ("v", "b", "t", "e") else None
    return f"{kind}{int(index)}" if kind in ("c", "v") else None


class ChurchViewImporter(SongImporter):
    """Importer for ``<_CV5_SongsDataSet>`` documents."""

    def read(self, data: bytes, name: str) -> list[Song]:
        soup = parse_xml(data, name)
        root = soup.find(DATASET_ELEMENT)
        if root is None:
            raise InvalidFormatError(name, f"missing <{DATASET_ELEMENT}> root element")

        return [self._read_song(song_tag) for song_tag in root.find_all("Songs", recursive=False)]

    def _read_song(self, song_tag: Tag) -> Song:
        lyrics = Lyrics(original=True)
        song = Song(lyrics=[lyrics], primary_lyrics=lyrics.id)
        sizes: list[tuple[str, str]] = []

        for child in song_tag.find_all(True, recursive=False):
            element = child.name
            text = child.get_text().strip()

            if element.lower() == "songtitle":
                lyrics.title = text
            elif element.upper() == "NOTES":
                song.comments = text or None
            elif _PART_RE.match(element):
                if text:
                    self._add_part(lyrics, element, text)
            elif element.lower().endswith("size") and element.lower() != "fontsize":
                sizes.append((element, text))

        # Size hints may precede the parts they describe
        for element, text in sizes:
            target = _size_target(element)
            section = lyrics.get_section(target) if target else None
            if section is None:
                continue
            size = parse_int(text, "font size")
            if size is not None:
                section.font_size = math.floor(size * config.LEGACY_FONT_SIZE_SCALE)

        logger.debug("Read song '%s' with %d parts.", lyrics.title, len(lyrics.sections))
        return song

    def _add_part(self, lyrics: Lyrics, element: str, text: str) -> None:
        match = _PART_RE.match(element)
        number = int(match.group(2)) if match.group(2) else 1
        section: Section = section_from_text(f"{_PART_TYPES[match.group(1).lower()]}{number}", text)

        existing = lyrics.get_section(section.name)
        if existing is None:
            lyrics.sections.append(section)
        else:
            existing.text = f"{existing.text}\n{section.text}"
