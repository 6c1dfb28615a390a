import json

from .. import config
from ..exceptions import InvalidFormatError
from ..fragments import fragments_from_text
from ..models import Song
from ..serialize import read_marker, song_from_document
from .base import SongImporter
from .utils import build_section


class InternalJsonImporter(SongImporter):
    """Importer for songlib's own JSON song documents (format version 3)."""

    def read(self, data: bytes, name: str) -> list[Song]:
        try:
            document = json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidFormatError(name, f"malformed JSON ({exc})") from exc

        marker = read_marker(document)
        if marker != config.FORMAT_SONG_TYPE:
            raise InvalidFormatError(name, f"expected a '{config.FORMAT_SONG_TYPE}' document, got {marker!r}")

        try:
            song = song_from_document(document)
            # Stored text may have been edited by hand
            for lyrics in song.lyrics:
                lyrics.sections = [
                    build_section(s.name, fragments_from_text(s.text), font_size=s.font_size)
                    for s in lyrics.sections
                ]
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidFormatError(name, f"malformed song payload ({exc})") from exc
        return [song]
