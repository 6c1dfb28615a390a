from enum import Enum

from .importers.base import SongImporter
from .importers.chordpro import ChordProImporter
from .importers.churchview import ChurchViewImporter
from .importers.internal_json import InternalJsonImporter
from .importers.internal_xml import InternalXmlV1Importer, InternalXmlV2Importer
from .importers.openlyrics import OpenLyricsImporter
from .importers.songselect import SongSelectImporter


class SongFormat(Enum):
    """Every song file format songlib can read."""

    OPENLYRICS = "openlyrics"
    INTERNAL_V1 = "internal-v1"
    INTERNAL_V2 = "internal-v2"
    INTERNAL_JSON = "internal-json"
    LEGACY = "churchview"
    CHORDPRO = "chordpro"
    SONGSELECT = "songselect"


_IMPORTERS: dict[SongFormat, type[SongImporter]] = {
    SongFormat.OPENLYRICS: OpenLyricsImporter,
    SongFormat.INTERNAL_V1: InternalXmlV1Importer,
    SongFormat.INTERNAL_V2: InternalXmlV2Importer,
    SongFormat.INTERNAL_JSON: InternalJsonImporter,
    SongFormat.LEGACY: ChurchViewImporter,
    SongFormat.CHORDPRO: ChordProImporter,
    SongFormat.SONGSELECT: SongSelectImporter,
}


def get_importer(fmt: SongFormat) -> SongImporter:
    """Return an instantiated importer for the given format."""
    return _IMPORTERS[fmt]()
