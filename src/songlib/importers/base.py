from abc import ABC, abstractmethod

from ..exceptions import InvalidFormatError
from ..models import Song


class SongImporter(ABC):
    """Abstract base class for all format-specific importers."""

    @abstractmethod
    def read(self, data: bytes, name: str) -> list[Song]:
        """Parse raw file bytes and return the songs they contain.

        By the time this returns, every Section's text must already have
        gone through :func:`songlib.fragments.normalize`.

        Raises InvalidFormatError if the content does not follow the format.
        """

    def parse(self, data: bytes, name: str = "") -> list[Song]:
        """Convenience method: read + validate.

        Never returns a partial result: either every song is valid or
        InvalidFormatError is raised.
        """
        songs = self.read(data, name)
        if not songs:
            raise InvalidFormatError(name, "no songs found")
        for song in songs:
            song.validate(name)
        return songs
