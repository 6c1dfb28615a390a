"""Internal JSON song format (version 3).

Document layout::

    {
      "format": "songlib",
      "version": 3,
      "type": "song",
      "song": {
        "id": "...", "source": "...", "modifiedDate": "2012-04-10T12:00:00+00:00",
        "copyright": ..., "ccli": ..., "released": ..., "transposition": ...,
        "tempo": ..., "key": ..., "variant": ..., "publisher": ...,
        "keywords": ..., "comments": ..., "sequence": [...], "tags": [...],
        "primaryLyrics": "...",
        "lyrics": [
          {"id": ..., "language": ..., "transliteration": ..., "original": false,
           "title": ..., "authors": [{"name": ..., "type": ...}],
           "songbooks": [{"name": ..., "entry": ...}],
           "sections": [{"name": "v1", "text": "...", "fontSize": null}]}
        ]
      }
    }
"""

import json
from datetime import datetime

from . import config
from .models import Author, Lyrics, Section, Song, Songbook

# Scalar song properties whose JSON key matches the attribute name
_TEXT_FIELDS = (
    "source", "copyright", "released", "tempo",
    "key", "variant", "publisher", "keywords", "comments",
)
_INT_FIELDS = ("ccli", "transposition")


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``."""
    if not value:
        return None
    value = value.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Song -> dict
# ---------------------------------------------------------------------------


def song_to_document(song: Song) -> dict:
    """Return the full internal document (marker + payload) for *song*."""
    payload = {"id": song.id}
    for name in _TEXT_FIELDS + _INT_FIELDS:
        payload[name] = getattr(song, name)
    payload["modifiedDate"] = format_datetime(song.modified_date)
    payload["sequence"] = list(song.sequence)
    payload["tags"] = sorted(song.tags)
    payload["primaryLyrics"] = song.primary_lyrics
    payload["lyrics"] = [_lyrics_to_dict(lyrics) for lyrics in song.lyrics]

    return {
        "format": config.FORMAT_NAME,
        "version": config.FORMAT_VERSION,
        "type": config.FORMAT_SONG_TYPE,
        "song": payload,
    }


def _lyrics_to_dict(lyrics: Lyrics) -> dict:
    return {
        "id": lyrics.id,
        "language": lyrics.language,
        "transliteration": lyrics.transliteration,
        "original": lyrics.original,
        "title": lyrics.title,
        "authors": [{"name": a.name, "type": a.type} for a in lyrics.authors],
        "songbooks": [{"name": s.name, "entry": s.entry} for s in lyrics.songbooks],
        "sections": [
            {"name": s.name, "text": s.text, "fontSize": s.font_size} for s in lyrics.sections
        ],
    }


def dumps(song: Song) -> str:
    return json.dumps(song_to_document(song), indent=2, ensure_ascii=False) + "\n"


# ---------------------------------------------------------------------------
# dict -> Song
# ---------------------------------------------------------------------------


def _text(value, what: str) -> str | None:
    """Return *value* if it is a string (or None); raise TypeError otherwise."""
    if value is None or isinstance(value, str):
        return value
    raise TypeError(f"{what} must be a string, got {type(value).__name__}")


def _int(value, what: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise TypeError(f"{what} must be an integer, got {type(value).__name__}")
    return int(value)


def _items(value, what: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"{what} must be a list, got {type(value).__name__}")
    return value


def _object(value, what: str) -> dict:
    if not isinstance(value, dict):
        raise TypeError(f"{what} must be an object, got {type(value).__name__}")
    return value


def song_from_document(document: dict) -> Song:
    """Build a Song from an internal document.

    Raises KeyError, TypeError or ValueError when the payload is malformed;
    callers translate those into InvalidFormatError.
    """
    payload = _object(document["song"], "song payload")

    song = Song(lyrics=[_lyrics_from_dict(item) for item in _items(payload.get("lyrics"), "lyrics")])
    if payload.get("id"):
        song.id = str(payload["id"])
    for name in _TEXT_FIELDS:
        setattr(song, name, _text(payload.get(name), name))
    for name in _INT_FIELDS:
        setattr(song, name, _int(payload.get(name), name))
    song.modified_date = parse_datetime(_text(payload.get("modifiedDate"), "modifiedDate"))
    song.sequence = [_text(name, "sequence entry") for name in _items(payload.get("sequence"), "sequence")]
    song.tags = {_text(tag, "tag") for tag in _items(payload.get("tags"), "tags")}
    song.primary_lyrics = _text(payload.get("primaryLyrics"), "primaryLyrics")
    return song


def _lyrics_from_dict(data: dict) -> Lyrics:
    data = _object(data, "lyrics")
    lyrics = Lyrics(
        title=_text(data.get("title"), "title") or "",
        language=_text(data.get("language"), "language"),
        transliteration=_text(data.get("transliteration"), "transliteration"),
        original=bool(data.get("original", False)),
        authors=[_author_from_dict(a) for a in _items(data.get("authors"), "authors")],
        songbooks=[_songbook_from_dict(s) for s in _items(data.get("songbooks"), "songbooks")],
        sections=[_section_from_dict(s) for s in _items(data.get("sections"), "sections")],
    )
    if data.get("id"):
        lyrics.id = str(data["id"])
    return lyrics


def _author_from_dict(data: dict) -> Author:
    data = _object(data, "author")
    return Author(name=_text(data.get("name"), "author name") or "", type=_text(data.get("type"), "author type"))


def _songbook_from_dict(data: dict) -> Songbook:
    data = _object(data, "songbook")
    return Songbook(name=_text(data.get("name"), "songbook name") or "", entry=_text(data.get("entry"), "songbook entry"))


def _section_from_dict(data: dict) -> Section:
    data = _object(data, "section")
    name = _text(data["name"], "section name")
    if name is None:
        raise TypeError("section name must be a string, got NoneType")
    return Section(
        name=name,
        text=_text(data.get("text"), "section text") or "",
        font_size=_int(data.get("fontSize"), "fontSize"),
    )


def read_marker(document) -> str | None:
    """Return the document type named by a songlib format marker, if any."""
    if isinstance(document, dict) and document.get("format") == config.FORMAT_NAME:
        marker = document.get("type")
        return marker if isinstance(marker, str) else None
    return None


def loads(text: str | bytes) -> Song:
    return song_from_document(json.loads(text))
