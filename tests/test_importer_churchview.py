from pathlib import Path

import pytest

from songlib.exceptions import InvalidFormatError
from songlib.importers.churchview import ChurchViewImporter, _size_target

FIXTURE = Path(__file__).parent / "fixtures" / "churchview" / "songs.cvdat"


def load_songs():
    return ChurchViewImporter().parse(FIXTURE.read_bytes(), "songs.cvdat")


# ---------------------------------------------------------------------------
# Songs
# ---------------------------------------------------------------------------


def test_one_song_per_songs_element():
    assert [song.title for song in load_songs()] == ["Holy, Holy, Holy", "Doxology"]


def test_lyrics_are_original():
    song = load_songs()[0]
    assert song.lyrics[0].original
    assert song.primary_lyrics == song.lyrics[0].id


def test_notes_become_comments():
    assert load_songs()[0].comments == "Reginald Heber"


def test_part_names():
    lyrics = load_songs()[0].lyrics[0]
    # the empty <Ending> is skipped
    assert [s.name for s in lyrics.sections] == ["v1", "v2", "c1", "b1"]


def test_part_text():
    lyrics = load_songs()[0].lyrics[0]
    assert lyrics.get_section("v1").text == (
        "Holy, holy, holy! Lord God Almighty!\nEarly in the morning our song shall rise to Thee"
    )


def test_song_element_is_a_chorus():
    lyrics = load_songs()[1].lyrics[0]
    assert lyrics.get_section("c1").text == "Praise God from whom all blessings flow"


# ---------------------------------------------------------------------------
# Font sizes
# ---------------------------------------------------------------------------


def test_font_sizes_scaled():
    lyrics = load_songs()[0].lyrics[0]
    assert lyrics.get_section("v1").font_size == 45
    assert lyrics.get_section("c1").font_size == 37
    assert lyrics.get_section("b1").font_size == 30
    assert lyrics.get_section("v2").font_size is None


@pytest.mark.parametrize("element,expected", [
    ("V1Size", "v1"),
    ("C2Size", "c2"),
    ("VSize", "v1"),
    ("BSize", "b1"),
    ("TSize", "t1"),
    ("ESize", "e1"),
    ("CSize", None),
    ("B2Size", None),
    ("FontSize", None),
])
def test_size_target(element, expected):
    assert _size_target(element) == expected


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def test_missing_dataset_root_is_invalid():
    with pytest.raises(InvalidFormatError):
        ChurchViewImporter().parse(b"<?xml version='1.0'?><Songs/>", "x.cvdat")


def test_empty_dataset_is_invalid():
    with pytest.raises(InvalidFormatError, match="no songs found"):
        ChurchViewImporter().parse(b"<_CV5_SongsDataSet></_CV5_SongsDataSet>", "x.cvdat")


def test_truncated_dataset_is_invalid():
    # the first song is cut off before its closing tag
    with pytest.raises(InvalidFormatError, match="malformed XML"):
        ChurchViewImporter().parse(FIXTURE.read_bytes()[:400], "songs.cvdat")
