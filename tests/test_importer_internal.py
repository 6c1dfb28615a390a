import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from songlib.exceptions import InvalidFormatError
from songlib.importers.internal_json import InternalJsonImporter
from songlib.importers.internal_xml import InternalXmlV1Importer, InternalXmlV2Importer

FIXTURES = Path(__file__).parent / "fixtures" / "internal"


def load_fixture(name: str) -> bytes:
    return (FIXTURES / name).read_bytes()


# ---------------------------------------------------------------------------
# JSON (version 3)
# ---------------------------------------------------------------------------


def test_json_song_properties():
    song = InternalJsonImporter().parse(load_fixture("be-thou-my-vision.json"), "vision.json")[0]
    assert song.id == "2f1c7a3e-5b0d-4e0a-9a57-6c1f0f3f8d21"
    assert song.title == "Be Thou My Vision"
    assert song.ccli == 30639
    assert song.transposition == -2
    assert song.tags == {"Devotion"}
    assert song.sequence == ["v1", "v2"]
    assert song.modified_date == datetime(2020, 3, 1, 8, 30, tzinfo=timezone.utc)


def test_json_lyrics():
    song = InternalJsonImporter().parse(load_fixture("be-thou-my-vision.json"), "vision.json")[0]
    lyrics = song.lyrics[0]
    assert song.primary_lyrics == lyrics.id
    assert lyrics.language == "en"
    assert lyrics.authors[0].name == "Mary Byrne"
    assert lyrics.get_section("v2").font_size == 32


def test_json_sections_are_normalized():
    song = InternalJsonImporter().parse(load_fixture("be-thou-my-vision.json"), "vision.json")[0]
    assert song.lyrics[0].get_section("v1").text == (
        "Be Thou my Vision, O Lord of my heart\nNaught be all else to me"
    )


def test_json_wrong_marker_raises():
    data = json.dumps({"format": "songlib", "version": 3, "type": "bible", "song": {}}).encode()
    with pytest.raises(InvalidFormatError, match="expected a 'song' document"):
        InternalJsonImporter().parse(data, "bible.json")


def test_json_malformed_payload_raises():
    data = json.dumps({"format": "songlib", "version": 3, "type": "song", "song": []}).encode()
    with pytest.raises(InvalidFormatError, match="malformed song payload"):
        InternalJsonImporter().parse(data, "bad.json")


def test_json_without_lyrics_is_invalid():
    data = json.dumps({"format": "songlib", "version": 3, "type": "song", "song": {"lyrics": []}}).encode()
    with pytest.raises(InvalidFormatError, match="no lyrics"):
        InternalJsonImporter().parse(data, "empty.json")


def test_json_syntax_error_raises():
    with pytest.raises(InvalidFormatError, match="malformed JSON"):
        InternalJsonImporter().parse(b'{"format": ', "broken.json")



def vision_document() -> dict:
    return json.loads(load_fixture("be-thou-my-vision.json"))


@pytest.mark.parametrize("path,value", [
    (("lyrics", 0, "sections", 0, "text"), 5),
    (("lyrics", 0, "sections", 0, "name"), None),
    (("lyrics", 0, "sections", 1, "fontSize"), "large"),
    (("lyrics", 0, "title"), 123),
    (("lyrics", 0, "authors"), "Mary Byrne"),
    (("lyrics", 0), "Be Thou My Vision"),
    (("ccli",), True),
    (("tags",), [["Devotion"]]),
    (("sequence",), {"v1": 1}),
], ids=["text", "name", "font-size", "title", "authors", "lyrics", "ccli", "tags", "sequence"])
def test_json_badly_typed_payload_raises(path, value):
    document = vision_document()
    target = document["song"]
    for key in path[:-1]:
        target = target[key]
    target[path[-1]] = value
    with pytest.raises(InvalidFormatError, match="malformed song payload"):
        InternalJsonImporter().parse(json.dumps(document).encode(), "bad.json")


def test_json_numeric_strings_are_accepted_for_integers():
    document = vision_document()
    document["song"]["ccli"] = "30639"
    song = InternalJsonImporter().parse(json.dumps(document).encode(), "vision.json")[0]
    assert song.ccli == 30639


# ---------------------------------------------------------------------------
# XML version 1
# ---------------------------------------------------------------------------


def test_v1_title_and_notes():
    song = InternalXmlV1Importer().parse(load_fixture("amazing-grace-v1.xml"), "grace.xml")[0]
    assert song.title == "Amazing Grace"
    assert song.comments == "Traditional"
    assert song.primary_lyrics == song.lyrics[0].id


def test_v1_part_names():
    lyrics = InternalXmlV1Importer().parse(load_fixture("amazing-grace-v1.xml"), "grace.xml")[0].lyrics[0]
    assert [s.name for s in lyrics.sections] == ["v1", "c1", "o2"]


def test_v1_part_text_and_font_size():
    lyrics = InternalXmlV1Importer().parse(load_fixture("amazing-grace-v1.xml"), "grace.xml")[0].lyrics[0]
    verse = lyrics.get_section("v1")
    assert verse.text == "Amazing grace how sweet the sound\nthat saved a wretch like me"
    assert verse.font_size == 40
    assert lyrics.get_section("o2").font_size is None


def test_v1_empty_songs_element_is_invalid():
    with pytest.raises(InvalidFormatError, match="no songs found"):
        InternalXmlV1Importer().parse(b"<?xml version='1.0'?><Songs></Songs>", "empty.xml")


def test_v1_missing_root_is_invalid():
    with pytest.raises(InvalidFormatError):
        InternalXmlV1Importer().parse(b"<?xml version='1.0'?><Other/>", "other.xml")



def test_v1_truncated_file_is_invalid():
    # cut off inside the second part
    data = load_fixture("amazing-grace-v1.xml")[:400]
    with pytest.raises(InvalidFormatError, match="malformed XML"):
        InternalXmlV1Importer().parse(data, "grace.xml")


# ---------------------------------------------------------------------------
# XML version 2
# ---------------------------------------------------------------------------


def test_v2_song_id_and_title():
    song = InternalXmlV2Importer().parse(load_fixture("it-is-well-v2.xml"), "well.xml")[0]
    assert song.id == "8d9b7d52-4c6c-4b88-9d2e-0a3f3e1c5a11"
    assert song.title == "It Is Well"
    assert song.comments == "Horatio Spafford"


def test_v2_parts_in_document_order():
    lyrics = InternalXmlV2Importer().parse(load_fixture("it-is-well-v2.xml"), "well.xml")[0].lyrics[0]
    assert [s.name for s in lyrics.sections] == ["c1", "v1", "v2", "t1"]
    assert lyrics.get_section("c1").text == "It is well, it is well\nwith my soul"
    assert lyrics.get_section("c1").font_size == 36


def test_v2_order_defines_sequence():
    song = InternalXmlV2Importer().parse(load_fixture("it-is-well-v2.xml"), "well.xml")[0]
    assert song.sequence == ["v1", "c1", "v2"]


def test_v2_truncated_file_is_invalid():
    # the first two parts are complete, the third is cut off
    data = load_fixture("it-is-well-v2.xml")[:500]
    with pytest.raises(InvalidFormatError, match="malformed XML"):
        InternalXmlV2Importer().parse(data, "well.xml")
