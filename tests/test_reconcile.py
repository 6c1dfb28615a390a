from datetime import datetime, timezone

from songlib.models import Lyrics, Section, Song, SongMetadata
from songlib.reconcile import ScannedFile, plan_reconciliation

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)
EARLIER = datetime(2020, 1, 1, tzinfo=timezone.utc)


def _song(title: str) -> Song:
    return Song(lyrics=[Lyrics(title=title, sections=[Section(name="v1", text=f"{title} verse")])])


def test_new_file_is_indexed_and_gets_metadata():
    plan = plan_reconciliation([ScannedFile("a.xml", song=_song("A"))], {}, set(), NOW)
    assert [doc.path for doc in plan.upserts] == ["a.xml"]
    assert plan.new_metadata == [SongMetadata(path="a.xml", date_added=NOW)]
    assert plan.deletions == []


def test_known_file_keeps_existing_metadata():
    metadata = {"a.xml": SongMetadata(path="a.xml", date_added=EARLIER)}
    plan = plan_reconciliation([ScannedFile("a.xml", song=_song("A"))], metadata, {"a.xml"}, NOW)
    assert [doc.path for doc in plan.upserts] == ["a.xml"]
    assert plan.new_metadata == []


def test_vanished_file_is_deleted():
    plan = plan_reconciliation([ScannedFile("a.xml", song=_song("A"))], {}, {"a.xml", "gone.xml"}, NOW)
    assert plan.deletions == ["gone.xml"]


def test_failed_file_with_document_is_deleted():
    scanned = [ScannedFile("bad.xml", error="not a song")]
    plan = plan_reconciliation(scanned, {}, {"bad.xml"}, NOW)
    assert plan.deletions == ["bad.xml"]
    assert plan.failures == {"bad.xml": "not a song"}
    assert plan.upserts == []
    assert plan.new_metadata == []


def test_failed_file_without_document_is_only_reported():
    plan = plan_reconciliation([ScannedFile("bad.xml", error="oops")], {}, set(), NOW)
    assert plan.deletions == []
    assert plan.failures == {"bad.xml": "oops"}


def test_songs_map_holds_readable_files():
    song = _song("A")
    plan = plan_reconciliation(
        [ScannedFile("a.xml", song=song), ScannedFile("b.xml", error="x")], {}, set(), NOW
    )
    assert plan.songs == {"a.xml": song}


def test_document_fields_come_from_song():
    song = _song("Amazing Grace")
    song.keywords = "grace"
    doc = plan_reconciliation([ScannedFile("a.xml", song=song)], {}, set(), NOW).upserts[0]
    assert doc.song_id == song.id
    assert doc.title == "Amazing Grace"
    assert doc.verse == "Amazing Grace verse"
    assert doc.keywords == "grace"
