import json
import shutil
from pathlib import Path

import pytest

from songlib.exceptions import IndexCorruptionWarning, UnknownFormatError
from songlib.library import SongLibrary, _slugify, open_library
from songlib.metadata import MetadataStore
from songlib.search import SearchMode

FIXTURES = Path(__file__).parent / "fixtures"
AMAZING_GRACE = FIXTURES / "openlyrics" / "amazing-grace.xml"
HOW_GREAT = FIXTURES / "openlyrics" / "how-great-thou-art.xml"
VISION = FIXTURES / "internal" / "be-thou-my-vision.json"
CHURCHVIEW = FIXTURES / "churchview" / "songs.cvdat"


@pytest.fixture
def library_dir(tmp_path):
    directory = tmp_path / "library"
    directory.mkdir()
    shutil.copy(AMAZING_GRACE, directory / "amazing-grace.xml")
    shutil.copy(HOW_GREAT, directory / "how-great-thou-art.xml")
    return directory


@pytest.fixture
def library(library_dir):
    with SongLibrary.open(library_dir) as library:
        yield library


# ---------------------------------------------------------------------------
# _slugify
# ---------------------------------------------------------------------------


def test_slugify_basic():
    assert _slugify("Amazing Grace") == "amazing-grace"


def test_slugify_punctuation():
    assert _slugify("Holy, Holy, Holy!") == "holy-holy-holy"


def test_slugify_collapses_separators():
    assert _slugify("It  Is -- Well") == "it-is-well"


# ---------------------------------------------------------------------------
# open
# ---------------------------------------------------------------------------


def test_open_creates_reserved_directories(library_dir, library):
    assert (library_dir / "_index" / "songs.db").is_file()
    assert (library_dir / "_metadata").is_dir()


def test_open_indexes_every_song(library):
    assert len(library) == 2
    assert sorted(song.title for song in library.all()) == ["Amazing Grace", "How Great Thou Art"]


def test_open_creates_metadata_sidecars(library_dir, library):
    sidecar = library_dir / "_metadata" / "amazing-grace.xml_metadata.json"
    data = json.loads(sidecar.read_text(encoding="utf-8"))
    assert data["path"] == "amazing-grace.xml"
    assert data["annotations"] == []
    assert library.metadata("amazing-grace.xml").date_added is not None


def test_open_library_function(library_dir):
    with open_library(library_dir) as library:
        assert len(library) == 2


def test_open_default_directory_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("SONGLIB_LIBRARY_DIR", str(tmp_path / "env-library"))
    with SongLibrary.open() as library:
        assert library.directory == tmp_path / "env-library"
        assert (tmp_path / "env-library" / "_index").is_dir()


def test_open_fails_when_directory_cannot_be_created(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(OSError):
        SongLibrary.open(blocker / "library")


def test_unreadable_file_is_skipped(library_dir):
    (library_dir / "notes.txt").write_text("not a song", encoding="utf-8")
    with SongLibrary.open(library_dir) as library:
        report = library.reindex()
    assert "notes.txt" in report.failures
    assert len(library.all()) == 2


def test_hidden_files_are_ignored(library_dir):
    (library_dir / ".DS_Store").write_bytes(b"\x00\x01")
    with SongLibrary.open(library_dir) as library:
        assert ".DS_Store" not in library.reindex().failures


def test_first_song_of_multi_song_file_is_used(library_dir):
    shutil.copy(CHURCHVIEW, library_dir / "songs.cvdat")
    with SongLibrary.open(library_dir) as library:
        assert library.get("songs.cvdat").title == "Holy, Holy, Holy"


def test_metadata_write_failure_does_not_abort_open(library_dir, monkeypatch):
    create = MetadataStore.create

    def failing_create(self, metadata):
        if metadata.path == "amazing-grace.xml":
            raise PermissionError(13, "Permission denied")
        return create(self, metadata)

    monkeypatch.setattr(MetadataStore, "create", failing_create)
    with SongLibrary.open(library_dir) as library:
        assert library.get("amazing-grace.xml").title == "Amazing Grace"
        assert library.metadata("amazing-grace.xml") is None
        assert library.metadata("how-great-thou-art.xml") is not None
        assert [r.path for r in library.search("how sweet the sound")] == ["amazing-grace.xml"]
        report = library.reindex()
    assert "Permission denied" in report.failures["amazing-grace.xml"]
    assert "amazing-grace.xml" not in report.added


def test_bad_json_file_does_not_abort_open(library_dir):
    document = json.loads(VISION.read_text(encoding="utf-8"))
    document["song"]["lyrics"][0]["title"] = 123
    (library_dir / "bad.json").write_text(json.dumps(document), encoding="utf-8")
    shutil.copy(CHURCHVIEW, library_dir / "songs.cvdat")
    (library_dir / "truncated.cvdat").write_bytes(CHURCHVIEW.read_bytes()[:400])
    with SongLibrary.open(library_dir) as library:
        report = library.reindex()
        assert len(library) == 3
    assert "malformed song payload" in report.failures["bad.json"]
    assert "malformed XML" in report.failures["truncated.cvdat"]


def test_corrupt_index_is_rebuilt_on_open(library_dir):
    SongLibrary.open(library_dir).close()
    (library_dir / "_index" / "songs.db").write_bytes(b"garbage" * 200)
    for suffix in ("-wal", "-shm"):
        (library_dir / "_index" / f"songs.db{suffix}").unlink(missing_ok=True)

    with pytest.warns(IndexCorruptionWarning):
        library = SongLibrary.open(library_dir)
    with library:
        assert [r.path for r in library.search("wretch")] == ["amazing-grace.xml"]


# ---------------------------------------------------------------------------
# Reopen / reconciliation
# ---------------------------------------------------------------------------


def test_reopen_keeps_date_added(library_dir):
    with SongLibrary.open(library_dir) as library:
        first = library.metadata("amazing-grace.xml").date_added

    with SongLibrary.open(library_dir) as library:
        assert library.metadata("amazing-grace.xml").date_added == first


def test_reindex_picks_up_new_and_removed_files(library_dir, library):
    shutil.copy(VISION, library_dir / "vision.json")
    (library_dir / "how-great-thou-art.xml").unlink()

    report = library.reindex()

    assert report.added == ["vision.json"]
    assert report.removed == ["how-great-thou-art.xml"]
    assert library.get("how-great-thou-art.xml") is None
    assert library.search("how great thou art") == []
    assert [r.path for r in library.search("be thou my vision")] == ["vision.json"]


def test_file_that_becomes_invalid_is_dropped_from_index(library_dir, library):
    (library_dir / "amazing-grace.xml").write_bytes(AMAZING_GRACE.read_bytes()[:300])
    report = library.reindex()
    assert "amazing-grace.xml" in report.failures
    assert "amazing-grace.xml" in report.removed
    assert library.search("wretch") == []


def test_unreadable_sidecar_is_skipped(library_dir):
    SongLibrary.open(library_dir).close()
    sidecar = library_dir / "_metadata" / "amazing-grace.xml_metadata.json"
    sidecar.write_text("{not json", encoding="utf-8")

    with SongLibrary.open(library_dir) as library:
        # an unreadable sidecar is never overwritten
        assert library.metadata("amazing-grace.xml") is not None
        assert sidecar.read_text(encoding="utf-8") == "{not json"


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def test_get_by_path_and_id(library):
    song = library.get("amazing-grace.xml")
    assert song.title == "Amazing Grace"
    assert library.get_by_id(song.id) is song
    assert library.path_of(song.id).name == "amazing-grace.xml"
    assert library.get_by_id("missing") is None


# ---------------------------------------------------------------------------
# End-to-end search
# ---------------------------------------------------------------------------


def test_search_phrase_finds_verse(library):
    results = library.search("how sweet the sound", SearchMode.PHRASE)
    assert [r.path for r in results] == ["amazing-grace.xml"]
    assert results[0].song.title == "Amazing Grace"
    assert "<b>" in results[0].highlights["verse"]


def test_search_title(library):
    results = library.search("how great thou art", SearchMode.PHRASE)
    assert [r.song.title for r in results] == ["How Great Thou Art"]
    assert "title" in results[0].highlights


def test_search_other_language_text(library):
    results = library.search("store gud", SearchMode.ALL_WORDS)
    assert [r.path for r in results] == ["how-great-thou-art.xml"]


def test_search_any_word_across_songs(library):
    results = library.search("wretch soul", SearchMode.ANY_WORD)
    assert sorted(r.path for r in results) == ["amazing-grace.xml", "how-great-thou-art.xml"]


def test_search_phrase_reversed_order_misses(library):
    assert library.search("sound the sweet how", SearchMode.PHRASE) == []


def test_search_drops_hits_without_loaded_song(library, caplog):
    library._songs.pop("amazing-grace.xml")
    assert library.search("wretch") == []
    assert any("no loaded song" in r.getMessage() for r in caplog.records)



def test_closed_library_refuses_to_search(library_dir):
    library = SongLibrary.open(library_dir)
    library.close()
    with pytest.raises(RuntimeError, match="closed"):
        library.search("grace")
    with pytest.raises(RuntimeError, match="closed"):
        library.reindex()


# ---------------------------------------------------------------------------
# import / save / remove / annotate
# ---------------------------------------------------------------------------


def test_import_songs_saves_internal_json(library_dir, library):
    songs = library.import_songs(CHURCHVIEW)
    assert [song.title for song in songs] == ["Holy, Holy, Holy", "Doxology"]
    assert (library_dir / "holy-holy-holy.json").is_file()
    assert (library_dir / "doxology.json").is_file()
    assert [r.path for r in library.search("blessings flow")] == ["doxology.json"]


def test_imported_songs_survive_reopen(library_dir):
    with SongLibrary.open(library_dir) as library:
        library.import_songs(VISION)

    with SongLibrary.open(library_dir) as library:
        assert library.get("be-thou-my-vision.json").title == "Be Thou My Vision"
        assert len(library) == 3


def test_import_unknown_file_raises(tmp_path, library):
    junk = tmp_path / "junk.bin"
    junk.write_bytes(b"\x00\x01\x02")
    with pytest.raises(UnknownFormatError):
        library.import_songs(junk)


def test_save_uses_id_when_name_is_taken(library_dir, library):
    song = library.import_songs(AMAZING_GRACE)[0]
    # amazing-grace.json is free, the .xml original lives next to it
    assert library.path_of(song.id).name == "amazing-grace.json"

    again = library.import_songs(AMAZING_GRACE)[0]
    assert library.path_of(again.id).name == f"{again.id}.json"


def test_save_existing_song_rewrites_same_file(library):
    song = library.import_songs(VISION)[0]
    song.keywords = "celtic"
    path = library.save(song)
    assert path.name == "be-thou-my-vision.json"
    assert [r.path for r in library.search("celtic")] == ["be-thou-my-vision.json"]


def test_remove_deletes_file_document_and_sidecar(library_dir, library):
    library.remove("amazing-grace.xml")
    assert not (library_dir / "amazing-grace.xml").exists()
    assert not (library_dir / "_metadata" / "amazing-grace.xml_metadata.json").exists()
    assert library.get("amazing-grace.xml") is None
    assert library.search("wretch") == []


def test_annotate_persists_note(library_dir, library):
    library.annotate("amazing-grace.xml", "v1", "start quietly")

    with SongLibrary.open(library_dir) as reopened:
        annotations = reopened.metadata("amazing-grace.xml").annotations
    assert [(a.section, a.note) for a in annotations] == [("v1", "start quietly")]


def test_annotate_unknown_path_raises(library):
    with pytest.raises(KeyError):
        library.annotate("missing.xml", "v1", "note")
