import sqlite3
import tomllib
from pathlib import Path

import pytest

from refsed.config import Config
from refsed.library import (
    Library,
    LibraryError,
    LibraryImportError,
    LibraryRecord,
    export_records,
    import_records,
)
from refsed.records import Creator, InvalidFieldError


def test_initialize_creates_database(isolated_dir: Path) -> None:
    path = isolated_dir / "nested" / "library.sqlite3"
    library = Library(path)
    library.initialize()
    # Initializing twice is harmless.
    library.initialize()
    assert path.exists()
    assert library.list_record_ids() == []


@pytest.mark.usefixtures("seeded_library")
def test_query_by_condition(config: Config) -> None:
    library = Library(config.library_path)
    assert library.query_by_condition("url", "contains", "HTTP://") == [1, 2]
    assert library.query_by_condition("url", "contains", "example") == [1, 2, 3]
    assert library.query_by_condition("url", "contains", "example", library_id=2) == [3]
    assert library.query_by_condition("volume", "is", "12") == [1]
    assert library.query_by_condition("volume", "is", "1") == []
    assert library.query_by_condition("creator", "contains", "gogh") == [2]
    assert library.query_by_condition("creator", "contains", "health") == [3]
    assert library.query_by_condition("tag", "contains", "READ") == [1]
    assert library.query_by_condition("collection", "is", "1") == [1]
    assert library.query_by_condition("collection", "is", "one") == []
    assert library.query_by_condition("itemType", "is", "Book") == [2]
    assert library.query_by_condition("itemType", "contains", "article") == [1]


@pytest.mark.usefixtures("seeded_library")
def test_query_by_condition_case_folds(config: Config) -> None:
    library = Library(config.library_path)
    with library.connect() as conn:
        conn.execute("UPDATE fields SET value = 'ſtudy of things' WHERE record_id = 3 AND name = 'title'")
        conn.execute("UPDATE fields SET value = 'Straße Verlag' WHERE record_id = 2 AND name = 'publisher'")
    assert library.query_by_condition("title", "contains", "STUDY") == [3]
    assert library.query_by_condition("publisher", "contains", "strasse") == [2]
    assert library.query_by_condition("publisher", "is", "STRASSE VERLAG") == [2]


@pytest.mark.usefixtures("seeded_library")
def test_query_by_unsupported_condition(config: Config) -> None:
    library = Library(config.library_path)
    with pytest.raises(LibraryError):
        library.query_by_condition("nonsense", "contains", "x")


@pytest.mark.usefixtures("seeded_library")
def test_list_record_ids(config: Config) -> None:
    library = Library(config.library_path)
    assert library.list_record_ids() == [1, 2, 3]
    assert library.list_record_ids(library_id=1) == [1, 2]
    assert library.list_record_ids(library_id=9) == []


@pytest.mark.usefixtures("seeded_library")
def test_load_records(config: Config) -> None:
    library = Library(config.library_path)
    records = library.load_records([3, 1, 99])
    # Records come back in the order asked for, and unknown IDs are skipped.
    assert [r.id for r in records] == [3, 1]

    r = records[1]
    assert r.key == "AAAA1111"
    assert r.library_id == 1
    assert r.item_type == "journalArticle"
    assert r.item_type_id is not None
    assert r.get_field("title") == "Smith , John"
    assert r.get_field("publisher") == ""
    assert r.get_field("itemType") == "journalArticle"
    assert r.get_creators() == (
        Creator(first_name="John", last_name="Smith , John", creator_type="author"),
        Creator(first_name="Jane", last_name="Doe", creator_type="editor"),
    )
    assert r.get_tags() == ["to-read", "physics"]
    assert r.get_collections() == [1]

    assert records[0].get_creators() == (Creator(full_name="World Health Organization"),)
    assert records[0].get_collections() == []


@pytest.mark.usefixtures("seeded_library")
def test_get_unknown_field(config: Config) -> None:
    (r,) = Library(config.library_path).load_records([1])
    with pytest.raises(InvalidFieldError):
        r.get_field("nonsense")
    with pytest.raises(InvalidFieldError):
        r.set_field("nonsense", "x")


@pytest.mark.usefixtures("seeded_library")
def test_save_record(config: Config) -> None:
    library = Library(config.library_path)
    (r,) = library.load_records([1])
    r.set_field("title", "Smith, John")
    r.set_field("publisher", "Physics Press")
    r.set_creators([Creator(first_name="John", last_name="Smith, John")])
    r.save()
    assert not r.dirty_fields
    assert not r.dirty_creators

    (r,) = library.load_records([1])
    assert r.get_field("title") == "Smith, John"
    assert r.get_field("publisher") == "Physics Press"
    assert r.get_field("url") == "http://example.com/article"
    assert r.get_creators() == (Creator(first_name="John", last_name="Smith, John"),)


@pytest.mark.usefixtures("seeded_library")
def test_save_without_changes_is_noop(config: Config) -> None:
    library = Library(config.library_path)
    (r,) = library.load_records([1])
    with library.connect() as conn:
        conn.execute("DELETE FROM records WHERE id = 1")
    # Nothing is staged, so the library is not consulted.
    r.save()


@pytest.mark.usefixtures("seeded_library")
def test_save_deleted_record_fails(config: Config) -> None:
    library = Library(config.library_path)
    (r,) = library.load_records([1])
    with library.connect() as conn:
        conn.execute("DELETE FROM records WHERE id = 1")
    r.set_field("title", "x")
    with pytest.raises(LibraryError):
        r.save()
    # The failed save wrote nothing.
    with library.connect() as conn:
        assert conn.execute("SELECT COUNT(*) FROM fields WHERE record_id = 1").fetchone()[0] == 0


def test_save_detached_record_fails() -> None:
    r = LibraryRecord(id=1, key="KEY00001", library_id=1, item_type=None)
    r.set_field("title", "x")
    with pytest.raises(LibraryError):
        r.save()


def test_import_export(config: Config, isolated_dir: Path) -> None:
    path = isolated_dir / "records.toml"
    with path.open("w") as fp:
        fp.write(
            """
            [[collections]]
            id = 7
            name = "Relativity"

            [[records]]
            key = "EINS1905"
            item_type = "journalArticle"
            tags = ["classic", "physics"]
            collections = [7]

            [records.fields]
            title = "On the Electrodynamics of Moving Bodies"
            date = "1905"

            [[records.creators]]
            firstName = "Albert"
            lastName = "Einstein"

            [[records]]
            key = "WHO2020"
            library_id = 2
            item_type = "report"

            [[records.creators]]
            fullName = "World Health Organization"
            creatorType = "contributor"
            """
        )
    assert import_records(config, path) == 2

    library = Library(config.library_path)
    records = library.load_records(library.list_record_ids())
    assert [r.key for r in records] == ["EINS1905", "WHO2020"]
    assert records[0].get_field("title") == "On the Electrodynamics of Moving Bodies"
    assert records[0].get_tags() == ["classic", "physics"]
    assert records[0].get_collections() == [7]
    assert records[1].library_id == 2
    assert records[1].get_creators() == (
        Creator(full_name="World Health Organization", creator_type="contributor"),
    )

    exported = tomllib.loads(export_records(config))
    assert exported["collections"] == [{"id": 7, "name": "Relativity", "library_id": 1}]
    assert [r["key"] for r in exported["records"]] == ["EINS1905", "WHO2020"]
    assert exported["records"][0]["fields"] == {
        "date": "1905",
        "title": "On the Electrodynamics of Moving Bodies",
    }

    # Re-importing the export changes nothing.
    before = export_records(config)
    roundtrip = isolated_dir / "roundtrip.toml"
    with roundtrip.open("w") as fp:
        fp.write(before)
    assert import_records(config, roundtrip) == 2
    assert export_records(config) == before

    exported = tomllib.loads(export_records(config, library_id=2))
    assert exported["collections"] == []
    assert [r["key"] for r in exported["records"]] == ["WHO2020"]


@pytest.mark.usefixtures("seeded_library")
def test_import_replaces_existing_records(config: Config, isolated_dir: Path) -> None:
    path = isolated_dir / "records.toml"
    with path.open("w") as fp:
        fp.write(
            """
            [[records]]
            key = "AAAA1111"
            item_type = "book"

            [records.fields]
            title = "Replaced"
            """
        )
    assert import_records(config, path) == 1

    library = Library(config.library_path)
    assert library.list_record_ids() == [1, 2, 3]
    (r,) = library.load_records([1])
    assert r.item_type == "book"
    assert r.fields == {"title": "Replaced"}
    assert r.get_creators() == ()
    assert r.get_tags() == []
    assert r.get_collections() == []


def test_import_validation(config: Config, isolated_dir: Path) -> None:
    path = isolated_dir / "records.toml"

    def write(x: str) -> None:
        with path.open("w") as fp:
            fp.write(x)

    with pytest.raises(LibraryImportError, match="Record file not found"):
        import_records(config, isolated_dir / "missing.toml")

    write("records = [")
    with pytest.raises(LibraryImportError, match="invalid TOML"):
        import_records(config, path)

    for raw, error in [
        ("[[records]]\nitem_type = 'book'", "Invalid record at index 0"),
        ("[[records]]\nkey = ''", "key must be a non-empty string"),
        ("[[records]]\nkey = 'A'\nitem_type = 'scroll'", "item_type must be one of"),
        ("[[records]]\nkey = 'A'\nfields = { nonsense = 'x' }", "unknown field nonsense"),
        ("[[records]]\nkey = 'A'\nfields = { title = 1 }", "field title must be a string"),
        ("[[records]]\nkey = 'A'\ntags = [1]", "tags must be strings"),
        ("[[records]]\nkey = 'A'\ncollections = ['x']", "collections must be collection IDs"),
        ("[[records]]\nkey = 'A'\ncollections = [4]", "belongs to unknown collection 4"),
        ("[[collections]]\nname = 'x'", "Invalid collection at index 0"),
        ("[[collections]]\nid = 'x'\nname = 'x'", "id and library_id must be integers"),
    ]:
        write(raw)
        with pytest.raises(LibraryImportError, match=error):
            import_records(config, path)

    # Failed imports leave the library untouched.
    with sqlite3.connect(config.library_path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM records").fetchone()[0] == 0
