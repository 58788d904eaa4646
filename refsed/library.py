"""
The library module stores records in a SQLite database and implements the record store that the
search and replace engines run against.

The store supports two kinds of indexed probes for the search pre-filter:

- `contains`: a case-insensitive substring test on a field, the creator names, the tag names, or the
  item type name.
- `is`: a case-insensitive equality test on a field or the item type name, or a membership test on a
  collection ID.

Records are loaded into memory as `LibraryRecord`s. Mutations are staged on the record and written in
a single transaction on `save()`.

Records are imported from and exported to TOML files of the form:

    [[collections]]
    id = 1
    name = "Reading List"

    [[records]]
    key = "ABCD1234"
    item_type = "journalArticle"
    tags = ["to-read"]
    collections = [1]

    [records.fields]
    title = "On the Electrodynamics of Moving Bodies"

    [[records.creators]]
    firstName = "Albert"
    lastName = "Einstein"
"""

from __future__ import annotations

import contextlib
import dataclasses
import logging
import sqlite3
from collections import defaultdict
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

import tomli_w
import tomllib

from refsed.common import RefsedError, RefsedExpectedError
from refsed.config import Config
from refsed.fields import SCALAR_FIELDS
from refsed.records import (
    ITEM_TYPES,
    Creator,
    InvalidFieldError,
    StoreOperator,
)
from refsed.records import item_type_id as lookup_item_type_id

logger = logging.getLogger(__name__)

LIBRARY_SCHEMA_PATH = Path(__file__).resolve().parent / "library.sql"

# SQLite caps the number of bound parameters in one statement.
LOAD_CHUNK_SIZE = 900


class LibraryError(RefsedError):
    pass


class LibraryImportError(RefsedExpectedError):
    pass


def _fold(x: str | None) -> str | None:
    return x.casefold() if x is not None else None


class Library:
    def __init__(self, path: Path) -> None:
        self.path = path

    @contextlib.contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path, isolation_level=None, timeout=15.0)
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute("PRAGMA journal_mode=WAL")
            # SQLite's lower() only folds ASCII; case-fold with Python so the probes agree with the matcher.
            conn.create_function("fold", 1, _fold, deterministic=True)
            yield conn
        finally:
            if conn:
                conn.close()

    def initialize(self) -> None:
        """Create the database and its tables if they do not exist yet."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn, LIBRARY_SCHEMA_PATH.open("r") as fp:
            conn.executescript(fp.read())

    def query_by_condition(
        self,
        field: str,
        operator: StoreOperator,
        term: str,
        library_id: int | None = None,
    ) -> list[int]:
        params: dict[str, Any] = {"term": term, "field": field}
        if field == "creator" and operator == "contains":
            predicate = """
                EXISTS (
                    SELECT * FROM creators c
                    WHERE c.record_id = r.id AND (
                        instr(fold(c.first_name), fold(:term)) > 0
                        OR instr(fold(c.last_name), fold(:term)) > 0
                        OR instr(fold(c.full_name), fold(:term)) > 0
                    )
                )
            """
        elif field == "tag" and operator == "contains":
            predicate = """
                EXISTS (
                    SELECT * FROM tags t
                    WHERE t.record_id = r.id AND instr(fold(t.tag), fold(:term)) > 0
                )
            """
        elif field == "collection" and operator == "is":
            try:
                params["term"] = int(term)
            except ValueError:
                logger.debug(f"Collection probe term {term} is not a collection ID")
                return []
            predicate = """
                EXISTS (
                    SELECT * FROM records_collections rc
                    WHERE rc.record_id = r.id AND rc.collection_id = :term
                )
            """
        elif field == "itemType":
            if operator == "is":
                predicate = "fold(r.item_type) = fold(:term)"
            else:
                predicate = "instr(fold(r.item_type), fold(:term)) > 0"
        elif field in SCALAR_FIELDS:
            if operator == "is":
                test = "fold(f.value) = fold(:term)"
            else:
                test = "instr(fold(f.value), fold(:term)) > 0"
            predicate = f"""
                EXISTS (
                    SELECT * FROM fields f
                    WHERE f.record_id = r.id AND f.name = :field AND {test}
                )
            """
        else:
            raise LibraryError(f"Unsupported store probe: {field} {operator}")

        query = f"SELECT r.id FROM records r WHERE {predicate}"
        if library_id is not None:
            query += " AND r.library_id = :library_id"
            params["library_id"] = library_id
        query += " ORDER BY r.id"
        with self.connect() as conn:
            return [row["id"] for row in conn.execute(query, params)]

    def list_record_ids(self, library_id: int | None = None) -> list[int]:
        with self.connect() as conn:
            if library_id is None:
                cursor = conn.execute("SELECT id FROM records ORDER BY id")
            else:
                cursor = conn.execute(
                    "SELECT id FROM records WHERE library_id = ? ORDER BY id",
                    (library_id,),
                )
            return [row["id"] for row in cursor]

    def load_records(self, ids: Sequence[int]) -> list[LibraryRecord]:
        """Load the records with the given IDs, in the order of the IDs. Unknown IDs are skipped."""
        records: dict[int, LibraryRecord] = {}
        creators: dict[int, list[Creator]] = defaultdict(list)
        with self.connect() as conn:
            for i in range(0, len(ids), LOAD_CHUNK_SIZE):
                chunk = list(ids[i : i + LOAD_CHUNK_SIZE])
                placeholders = ",".join(["?"] * len(chunk))
                cursor = conn.execute(
                    f"SELECT id, key, library_id, item_type FROM records WHERE id IN ({placeholders})",
                    chunk,
                )
                for row in cursor:
                    records[row["id"]] = LibraryRecord(
                        id=row["id"],
                        key=row["key"],
                        library_id=row["library_id"],
                        item_type=row["item_type"],
                        library=self,
                    )
                cursor = conn.execute(
                    f"SELECT record_id, name, value FROM fields WHERE record_id IN ({placeholders})",
                    chunk,
                )
                for row in cursor:
                    records[row["record_id"]].fields[row["name"]] = row["value"]
                cursor = conn.execute(
                    f"""
                    SELECT record_id, first_name, last_name, full_name, creator_type
                    FROM creators
                    WHERE record_id IN ({placeholders})
                    ORDER BY record_id, position
                    """,
                    chunk,
                )
                for row in cursor:
                    creators[row["record_id"]].append(
                        Creator(
                            first_name=row["first_name"],
                            last_name=row["last_name"],
                            full_name=row["full_name"],
                            creator_type=row["creator_type"],
                        )
                    )
                cursor = conn.execute(
                    f"SELECT record_id, tag FROM tags WHERE record_id IN ({placeholders}) ORDER BY record_id, position",
                    chunk,
                )
                for row in cursor:
                    records[row["record_id"]].tags.append(row["tag"])
                cursor = conn.execute(
                    f"""
                    SELECT record_id, collection_id
                    FROM records_collections
                    WHERE record_id IN ({placeholders})
                    ORDER BY record_id, collection_id
                    """,
                    chunk,
                )
                for row in cursor:
                    records[row["record_id"]].collections.append(row["collection_id"])

        for record_id, cs in creators.items():
            records[record_id].creators = tuple(cs)
        return [records[i] for i in ids if i in records]


@dataclasses.dataclass
class LibraryRecord:
    id: int
    key: str
    library_id: int
    # The canonical item type name, such as `journalArticle`.
    item_type: str | None
    fields: dict[str, str] = dataclasses.field(default_factory=dict)
    creators: tuple[Creator, ...] = ()
    tags: list[str] = dataclasses.field(default_factory=list)
    collections: list[int] = dataclasses.field(default_factory=list)
    library: Library | None = dataclasses.field(default=None, repr=False, compare=False)
    # Mutations staged for the next save.
    dirty_fields: set[str] = dataclasses.field(default_factory=set, repr=False, compare=False)
    dirty_creators: bool = dataclasses.field(default=False, repr=False, compare=False)

    @property
    def item_type_id(self) -> int | None:
        return lookup_item_type_id(self.item_type) if self.item_type else None

    def get_field(self, name: str) -> str:
        if name == "itemType":
            return self.item_type or ""
        if name not in SCALAR_FIELDS:
            raise InvalidFieldError(f"Record {self.key} has no field {name}")
        return self.fields.get(name, "")

    def set_field(self, name: str, value: str) -> None:
        if name not in SCALAR_FIELDS:
            raise InvalidFieldError(f"Record {self.key} has no field {name}")
        self.fields[name] = value
        self.dirty_fields.add(name)

    def get_creators(self) -> tuple[Creator, ...]:
        return self.creators

    def set_creators(self, creators: Sequence[Creator]) -> None:
        self.creators = tuple(creators)
        self.dirty_creators = True

    def get_tags(self) -> list[str]:
        return list(self.tags)

    def get_collections(self) -> list[int]:
        return list(self.collections)

    def save(self) -> None:
        if self.library is None:
            raise LibraryError(f"Record {self.key} is not attached to a library")
        if not self.dirty_fields and not self.dirty_creators:
            return

        with self.library.connect() as conn:
            conn.execute("BEGIN")
            try:
                cursor = conn.execute("SELECT EXISTS(SELECT * FROM records WHERE id = ?)", (self.id,))
                if not cursor.fetchone()[0]:
                    raise LibraryError(f"Record {self.key} no longer exists in the library")
                conn.executemany(
                    """
                    INSERT INTO fields (record_id, name, value) VALUES (?, ?, ?)
                    ON CONFLICT (record_id, name) DO UPDATE SET value = excluded.value
                    """,
                    [(self.id, name, self.fields[name]) for name in sorted(self.dirty_fields)],
                )
                if self.dirty_creators:
                    conn.execute("DELETE FROM creators WHERE record_id = ?", (self.id,))
                    conn.executemany(
                        """
                        INSERT INTO creators
                            (record_id, position, first_name, last_name, full_name, creator_type)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        [
                            (self.id, i, c.first_name, c.last_name, c.full_name, c.creator_type)
                            for i, c in enumerate(self.creators, start=1)
                        ],
                    )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug(f"Saved record {self.key}: fields {sorted(self.dirty_fields)}, creators {self.dirty_creators}")
        self.dirty_fields = set()
        self.dirty_creators = False

    def dump(self) -> dict[str, Any]:
        r: dict[str, Any] = {"key": self.key, "library_id": self.library_id}
        if self.item_type:
            r["item_type"] = self.item_type
        r["tags"] = self.tags
        r["collections"] = self.collections
        r["fields"] = dict(sorted(self.fields.items()))
        r["creators"] = [c.dump() for c in self.creators]
        return r


def import_records(c: Config, path: Path) -> int:
    """
    Import the records and collections of a TOML file into the library. Records are identified by
    their key: importing a record whose key already exists replaces the existing record's data.
    Returns the number of records imported.
    """
    try:
        with path.open("rb") as fp:
            data = tomllib.load(fp)
    except FileNotFoundError as e:
        raise LibraryImportError(f"Record file not found ({path})") from e
    except tomllib.TOMLDecodeError as e:
        raise LibraryImportError(f"Failed to decode record file {path}: invalid TOML: {e}") from e

    collections = [_parse_collection(path, i, x) for i, x in enumerate(data.get("collections", []))]
    records = [_parse_record(path, i, x) for i, x in enumerate(data.get("records", []))]

    library = Library(c.library_path)
    library.initialize()
    with library.connect() as conn:
        conn.execute("BEGIN")
        try:
            conn.executemany(
                """
                INSERT INTO collections (id, name, library_id) VALUES (?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET name = excluded.name, library_id = excluded.library_id
                """,
                collections,
            )
            known_collections = {row["id"] for row in conn.execute("SELECT id FROM collections")}
            for r in records:
                for cid in r.collections:
                    if cid not in known_collections:
                        raise LibraryImportError(
                            f"Record {r.key} in {path} belongs to unknown collection {cid}"
                        )
                conn.execute(
                    """
                    INSERT INTO records (key, library_id, item_type) VALUES (?, ?, ?)
                    ON CONFLICT (key) DO UPDATE SET
                        library_id = excluded.library_id
                      , item_type = excluded.item_type
                    """,
                    (r.key, r.library_id, r.item_type),
                )
                record_id = conn.execute("SELECT id FROM records WHERE key = ?", (r.key,)).fetchone()["id"]
                for table in ["fields", "creators", "tags", "records_collections"]:
                    conn.execute(f"DELETE FROM {table} WHERE record_id = ?", (record_id,))
                conn.executemany(
                    "INSERT INTO fields (record_id, name, value) VALUES (?, ?, ?)",
                    [(record_id, k, v) for k, v in r.fields.items()],
                )
                conn.executemany(
                    """
                    INSERT INTO creators
                        (record_id, position, first_name, last_name, full_name, creator_type)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (record_id, i, x.first_name, x.last_name, x.full_name, x.creator_type)
                        for i, x in enumerate(r.creators, start=1)
                    ],
                )
                conn.executemany(
                    "INSERT OR IGNORE INTO tags (record_id, tag, position) VALUES (?, ?, ?)",
                    [(record_id, t, i) for i, t in enumerate(r.tags, start=1)],
                )
                conn.executemany(
                    "INSERT OR IGNORE INTO records_collections (record_id, collection_id) VALUES (?, ?)",
                    [(record_id, cid) for cid in r.collections],
                )
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise

    logger.info(f"Imported {len(records)} records and {len(collections)} collections from {path}")
    return len(records)


def export_records(c: Config, library_id: int | None = None) -> str:
    """Export the library (or one library ID of it) as a TOML document that `import_records` reads."""
    library = Library(c.library_path)
    library.initialize()
    records = library.load_records(library.list_record_ids(library_id))
    with library.connect() as conn:
        if library_id is None:
            cursor = conn.execute("SELECT id, name, library_id FROM collections ORDER BY id")
        else:
            cursor = conn.execute(
                "SELECT id, name, library_id FROM collections WHERE library_id = ? ORDER BY id",
                (library_id,),
            )
        collections = [
            {"id": row["id"], "name": row["name"], "library_id": row["library_id"]} for row in cursor
        ]
    return tomli_w.dumps({"collections": collections, "records": [r.dump() for r in records]})


def _parse_collection(path: Path, idx: int, raw: Any) -> tuple[int, str, int]:
    try:
        cid = raw["id"]
        name = raw["name"]
        library_id = raw.get("library_id", 1)
        if not isinstance(cid, int) or not isinstance(library_id, int):
            raise ValueError("id and library_id must be integers")
        if not isinstance(name, str):
            raise ValueError("name must be a string")
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        raise LibraryImportError(f"Invalid collection at index {idx} in {path}: {e}") from e
    return cid, name, library_id


def _parse_record(path: Path, idx: int, raw: Any) -> LibraryRecord:
    try:
        key = raw["key"]
        if not isinstance(key, str) or not key:
            raise ValueError("key must be a non-empty string")
        library_id = raw.get("library_id", 1)
        if not isinstance(library_id, int):
            raise ValueError("library_id must be an integer")
        item_type = raw.get("item_type")
        if item_type is not None and item_type not in ITEM_TYPES:
            raise ValueError(f"item_type must be one of {', '.join(ITEM_TYPES)}: got {item_type}")
        fields = raw.get("fields", {})
        for k, v in fields.items():
            if k not in SCALAR_FIELDS:
                raise ValueError(f"unknown field {k}")
            if not isinstance(v, str):
                raise ValueError(f"field {k} must be a string")
        creators = tuple(Creator.parse(x) for x in raw.get("creators", []))
        tags = raw.get("tags", [])
        if not all(isinstance(t, str) for t in tags):
            raise ValueError("tags must be strings")
        collections = raw.get("collections", [])
        if not all(isinstance(x, int) for x in collections):
            raise ValueError("collections must be collection IDs")
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        raise LibraryImportError(f"Invalid record at index {idx} in {path}: {e}") from e
    return LibraryRecord(
        id=0,
        key=key,
        library_id=library_id,
        item_type=item_type,
        fields=dict(fields),
        creators=creators,
        tags=list(tags),
        collections=list(collections),
    )
