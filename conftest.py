import logging
import sqlite3
from collections.abc import Iterator, Sequence
from pathlib import Path

import pytest
from click.testing import CliRunner

from refsed.config import Config
from refsed.library import LIBRARY_SCHEMA_PATH, LibraryRecord
from refsed.records import Creator

logger = logging.getLogger(__name__)


@pytest.fixture(autouse=True)
def debug_logging() -> None:
    logging.getLogger().setLevel(logging.DEBUG)


@pytest.fixture()
def isolated_dir() -> Iterator[Path]:
    with CliRunner().isolated_filesystem():
        yield Path.cwd()


@pytest.fixture()
def config(isolated_dir: Path) -> Config:
    data_dir = isolated_dir / "data"
    data_dir.mkdir()

    library_path = data_dir / "library.sqlite3"
    with sqlite3.connect(library_path) as conn:
        with LIBRARY_SCHEMA_PATH.open("r") as fp:
            conn.executescript(fp.read())

    return Config(
        library_path=library_path,
        confirm_above_count=25,
        prefilter_field_threshold=5,
    )


@pytest.fixture()
def seeded_library(config: Config) -> None:
    with sqlite3.connect(config.library_path) as conn:
        conn.executescript(
            """\
INSERT INTO records
       (id, key       , library_id, item_type       )
VALUES (1 , 'AAAA1111', 1         , 'journalArticle')
     , (2 , 'BBBB2222', 1         , 'book'          )
     , (3 , 'CCCC3333', 2         , 'webpage'       );

INSERT INTO fields
       (record_id, name          , value                          )
VALUES (1        , 'title'       , 'Smith , John'                 )
     , (1        , 'url'         , 'http://example.com/article'   )
     , (1        , 'DOI'         , '10.1000/xyz123'               )
     , (1        , 'date'        , '2021-03-04'                   )
     , (1        , 'volume'      , '12'                           )
     , (2        , 'title'       , 'Draft of a Theory'            )
     , (2        , 'url'         , 'http://example.org/draft'     )
     , (2        , 'publisher'   , 'Academic Press'               )
     , (3        , 'title'       , ''                             )
     , (3        , 'url'         , 'https://example.net'          )
     , (3        , 'abstractNote', 'An abstract about the world'  );

INSERT INTO creators
       (record_id, position, first_name, last_name     , full_name                  , creator_type)
VALUES (1        , 1       , 'John'    , 'Smith , John', ''                         , 'author'    )
     , (1        , 2       , 'Jane'    , 'Doe'         , ''                         , 'editor'    )
     , (2        , 1       , 'Vincent' , 'Van Gogh'    , ''                         , 'author'    )
     , (3        , 1       , ''        , ''            , 'World Health Organization', 'author'    );

INSERT INTO tags
       (record_id, tag      , position)
VALUES (1        , 'to-read', 1       )
     , (1        , 'physics', 2       )
     , (2        , 'art'    , 1       );

INSERT INTO collections
       (id, name          , library_id)
VALUES (1 , 'Reading List', 1         )
     , (2 , 'Art'         , 1         );

INSERT INTO records_collections
       (record_id, collection_id)
VALUES (1        , 1            )
     , (2        , 2            );
            """
        )


class SaveFailingRecord(LibraryRecord):
    """An in-memory record whose saves always fail."""

    def save(self) -> None:
        raise OSError("disk is full")


def make_record(
    id: int = 1,
    *,
    fields: dict[str, str] | None = None,
    creators: Sequence[Creator] = (),
    tags: Sequence[str] = (),
    collections: Sequence[int] = (),
    item_type: str | None = "journalArticle",
    fail_save: bool = False,
) -> LibraryRecord:
    """Build an in-memory record. Unless `fail_save` is set, saving only clears the staged changes."""
    cls = SaveFailingRecord if fail_save else InMemoryRecord
    return cls(
        id=id,
        key=f"KEY{id:05d}",
        library_id=1,
        item_type=item_type,
        fields=dict(fields or {}),
        creators=tuple(creators),
        tags=list(tags),
        collections=list(collections),
    )


class InMemoryRecord(LibraryRecord):
    """An in-memory record that counts its saves."""

    saves: int = 0

    def save(self) -> None:
        self.saves += 1
        self.dirty_fields = set()
        self.dirty_creators = False
