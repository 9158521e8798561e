from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import Column, Engine, MetaData, PrimaryKeyConstraint, Table, Text, create_engine, text

from .exceptions import StoreNotFoundError

_log = logging.getLogger(__name__)

metadata = MetaData()

docs_table = Table(
    "docs",
    metadata,
    Column("id", Text, primary_key=True),
    Column("title", Text),
    Column("category", Text),
    Column("summary", Text),
    Column("body", Text),
    Column("date", Text),
)

tags_table = Table(
    "tags",
    metadata,
    Column("name", Text, primary_key=True),
)

doc_tags_table = Table(
    "doc_tags",
    metadata,
    Column("doc_id", Text, nullable=False),
    Column("tag", Text, nullable=False),
    PrimaryKeyConstraint("doc_id", "tag"),
)

# The passage store is an FTS5 virtual table; SQLAlchemy has no construct for it.
# Its column layout is the on-disk contract shared with existing stores.
CHUNK_COLUMNS = ("chunk_id", "doc_id", "title", "text", "category", "tags", "position")

CREATE_CHUNKS_SQL = f"""
CREATE VIRTUAL TABLE chunks USING fts5(
    {", ".join(CHUNK_COLUMNS)},
    tokenize='porter'
)
"""


def get_engine(db_path: Path) -> Engine:
    """Return an engine for the SQLite store at db_path."""
    return create_engine(
        f"sqlite:///{Path(db_path).resolve()}",
        connect_args={"check_same_thread": False},
    )


def open_engine(db_path: Path) -> Engine:
    """Return an engine for an existing store, failing fast when it is missing."""
    db_path = Path(db_path)
    if not db_path.is_file():
        raise StoreNotFoundError(f"Knowledge base store not found: {db_path}")
    return get_engine(db_path)


def recreate_store(db_path: Path) -> Engine:
    """
    Delete any store at db_path and create an empty schema in its place.

    Returns an engine bound to the new store.
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    if db_path.exists():
        _log.info("Removing existing store %s", db_path)
        db_path.unlink()

    engine = get_engine(db_path)
    with engine.begin() as conn:
        metadata.create_all(conn)
        conn.execute(text(CREATE_CHUNKS_SQL))

    _log.info("Created empty store at %s", db_path)
    return engine


__all__ = [
    "CHUNK_COLUMNS",
    "doc_tags_table",
    "docs_table",
    "get_engine",
    "metadata",
    "open_engine",
    "recreate_store",
    "tags_table",
]
