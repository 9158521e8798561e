from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from sqlalchemy import Connection, insert, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from kb_pipeline.config import get_settings
from kb_pipeline.loader import load_docs

from .chunking import chunk_docs
from .exceptions import BuildError
from .models import BuildStats, Chunk, Document
from .retrieval import KnowledgeBase
from .store import CHUNK_COLUMNS, doc_tags_table, docs_table, recreate_store, tags_table

_log = logging.getLogger(__name__)

CorpusSource = Union[str, Path, Iterable[Document]]

INSERT_CHUNK_SQL = text(
    f"INSERT INTO chunks ({', '.join(CHUNK_COLUMNS)}) "
    f"VALUES ({', '.join(':' + name for name in CHUNK_COLUMNS)})"
)


def _resolve_corpus(corpus_source: CorpusSource, free_only: bool) -> List[Document]:
    if isinstance(corpus_source, (str, Path)):
        return load_docs(Path(corpus_source), free_only=free_only)
    docs = list(corpus_source)
    if free_only:
        docs = [doc for doc in docs if doc.free]
    return docs


def _check_unique_ids(docs: Sequence[Document]) -> None:
    duplicates = sorted(doc_id for doc_id, count in Counter(d.id for d in docs).items() if count > 1)
    if duplicates:
        raise BuildError(f"Duplicate document ids in corpus: {', '.join(duplicates)}")


def _insert_docs(conn: Connection, docs: Sequence[Document]) -> None:
    if not docs:
        return
    conn.execute(
        insert(docs_table),
        [
            {
                "id": doc.id,
                "title": doc.title,
                "category": doc.category,
                "summary": doc.summary,
                "body": doc.body,
                "date": doc.date,
            }
            for doc in docs
        ],
    )


def _insert_tags(conn: Connection, docs: Sequence[Document]) -> None:
    # dict.fromkeys keeps first-seen order while deduplicating
    all_tags = list(dict.fromkeys(tag for doc in docs for tag in doc.tags))
    if not all_tags:
        return
    conn.execute(
        sqlite_insert(tags_table).on_conflict_do_nothing(index_elements=["name"]),
        [{"name": tag} for tag in all_tags],
    )


def _insert_doc_tags(conn: Connection, docs: Sequence[Document]) -> None:
    rows = [{"doc_id": doc.id, "tag": tag} for doc in docs for tag in doc.tags]
    if not rows:
        return
    conn.execute(insert(doc_tags_table), rows)


def _insert_chunks(conn: Connection, chunks: Sequence[Chunk]) -> None:
    if not chunks:
        return
    conn.execute(
        INSERT_CHUNK_SQL,
        [
            {
                "chunk_id": chunk.id,
                "doc_id": chunk.doc_id,
                "title": chunk.title,
                "text": chunk.text,
                "category": chunk.category,
                "tags": ",".join(chunk.tags),
                "position": chunk.position,
            }
            for chunk in chunks
        ],
    )


def build(
    corpus_source: Optional[CorpusSource] = None,
    store_target: Optional[Union[str, Path]] = None,
    free_only: bool = False,
) -> BuildStats:
    """
    Rebuild the knowledge base store from a corpus.

    `corpus_source` is a corpus directory or an iterable of Documents;
    `store_target` is the SQLite file to (re)create. Both default to the
    configured locations. Every row is written in one transaction, so a
    failed build leaves the freshly created store empty.
    """
    settings = get_settings()
    if corpus_source is None:
        corpus_source = settings.corpus_dir
    db_path = Path(store_target) if store_target is not None else settings.db_path

    docs = _resolve_corpus(corpus_source, free_only)
    _check_unique_ids(docs)

    try:
        engine = recreate_store(db_path)
    except Exception as exc:
        raise BuildError(f"Could not create store at {db_path}: {exc}") from exc

    try:
        chunks = chunk_docs(docs)
        _log.info("Indexing %d documents (%d chunks) into %s", len(docs), len(chunks), db_path)

        with engine.begin() as conn:
            _insert_docs(conn, docs)
            _insert_tags(conn, docs)
            _insert_doc_tags(conn, docs)
            _insert_chunks(conn, chunks)

        stats = KnowledgeBase(engine).stats()
    except Exception as exc:
        _log.error("Build into %s failed, transaction rolled back", db_path)
        raise BuildError(f"Failed to build knowledge base: {exc}") from exc
    finally:
        engine.dispose()

    _log.info(
        "Build completed: %d docs, %d tags, %d chunks",
        stats.doc_count,
        stats.tag_count,
        stats.chunk_count,
    )
    return stats


__all__ = ["CorpusSource", "build"]
