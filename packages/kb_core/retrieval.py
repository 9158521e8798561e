from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import Engine, and_, func, select, text
from sqlalchemy.exc import OperationalError

from .models import BuildStats, ChunkResult, DocRecord, SearchResult, TagCount
from .store import doc_tags_table, docs_table, open_engine, tags_table

_log = logging.getLogger(__name__)

SNIPPET_LENGTH = 400

# Word tokens of a free-text query; everything else (quotes, operators,
# column filters, punctuation) is dropped before the query reaches FTS5.
_QUERY_TOKEN = re.compile(r"\w+", re.UNICODE)


def build_match_expression(query: str) -> Optional[str]:
    """
    Turn arbitrary user text into a literal FTS5 MATCH expression.

    Each word becomes a quoted FTS5 string, so operators such as AND, NEAR,
    '*' or 'column:' are matched as plain text. Terms are implicitly ANDed.
    Returns None when the query holds no searchable word.
    """
    tokens = _QUERY_TOKEN.findall(query)
    if not tokens:
        return None
    return " ".join('"' + token.replace('"', '""') + '"' for token in tokens)


def normalize_filter_tags(tags: Optional[Iterable[Optional[str]]]) -> List[str]:
    """Drop None/blank entries and duplicates from a tag filter."""
    if not tags:
        return []
    if isinstance(tags, str):
        tags = [tags]
    cleaned: list[str] = []
    for tag in tags:
        if tag is None:
            continue
        tag = str(tag).strip()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    return cleaned


def parse_tags(tags_field: Optional[str]) -> List[str]:
    """Split the comma-joined tag field of a chunk row."""
    if not tags_field:
        return []
    return [tag.strip() for tag in str(tags_field).split(",") if tag.strip()]


def _chunk_result(row: Mapping[str, Any]) -> ChunkResult:
    return ChunkResult(
        chunk_id=row["chunk_id"],
        doc_id=row["doc_id"],
        title=row["title"],
        category=row["category"],
        tags=parse_tags(row["tags"]),
        position=int(row["position"]),
        text=row["text"] or "",
    )


class KnowledgeBase:
    """
    Read-only query API over a built store.

    Holds the engine it was given; every operation checks out its own
    connection and returns it before returning.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def from_path(cls, db_path: Path) -> "KnowledgeBase":
        return cls(open_engine(db_path))

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Passage store
    # ------------------------------------------------------------------

    def search(
        self,
        query: Optional[str],
        category: Optional[str] = None,
        tags: Optional[Sequence[Optional[str]]] = None,
        limit: int = 8,
    ) -> List[SearchResult]:
        """
        Ranked full-text search over chunks.

        Chunks must carry every requested tag; `category` is an exact match.
        Results are ordered by descending score.
        """
        query = (query or "").strip()
        if not query or limit <= 0:
            return []

        match_expression = build_match_expression(query)
        if match_expression is None:
            return []

        filter_tags = normalize_filter_tags(tags)
        if any("," in tag for tag in filter_tags):
            # No whole entry of the comma-joined tag field can contain a comma.
            return []

        clauses = ["chunks MATCH :match"]
        params: dict[str, Any] = {"match": match_expression, "limit": limit}

        if category is not None:
            clauses.append("chunks.category = :category")
            params["category"] = category

        for idx, tag in enumerate(filter_tags):
            # Whole-entry match: ',java,' never matches inside ',javascript,'.
            clauses.append(f"instr(',' || chunks.tags || ',', ',' || :tag_{idx} || ',') > 0")
            params[f"tag_{idx}"] = tag

        # bm25() is lower-is-better, so negate it for a higher-is-better score.
        sql = text(
            "SELECT chunks.chunk_id, chunks.doc_id, chunks.title, chunks.category, "
            "chunks.tags, chunks.position, chunks.text, "
            "-bm25(chunks) AS score, docs.date AS date "
            "FROM chunks LEFT JOIN docs ON docs.id = chunks.doc_id "
            f"WHERE {' AND '.join(clauses)} "
            "ORDER BY bm25(chunks) "
            "LIMIT :limit"
        )

        try:
            with self.engine.connect() as conn:
                rows = conn.execute(sql, params).mappings().all()
        except OperationalError as exc:
            _log.warning("Full-text query %r rejected by the store: %s", query, exc.orig)
            return []

        results: list[SearchResult] = []
        for row in rows:
            text_value = row["text"] or ""
            results.append(
                SearchResult(
                    chunk_id=row["chunk_id"],
                    doc_id=row["doc_id"],
                    title=row["title"],
                    category=row["category"],
                    tags=parse_tags(row["tags"]),
                    position=int(row["position"]),
                    score=float(row["score"] or 0.0),
                    snippet=text_value[:SNIPPET_LENGTH],
                    date=row["date"],
                )
            )
        return results

    def get_chunk(self, chunk_id: Optional[str]) -> Optional[ChunkResult]:
        """Return a single chunk by id, or None."""
        if not chunk_id:
            return None

        sql = text(
            "SELECT chunk_id, doc_id, title, category, tags, position, text "
            "FROM chunks WHERE chunk_id = :chunk_id LIMIT 1"
        )
        with self.engine.connect() as conn:
            row = conn.execute(sql, {"chunk_id": chunk_id}).mappings().first()

        if row is None:
            return None
        return _chunk_result(row)

    # ------------------------------------------------------------------
    # Relational store
    # ------------------------------------------------------------------

    def list_categories(self) -> List[str]:
        stmt = (
            select(docs_table.c.category)
            .distinct()
            .where(docs_table.c.category.is_not(None))
            .order_by(docs_table.c.category)
        )
        with self.engine.connect() as conn:
            return list(conn.execute(stmt).scalars())

    def list_tags(self) -> List[str]:
        stmt = select(tags_table.c.name).order_by(tags_table.c.name)
        with self.engine.connect() as conn:
            return list(conn.execute(stmt).scalars())

    def list_tag_counts(self) -> List[TagCount]:
        """Every known tag with the number of documents carrying it."""
        stmt = (
            select(tags_table.c.name, func.count(doc_tags_table.c.tag).label("count"))
            .select_from(tags_table.outerjoin(doc_tags_table, doc_tags_table.c.tag == tags_table.c.name))
            .group_by(tags_table.c.name)
            .order_by(tags_table.c.name)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
        return [TagCount(name=name, count=count or 0) for name, count in rows]

    def get_doc(self, doc_id: Optional[str]) -> Optional[DocRecord]:
        if not doc_id:
            return None
        with self.engine.connect() as conn:
            records = self._doc_records(conn, select(docs_table).where(docs_table.c.id == doc_id))
        return records[0] if records else None

    def list_docs(
        self,
        category: Optional[str] = None,
        tags: Optional[Sequence[Optional[str]]] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[DocRecord]:
        """
        List documents ordered by id.

        Documents must carry every requested tag according to the
        membership table.
        """
        if limit <= 0:
            return []

        stmt = select(docs_table)
        if category is not None:
            stmt = stmt.where(docs_table.c.category == category)

        filter_tags = normalize_filter_tags(tags)
        if filter_tags:
            with_all_tags = (
                select(doc_tags_table.c.doc_id)
                .where(doc_tags_table.c.tag.in_(filter_tags))
                .group_by(doc_tags_table.c.doc_id)
                .having(func.count() >= len(filter_tags))
            )
            stmt = stmt.where(docs_table.c.id.in_(with_all_tags))

        stmt = stmt.order_by(docs_table.c.id).limit(limit).offset(max(offset, 0))
        with self.engine.connect() as conn:
            return self._doc_records(conn, stmt)

    def related_docs(
        self,
        doc_id: Optional[str] = None,
        chunk_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[DocRecord]:
        """
        Documents in the source's category sharing at least one of its tags.

        doc_id takes priority over chunk_id. A missing or unknown source, or
        one without category or tags, relates to nothing.
        """
        if (not doc_id and not chunk_id) or limit <= 0:
            return []

        with self.engine.connect() as conn:
            source_id = doc_id or self._doc_id_for_chunk(conn, chunk_id)
            if source_id is None:
                return []

            source = conn.execute(
                select(docs_table.c.category).where(docs_table.c.id == source_id)
            ).first()
            if source is None or source.category is None:
                return []

            source_tags = list(
                conn.execute(
                    select(doc_tags_table.c.tag).where(doc_tags_table.c.doc_id == source_id)
                ).scalars()
            )
            if not source_tags:
                return []

            overlapping = (
                select(doc_tags_table.c.doc_id)
                .where(doc_tags_table.c.tag.in_(source_tags))
                .distinct()
            )
            stmt = (
                select(docs_table)
                .where(
                    and_(
                        docs_table.c.category == source.category,
                        docs_table.c.id.in_(overlapping),
                        docs_table.c.id != source_id,
                    )
                )
                .order_by(docs_table.c.id)
                .limit(limit)
            )
            return self._doc_records(conn, stmt)

    def stats(self) -> BuildStats:
        """Row counts of documents, tag vocabulary and chunks."""
        with self.engine.connect() as conn:
            return BuildStats(
                doc_count=conn.execute(select(func.count()).select_from(docs_table)).scalar_one(),
                tag_count=conn.execute(select(func.count()).select_from(tags_table)).scalar_one(),
                chunk_count=conn.execute(text("SELECT COUNT(*) FROM chunks")).scalar_one(),
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _doc_id_for_chunk(conn, chunk_id: Optional[str]) -> Optional[str]:
        if not chunk_id:
            return None
        return conn.execute(
            text("SELECT doc_id FROM chunks WHERE chunk_id = :chunk_id LIMIT 1"),
            {"chunk_id": chunk_id},
        ).scalar()

    @staticmethod
    def _doc_records(conn, stmt) -> List[DocRecord]:
        rows = conn.execute(stmt).mappings().all()
        if not rows:
            return []

        doc_ids = [row["id"] for row in rows]
        tags_by_doc: dict[str, list[str]] = {doc_id: [] for doc_id in doc_ids}
        tag_rows = conn.execute(
            select(doc_tags_table.c.doc_id, doc_tags_table.c.tag)
            .where(doc_tags_table.c.doc_id.in_(doc_ids))
            .order_by(doc_tags_table.c.doc_id, doc_tags_table.c.tag)
        )
        for row_doc_id, tag in tag_rows:
            tags_by_doc[row_doc_id].append(tag)

        return [
            DocRecord(
                id=row["id"],
                title=row["title"],
                category=row["category"],
                summary=row["summary"],
                date=row["date"],
                tags=tags_by_doc[row["id"]],
            )
            for row in rows
        ]


__all__ = [
    "KnowledgeBase",
    "SNIPPET_LENGTH",
    "build_match_expression",
    "normalize_filter_tags",
    "parse_tags",
]
