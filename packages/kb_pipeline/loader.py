from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional

import frontmatter

from kb_core.models import Document

_log = logging.getLogger(__name__)


def _iter_markdown(root: Path) -> Iterable[Path]:
    for md_path in sorted(root.glob("*.md")):
        if md_path.is_file():
            yield md_path


def _first_category(metadata: dict[str, Any]) -> Optional[str]:
    """Prefer the first entry of 'categories', fall back to 'category'."""
    categories = metadata.get("categories")
    if isinstance(categories, (list, tuple)):
        categories = categories[0] if categories else None
    value = categories or metadata.get("category")
    if value is None:
        return None
    return str(value).strip() or None


def _first_paragraph(body: str) -> Optional[str]:
    paragraph = body.strip().split("\n\n", 1)[0].strip()
    return paragraph or None


def doc_from_file(md_path: Path) -> Optional[Document]:
    """
    Build a Document from a markdown file with front matter.

    Returns None for files not marked `ready: true`.
    """
    post = frontmatter.load(md_path)
    metadata = post.metadata

    if metadata.get("ready") is not True:
        return None

    title = str(metadata.get("title") or md_path.stem)
    body = post.content

    return Document(
        title=title,
        category=_first_category(metadata),
        tags=metadata.get("tags"),
        body=body,
        summary=metadata.get("description") or _first_paragraph(body),
        date=metadata.get("date"),
        free=metadata.get("free") is True,
    )


def load_docs(corpus_dir: Path, free_only: bool = False) -> List[Document]:
    """
    Load all ready documents from a corpus directory.

    With free_only, documents not flagged `free: true` are dropped as well.
    """
    corpus_dir = Path(corpus_dir)
    if not corpus_dir.is_dir():
        _log.warning("Corpus directory does not exist: %s", corpus_dir)
        return []

    docs: list[Document] = []
    for md_path in _iter_markdown(corpus_dir):
        try:
            doc = doc_from_file(md_path)
        except Exception as exc:
            _log.error("Failed to load %s: %s", md_path, exc, exc_info=True)
            continue

        if doc is None:
            _log.debug("Skipping %s (not ready)", md_path.name)
            continue
        if free_only and not doc.free:
            _log.debug("Skipping %s (not free)", md_path.name)
            continue
        docs.append(doc)

    _log.info("Loaded %d documents from %s", len(docs), corpus_dir)
    return docs


__all__ = ["doc_from_file", "load_docs"]
