from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

from .models import Chunk, Document

_log = logging.getLogger(__name__)

HEADING_PATTERN = re.compile(r"^##?\s+")
PARAGRAPH_SEPARATOR = re.compile(r"(\n{2,})")
SENTENCE_END_PATTERN = re.compile(r"[.!?]\s")
WHITESPACE_PATTERN = re.compile(r"\s+")
# Lines end at "\n" only, never at U+2028, form feeds or other separators.
LINE_PATTERN = re.compile(r"[^\n]*\n|[^\n]+")

# Character-based size limits. A section at or below MAX_SIZE is kept whole;
# larger sections are cut into parts aiming for TARGET_SIZE.
TARGET_SIZE = 2000
MAX_SIZE = 3500


@dataclass(frozen=True)
class Section:
    """A heading-delimited region of a document body."""

    title: Optional[str]
    text: str


BoundaryFinder = Callable[[str, int], Optional[int]]


def find_sentence_boundary(text: str, limit: int) -> Optional[int]:
    """Return the end offset of the last sentence that closes within `limit` characters."""
    cut: Optional[int] = None
    for match in SENTENCE_END_PATTERN.finditer(text, 0, limit + 1):
        cut = match.start() + 1
    return cut


def find_whitespace_boundary(text: str, limit: int) -> Optional[int]:
    """Return the offset of the last whitespace run starting within `limit` characters."""
    cut: Optional[int] = None
    for match in WHITESPACE_PATTERN.finditer(text, 1, limit + 1):
        cut = match.start()
    return cut


def hard_cut(text: str, limit: int) -> Optional[int]:
    return limit


# Tried in order; the first finder returning an offset wins.
BOUNDARY_FINDERS: Sequence[BoundaryFinder] = (
    find_sentence_boundary,
    find_whitespace_boundary,
    hard_cut,
)


def split_by_headings(body: str) -> List[Section]:
    """
    Split a markdown body into sections at level-1 and level-2 headings.

    The heading line stays part of its section text. Text before the first
    heading becomes an untitled section; blank sections are dropped.
    """
    sections: list[Section] = []
    current_title: Optional[str] = None
    current_lines: list[str] = []

    for line in LINE_PATTERN.findall(body):
        if HEADING_PATTERN.match(line):
            text = "".join(current_lines)
            if text.strip():
                sections.append(Section(title=current_title, text=text))
            current_title = HEADING_PATTERN.sub("", line, count=1).strip() or None
            current_lines = [line]
        else:
            current_lines.append(line)

    text = "".join(current_lines)
    if text.strip():
        sections.append(Section(title=current_title, text=text))

    return sections


def split_into_paragraphs(text: str) -> List[str]:
    """Split on blank-line runs, keeping each separator attached to the paragraph before it."""
    pieces = PARAGRAPH_SEPARATOR.split(text)
    paragraphs: list[str] = []
    for idx in range(0, len(pieces), 2):
        content = pieces[idx]
        separator = pieces[idx + 1] if idx + 1 < len(pieces) else ""
        if content or separator:
            paragraphs.append(content + separator)
    return paragraphs


def split_oversized_paragraph(
    paragraph: str,
    finders: Sequence[BoundaryFinder] = BOUNDARY_FINDERS,
) -> List[str]:
    """
    Cut a paragraph longer than MAX_SIZE into fragments of at most MAX_SIZE characters.

    Every fragment except the last is trimmed. The last one keeps its trailing
    separator so it can seed the next part.
    """
    fragments: list[str] = []
    remaining = paragraph

    while len(remaining) > MAX_SIZE:
        cut = next(
            offset
            for offset in (finder(remaining, MAX_SIZE) for finder in finders)
            if offset
        )
        fragment = remaining[:cut].strip()
        if fragment:
            fragments.append(fragment)
        remaining = remaining[cut:].lstrip()

    if remaining.strip():
        fragments.append(remaining)
    return fragments


def _should_split(current: str, paragraph: str) -> bool:
    if not current:
        return False
    if len(current) + len(paragraph) > MAX_SIZE:
        return True
    return len(current) >= TARGET_SIZE and len(paragraph) > MAX_SIZE - TARGET_SIZE


def split_by_size(text: str) -> List[str]:
    """Split a section's text into parts no longer than MAX_SIZE, along paragraph boundaries."""
    if len(text) <= MAX_SIZE:
        return [text]

    parts: list[str] = []
    current = ""

    def flush() -> None:
        if current.strip():
            parts.append(current.strip())

    for paragraph in split_into_paragraphs(text):
        if len(paragraph) > MAX_SIZE:
            flush()
            fragments = split_oversized_paragraph(paragraph)
            parts.extend(fragments[:-1])
            current = fragments[-1] if fragments else ""
        elif _should_split(current, paragraph):
            flush()
            current = paragraph
        else:
            current += paragraph

    flush()
    return parts


def _chunk_id(doc_id: str, section_index: int, part_index: int) -> str:
    if part_index == 0:
        return f"{doc_id}#s{section_index}"
    return f"{doc_id}#s{section_index}-{part_index}"


def chunk_doc(doc: Document) -> List[Chunk]:
    """Split a single document into ordered chunks."""
    chunks: list[Chunk] = []
    position = 0

    for section_index, section in enumerate(split_by_headings(doc.body)):
        for part_index, part_text in enumerate(split_by_size(section.text)):
            chunks.append(
                Chunk(
                    id=_chunk_id(doc.id, section_index, part_index),
                    doc_id=doc.id,
                    title=section.title,
                    category=doc.category,
                    tags=list(doc.tags),
                    position=position,
                    text=part_text,
                )
            )
            position += 1

    return chunks


def chunk_docs(docs: Iterable[Document]) -> List[Chunk]:
    """Split every document, preserving document order."""
    chunks: list[Chunk] = []
    for doc in docs:
        doc_chunks = chunk_doc(doc)
        _log.debug("Chunked %s into %d chunks", doc.id, len(doc_chunks))
        chunks.extend(doc_chunks)
    return chunks


__all__ = [
    "BOUNDARY_FINDERS",
    "MAX_SIZE",
    "TARGET_SIZE",
    "Section",
    "chunk_doc",
    "chunk_docs",
    "find_sentence_boundary",
    "find_whitespace_boundary",
    "hard_cut",
    "split_by_headings",
    "split_by_size",
    "split_into_paragraphs",
    "split_oversized_paragraph",
]
