from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_SLUG_SEPARATOR = re.compile(r"[^a-z0-9]+")


def slugify(title: Optional[str]) -> Optional[str]:
    """
    Derive a stable document id from a title.

    'Turbo Drive: Custom Rendering' -> 'turbo-drive-custom-rendering'
    """
    if not title:
        return None
    slug = _SLUG_SEPARATOR.sub("-", str(title).lower()).strip("-")
    return slug or None


def normalize_tags(raw: Any) -> List[str]:
    """Coerce a tag value (None, scalar or sequence) to an ordered, deduplicated list."""
    if raw is None:
        return []
    if isinstance(raw, (str, int, float)):
        raw = [raw]

    seen: set[str] = set()
    tags: list[str] = []
    for value in raw:
        if value is None:
            continue
        tag = str(value).strip()
        if tag and tag not in seen:
            seen.add(tag)
            tags.append(tag)
    return tags


def format_date(value: Any) -> Optional[str]:
    """Return an ISO-8601 string for date-like values, pass other values through as text."""
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    text = str(value).strip()
    return text or None


class Document(BaseModel):
    """A source document as produced by the loader."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable identifier, derived from the title when not supplied.")
    title: str = Field(..., description="Document title.")
    category: Optional[str] = Field(default=None, description="Single category, if any.")
    tags: List[str] = Field(default_factory=list, description="Ordered, deduplicated tag names.")
    body: str = Field(default="", description="Raw markdown body without front matter.")
    summary: Optional[str] = Field(default=None, description="Short description of the document.")
    date: Optional[str] = Field(default=None, description="Publication date as ISO-8601 text.")
    free: bool = Field(default=False, description="True if the document belongs to the free tier.")

    @model_validator(mode="before")
    @classmethod
    def _derive_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("id"):
            data = dict(data)
            data["id"] = slugify(data.get("title"))
        return data

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> List[str]:
        return normalize_tags(value)

    @field_validator("date", mode="before")
    @classmethod
    def _normalize_date(cls, value: Any) -> Optional[str]:
        return format_date(value)


class Chunk(BaseModel):
    """A bounded passage of a document body, the unit of search."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="'<doc_id>#s<section>' or '<doc_id>#s<section>-<part>'.")
    doc_id: str = Field(..., description="Id of the parent document.")
    title: Optional[str] = Field(default=None, description="Enclosing heading, if any.")
    category: Optional[str] = Field(default=None, description="Parent category at build time.")
    tags: List[str] = Field(default_factory=list, description="Parent tags at build time.")
    position: int = Field(..., ge=0, description="Zero-based order of the chunk within its document.")
    text: str = Field(..., description="Passage text.")


class SearchResult(BaseModel):
    """A ranked full-text hit."""

    chunk_id: str
    doc_id: str
    title: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    position: int
    score: float = Field(..., description="Relevance; higher is more relevant, range unspecified.")
    snippet: str
    date: Optional[str] = None


class ChunkResult(BaseModel):
    """A single chunk resolved from the passage store."""

    chunk_id: str
    doc_id: str
    title: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    position: int
    text: str


class DocRecord(BaseModel):
    """Document listing entry."""

    id: str
    title: Optional[str] = None
    category: Optional[str] = None
    summary: Optional[str] = None
    date: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class TagCount(BaseModel):
    name: str
    count: int = 0


class BuildStats(BaseModel):
    """Row counts of a built store."""

    doc_count: int = 0
    tag_count: int = 0
    chunk_count: int = 0


__all__ = [
    "BuildStats",
    "Chunk",
    "ChunkResult",
    "DocRecord",
    "Document",
    "SearchResult",
    "TagCount",
    "format_date",
    "normalize_tags",
    "slugify",
]
