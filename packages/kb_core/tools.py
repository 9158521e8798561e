"""
Tool definitions over the knowledge base.

Each tool has a pydantic input schema (also used to publish its JSON
Schema) and is dispatched through `call_tool`, which returns plain
JSON-compatible data. The CLI and the HTTP API both go through here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from .exceptions import InvalidArgumentError
from .retrieval import KnowledgeBase


# =============================================================================
# Input Schemas
# =============================================================================


class SearchInput(BaseModel):
    """Input for ranked full-text search over chunks."""

    query: str = Field(..., description="Free-text search query")
    category: Optional[str] = Field(default=None, description="Exact category to restrict to")
    tags: List[str] = Field(
        default_factory=list,
        description="Tags every returned chunk must carry",
    )
    limit: int = Field(default=8, ge=0, description="Maximum number of hits")


class GetChunkInput(BaseModel):
    """Input for fetching a single chunk."""

    chunk_id: str = Field(..., description="Chunk id, e.g. 'turbo-frames#s2-1'")


class ListTagsInput(BaseModel):
    """Input for listing the tag vocabulary."""

    counts: bool = Field(default=False, description="Include per-tag document counts")


class ListDocsInput(BaseModel):
    """Input for paging through documents."""

    category: Optional[str] = Field(default=None)
    tags: List[str] = Field(default_factory=list, description="Tags every document must carry")
    limit: int = Field(default=20, ge=0)
    offset: int = Field(default=0, ge=0)


class RelatedDocsInput(BaseModel):
    """Input for finding related documents; doc_id wins over chunk_id."""

    doc_id: Optional[str] = Field(default=None)
    chunk_id: Optional[str] = Field(default=None)
    limit: int = Field(default=5, ge=0)


class EmptyInput(BaseModel):
    pass


# =============================================================================
# Tool implementations
# =============================================================================


def _search(kb: KnowledgeBase, inp: SearchInput) -> Any:
    hits = kb.search(inp.query, category=inp.category, tags=inp.tags, limit=inp.limit)
    return [hit.model_dump() for hit in hits]


def _get_chunk(kb: KnowledgeBase, inp: GetChunkInput) -> Any:
    chunk = kb.get_chunk(inp.chunk_id)
    return chunk.model_dump() if chunk is not None else None


def _list_categories(kb: KnowledgeBase, inp: EmptyInput) -> Any:
    return kb.list_categories()


def _list_tags(kb: KnowledgeBase, inp: ListTagsInput) -> Any:
    if inp.counts:
        return [tag.model_dump() for tag in kb.list_tag_counts()]
    return kb.list_tags()


def _list_docs(kb: KnowledgeBase, inp: ListDocsInput) -> Any:
    docs = kb.list_docs(category=inp.category, tags=inp.tags, limit=inp.limit, offset=inp.offset)
    return [doc.model_dump() for doc in docs]


def _related_docs(kb: KnowledgeBase, inp: RelatedDocsInput) -> Any:
    if not inp.doc_id and not inp.chunk_id:
        raise InvalidArgumentError("Either doc_id or chunk_id must be provided")
    docs = kb.related_docs(doc_id=inp.doc_id, chunk_id=inp.chunk_id, limit=inp.limit)
    return [doc.model_dump() for doc in docs]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[[KnowledgeBase, Any], Any]

    def input_schema(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema()


TOOLS: Dict[str, ToolSpec] = {
    entry.name: entry
    for entry in (
        ToolSpec(
            name="search",
            description="Full-text search over document chunks, filterable by category and tags.",
            input_model=SearchInput,
            handler=_search,
        ),
        ToolSpec(
            name="get_chunk",
            description="Fetch the full text of a chunk returned by search.",
            input_model=GetChunkInput,
            handler=_get_chunk,
        ),
        ToolSpec(
            name="list_categories",
            description="List every document category.",
            input_model=EmptyInput,
            handler=_list_categories,
        ),
        ToolSpec(
            name="list_tags",
            description="List the tag vocabulary, optionally with document counts.",
            input_model=ListTagsInput,
            handler=_list_tags,
        ),
        ToolSpec(
            name="list_docs",
            description="Page through documents filtered by category and tags.",
            input_model=ListDocsInput,
            handler=_list_docs,
        ),
        ToolSpec(
            name="related_docs",
            description="Documents in the same category sharing a tag with a document or chunk.",
            input_model=RelatedDocsInput,
            handler=_related_docs,
        ),
    )
}


def call_tool(kb: KnowledgeBase, name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
    """Validate `arguments` against the tool's schema and run it."""
    entry = TOOLS.get(name)
    if entry is None:
        raise InvalidArgumentError(f"Unknown tool: {name}")

    try:
        inp = entry.input_model(**(arguments or {}))
    except ValidationError as exc:
        raise InvalidArgumentError(f"Invalid arguments for {name}: {exc}") from exc

    return entry.handler(kb, inp)


__all__ = [
    "GetChunkInput",
    "ListDocsInput",
    "ListTagsInput",
    "RelatedDocsInput",
    "SearchInput",
    "TOOLS",
    "ToolSpec",
    "call_tool",
]
