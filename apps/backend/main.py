from __future__ import annotations

import logging
from typing import Any, Optional, Union

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from kb_core.exceptions import BuildError, InvalidArgumentError, StoreNotFoundError
from kb_core.indexing import build as build_store
from kb_core.models import BuildStats, ChunkResult, DocRecord, SearchResult, TagCount
from kb_core.retrieval import KnowledgeBase
from kb_core.tools import ListDocsInput, RelatedDocsInput, SearchInput, call_tool
from kb_pipeline.config import get_settings

_log = logging.getLogger(__name__)

app = FastAPI(title="Knowledge Base Search API")

# CORS: allow public frontend and local dev without credentials
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

_kb: Optional[KnowledgeBase] = None


def get_kb() -> KnowledgeBase:
    """Open the configured store once and share it between requests."""
    global _kb
    if _kb is None:
        try:
            _kb = KnowledgeBase.from_path(get_settings().db_path)
        except StoreNotFoundError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
    return _kb


def _reset_kb() -> None:
    global _kb
    if _kb is not None:
        _kb.close()
        _kb = None


def _call(kb: KnowledgeBase, name: str, arguments: dict[str, Any]) -> Any:
    try:
        return call_tool(kb, name, arguments)
    except InvalidArgumentError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/search", response_model=list[SearchResult])
def search(req: SearchInput, kb: KnowledgeBase = Depends(get_kb)) -> Any:
    return _call(kb, "search", req.model_dump())


@app.get("/chunks/{chunk_id}", response_model=ChunkResult)
def get_chunk(chunk_id: str, kb: KnowledgeBase = Depends(get_kb)) -> Any:
    chunk = _call(kb, "get_chunk", {"chunk_id": chunk_id})
    if chunk is None:
        raise HTTPException(status_code=404, detail=f"Unknown chunk: {chunk_id}")
    return chunk


@app.get("/categories", response_model=list[str])
def list_categories(kb: KnowledgeBase = Depends(get_kb)) -> Any:
    return _call(kb, "list_categories", {})


@app.get("/tags", response_model=Union[list[TagCount], list[str]])
def list_tags(counts: bool = False, kb: KnowledgeBase = Depends(get_kb)) -> Any:
    return _call(kb, "list_tags", {"counts": counts})


@app.post("/documents", response_model=list[DocRecord])
def list_docs(req: ListDocsInput, kb: KnowledgeBase = Depends(get_kb)) -> Any:
    return _call(kb, "list_docs", req.model_dump())


@app.post("/related", response_model=list[DocRecord])
def related_docs(req: RelatedDocsInput, kb: KnowledgeBase = Depends(get_kb)) -> Any:
    return _call(kb, "related_docs", req.model_dump())


@app.post("/admin/rebuild", response_model=BuildStats)
def admin_rebuild() -> BuildStats:
    """
    Rebuild the store from the configured corpus directory.

    Intended for manual/admin use. The shared store handle is dropped so the
    next request opens the freshly built file.
    """
    settings = get_settings()
    _log.info("Starting admin rebuild from %s into %s", settings.corpus_dir, settings.db_path)
    _reset_kb()
    try:
        stats = build_store(settings.corpus_dir, settings.db_path)
    except BuildError as exc:
        _log.exception("Admin rebuild failed")
        raise HTTPException(status_code=500, detail=f"Rebuild failed: {exc}") from exc
    finally:
        _reset_kb()

    return stats


__all__ = ["app", "get_kb"]
