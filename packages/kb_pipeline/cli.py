from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import click

from kb_core.exceptions import BuildError, InvalidArgumentError, StoreNotFoundError
from kb_core.indexing import build as build_store
from kb_core.retrieval import KnowledgeBase
from kb_core.server import serve as serve_mcp
from kb_core.tools import call_tool

from .config import get_settings

_log = logging.getLogger(__name__)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _run_tool(db_path: Optional[Path], name: str, arguments: Dict[str, Any]) -> None:
    db_path = db_path or get_settings().db_path
    try:
        kb = KnowledgeBase.from_path(db_path)
    except StoreNotFoundError as exc:
        raise click.ClickException(f"{exc}. Run `kb build` first.") from exc

    try:
        _echo_json(call_tool(kb, name, arguments))
    except InvalidArgumentError as exc:
        raise click.UsageError(str(exc)) from exc
    finally:
        kb.close()


db_option = click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Store file (defaults to the configured db_path).",
)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """Build and query the markdown knowledge base."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@main.command("build")
@click.option(
    "--corpus",
    "corpus_dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Corpus directory (defaults to the configured corpus_dir).",
)
@db_option
@click.option("--free-only", is_flag=True, help="Index only documents flagged `free: true`.")
def build(corpus_dir: Optional[Path], db_path: Optional[Path], free_only: bool) -> None:
    """
    Rebuild the store from the corpus.

    The previous store file is replaced; all rows are written in a single
    transaction.
    """
    settings = get_settings()
    corpus_dir = corpus_dir or settings.corpus_dir
    db_path = db_path or settings.db_path

    _log.info("Using corpus_dir=%s", corpus_dir)
    _log.info("Output store=%s", db_path)

    try:
        stats = build_store(corpus_dir, db_path, free_only=free_only)
    except BuildError as exc:
        raise click.ClickException(str(exc)) from exc

    _echo_json(stats.model_dump())


@main.command("search")
@click.argument("query")
@click.option("--category", default=None, help="Exact category to restrict to.")
@click.option("--tag", "tags", multiple=True, help="Required tag; repeat for several.")
@click.option("--limit", type=int, default=None, help="Maximum number of hits.")
@db_option
def search(query: str, category: Optional[str], tags: tuple[str, ...], limit: Optional[int], db_path: Optional[Path]) -> None:
    """Full-text search over chunks."""
    if limit is None:
        limit = get_settings().search_limit
    _run_tool(db_path, "search", {"query": query, "category": category, "tags": list(tags), "limit": limit})


@main.command("chunk")
@click.argument("chunk_id")
@db_option
def chunk(chunk_id: str, db_path: Optional[Path]) -> None:
    """Print a single chunk (null if unknown)."""
    _run_tool(db_path, "get_chunk", {"chunk_id": chunk_id})


@main.command("categories")
@db_option
def categories(db_path: Optional[Path]) -> None:
    """List document categories."""
    _run_tool(db_path, "list_categories", {})


@main.command("tags")
@click.option("--counts", is_flag=True, help="Include per-tag document counts.")
@db_option
def tags(counts: bool, db_path: Optional[Path]) -> None:
    """List the tag vocabulary."""
    _run_tool(db_path, "list_tags", {"counts": counts})


@main.command("docs")
@click.option("--category", default=None)
@click.option("--tag", "tags", multiple=True, help="Required tag; repeat for several.")
@click.option("--limit", type=int, default=None)
@click.option("--offset", type=int, default=0, show_default=True)
@db_option
def docs(
    category: Optional[str],
    tags: tuple[str, ...],
    limit: Optional[int],
    offset: int,
    db_path: Optional[Path],
) -> None:
    """List documents ordered by id."""
    if limit is None:
        limit = get_settings().list_limit
    _run_tool(
        db_path,
        "list_docs",
        {"category": category, "tags": list(tags), "limit": limit, "offset": offset},
    )


@main.command("related")
@click.option("--doc-id", default=None)
@click.option("--chunk-id", default=None)
@click.option("--limit", type=int, default=None)
@db_option
def related(doc_id: Optional[str], chunk_id: Optional[str], limit: Optional[int], db_path: Optional[Path]) -> None:
    """Documents related to a document or to the document owning a chunk."""
    if limit is None:
        limit = get_settings().related_limit
    _run_tool(db_path, "related_docs", {"doc_id": doc_id, "chunk_id": chunk_id, "limit": limit})


@main.command("serve")
@db_option
def serve(db_path: Optional[Path]) -> None:
    """Serve the query tools as an MCP server over stdio."""
    db_path = db_path or get_settings().db_path
    try:
        asyncio.run(serve_mcp(db_path))
    except StoreNotFoundError as exc:
        raise click.ClickException(f"{exc}. Run `kb build` first.") from exc


if __name__ == "__main__":
    main()
