"""
Shared test fixtures.

Provides: a front-matter markdown corpus on disk, stores built from it and
from an in-memory document library, and KnowledgeBase handles over both.
"""

from pathlib import Path
from textwrap import dedent

import pytest

from kb_core.indexing import build
from kb_core.models import Document
from kb_core.retrieval import KnowledgeBase


TURBO_DRIVE_DOC = dedent(
    """\
    ---
    title: "Turbo Drive: Custom Rendering"
    categories:
      - Turbo Drive
    tags: [rendering, events, caching]
    date: 2024-01-15
    description: Take over how Turbo Drive swaps in new pages.
    ready: true
    free: true
    ---
    Turbo Drive replaces the body of the page on every visit.

    ## Intercepting the render

    Listen for turbo:before-render and swap the snapshot yourself.

    ## Caching

    Snapshots are cached so back navigation is instant.
    """
)

STIMULUS_DOC = dedent(
    """\
    ---
    title: Stimulus Actions
    category: Stimulus
    tags:
      - actions
      - controllers
    date: 2024-02-01
    ready: true
    ---
    Actions connect DOM events to controller methods.

    ## Descriptors

    A descriptor names the event, the controller and the method.
    """
)

DRAFT_DOC = dedent(
    """\
    ---
    title: Unfinished Draft
    category: Stimulus
    tags: [drafts]
    ready: false
    ---
    Nobody should find this snapshot.
    """
)


def write_corpus(root: Path, files: dict) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for name, content in files.items():
        (root / name).write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def corpus_dir(tmp_path):
    """Two ready documents (one of them free) and a draft."""
    return write_corpus(
        tmp_path / "corpus",
        {
            "turbo-drive-custom-rendering.md": TURBO_DRIVE_DOC,
            "stimulus-actions.md": STIMULUS_DOC,
            "draft.md": DRAFT_DOC,
        },
    )


@pytest.fixture
def store_path(tmp_path, corpus_dir):
    path = tmp_path / "db" / "kb.sqlite"
    build(corpus_dir, path)
    return path


@pytest.fixture
def kb(store_path):
    knowledge_base = KnowledgeBase.from_path(store_path)
    yield knowledge_base
    knowledge_base.close()


@pytest.fixture
def library_docs():
    """Documents spread over categories and overlapping tags."""
    return [
        Document(
            id="turbo-frames",
            title="Turbo Frames",
            category="Turbo",
            tags=["navigation", "frames"],
            body=(
                "# Turbo Frames\n\n"
                "Frames scope navigation to a region of the page.\n\n"
                "## Lazy loading\n\n"
                "Lazy frames load their src when they become visible.\n"
            ),
            summary="Scoped navigation.",
            date="2024-03-01",
        ),
        Document(
            id="turbo-streams",
            title="Turbo Streams",
            category="Turbo",
            tags=["streams", "navigation"],
            body=(
                "Streams deliver page changes over websockets.\n\n"
                "## Actions\n\n"
                "Append, prepend and replace are stream actions.\n"
            ),
        ),
        Document(
            id="turbo-native",
            title="Turbo Native",
            category="Turbo",
            tags=["mobile"],
            body="Native apps wrap the web views.\n",
        ),
        Document(
            id="stimulus-values",
            title="Stimulus Values",
            category="Stimulus",
            tags=["navigation"],
            body="The values API reads typed data attributes.\n",
        ),
        Document(
            id="java-interop",
            title="Java Interop",
            category="Languages",
            tags=["java"],
            body="Calling the compiler from Java code.\n",
        ),
        Document(
            id="javascript-modules",
            title="JavaScript Modules",
            category="Languages",
            tags=["javascript"],
            body="Import maps hand modules to the compiler.\n",
        ),
        Document(
            id="untagged",
            title="Untagged Notes",
            body="Loose notes about the compiler.\n",
        ),
    ]


@pytest.fixture
def library_store(tmp_path, library_docs):
    path = tmp_path / "library.sqlite"
    build(library_docs, path)
    return path


@pytest.fixture
def library_kb(library_store):
    knowledge_base = KnowledgeBase.from_path(library_store)
    yield knowledge_base
    knowledge_base.close()
