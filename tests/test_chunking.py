"""
Tests for heading and size based chunking.

These tests ensure the splitter:
- Starts a new section at level-1 and level-2 headings only
- Keeps sections at or below MAX_SIZE whole
- Never emits a chunk longer than MAX_SIZE
- Numbers chunk ids and positions consistently
"""

from kb_core.chunking import (
    MAX_SIZE,
    TARGET_SIZE,
    chunk_doc,
    chunk_docs,
    find_sentence_boundary,
    find_whitespace_boundary,
    hard_cut,
    split_by_headings,
    split_by_size,
    split_into_paragraphs,
    split_oversized_paragraph,
)
from kb_core.models import Document


def make_doc(body, **kwargs):
    return Document(id="doc", title="Doc", body=body, **kwargs)


def long_paragraph(index, length=999):
    text = f"Paragraph {index} " + "word " * length
    return text[:length].rstrip() + "."


class TestSplitByHeadings:
    """Tests for heading detection."""

    def test_levels_one_and_two_start_sections(self):
        body = "Intro text\n\n# One\nfirst\n## Two\nsecond\n### Three\nstill two\n"
        sections = split_by_headings(body)

        assert [s.title for s in sections] == [None, "One", "Two"]
        assert sections[1].text.startswith("# One\n")
        assert "### Three" in sections[2].text

    def test_hash_without_space_is_not_a_heading(self):
        sections = split_by_headings("#hashtag\nbody\n")
        assert len(sections) == 1
        assert sections[0].title is None

    def test_blank_sections_are_dropped(self):
        sections = split_by_headings("\n\n## Only\ntext\n")
        assert [s.title for s in sections] == ["Only"]

    def test_empty_heading_has_no_title(self):
        sections = split_by_headings("## \ntext under an empty heading\n")
        assert len(sections) == 1
        assert sections[0].title is None


class TestBoundaryFinders:
    """Tests for the cut point strategies."""

    def test_sentence_boundary(self):
        assert find_sentence_boundary("Hello there. World again", 20) == 12

    def test_sentence_boundary_missing(self):
        assert find_sentence_boundary("no sentence end here", 10) is None

    def test_sentence_boundary_respects_limit(self):
        text = "One. Two. Three. Four."
        cut = find_sentence_boundary(text, 10)
        assert cut == 9
        assert text[:cut] == "One. Two."

    def test_whitespace_boundary(self):
        assert find_whitespace_boundary("abc def ghi", 6) == 3

    def test_whitespace_boundary_missing(self):
        assert find_whitespace_boundary("abcdefghij", 5) is None

    def test_hard_cut(self):
        assert hard_cut("x" * 100, 40) == 40


class TestSplitIntoParagraphs:
    def test_separators_stay_with_preceding_paragraph(self):
        assert split_into_paragraphs("a\n\nb\n\n\nc") == ["a\n\n", "b\n\n\n", "c"]

    def test_single_paragraph(self):
        assert split_into_paragraphs("just one line\n") == ["just one line\n"]


class TestSplitOversizedParagraph:
    def test_unbroken_text_is_hard_cut(self):
        fragments = split_oversized_paragraph("x" * 8000)
        assert [len(f) for f in fragments] == [MAX_SIZE, MAX_SIZE, 1000]

    def test_prefers_sentence_ends(self):
        paragraph = "".join(f"Sentence {i:04d} ends here. " for i in range(200))
        fragments = split_oversized_paragraph(paragraph)

        assert len(fragments) > 1
        assert all(len(f) <= MAX_SIZE for f in fragments)
        assert all(f.endswith(".") for f in fragments[:-1])

    def test_falls_back_to_whitespace(self):
        paragraph = "word " * 1000
        fragments = split_oversized_paragraph(paragraph)

        assert all(len(f) <= MAX_SIZE for f in fragments)
        assert all(f.strip().endswith("word") for f in fragments)


class TestChunkDoc:
    """Tests for whole-document chunking."""

    def test_no_headings_gives_single_chunk(self):
        chunks = chunk_doc(make_doc("Just a short body.\n"))

        assert len(chunks) == 1
        assert chunks[0].id == "doc#s0"
        assert chunks[0].title is None
        assert chunks[0].position == 0

    def test_empty_body_gives_no_chunks(self):
        assert chunk_doc(make_doc("")) == []
        assert chunk_doc(make_doc("  \n\n \n")) == []

    def test_chunks_inherit_category_and_tags(self):
        doc = make_doc("## A\ntext\n", category="Turbo", tags=["frames", "navigation"])
        chunk = chunk_doc(doc)[0]

        assert chunk.doc_id == "doc"
        assert chunk.category == "Turbo"
        assert chunk.tags == ["frames", "navigation"]
        assert chunk.title == "A"

    def test_section_of_exactly_max_size_is_kept_whole(self):
        heading = "# T\n"
        body = heading + "a" * (MAX_SIZE - len(heading))
        chunks = chunk_doc(make_doc(body))

        assert len(chunks) == 1
        assert chunks[0].text == body

    def test_oversized_section_is_split_along_paragraphs(self):
        paragraphs = [long_paragraph(i) for i in range(6)]
        body = "## Big\n\n" + "\n\n".join(paragraphs)
        chunks = chunk_doc(make_doc(body))

        assert len(chunks) > 1
        assert all(len(c.text) <= MAX_SIZE for c in chunks)
        assert [c.id for c in chunks] == ["doc#s0"] + [f"doc#s0-{i}" for i in range(1, len(chunks))]
        assert all(c.title == "Big" for c in chunks)
        for paragraph in paragraphs:
            assert any(paragraph in c.text for c in chunks)

    def test_unbroken_section_never_exceeds_max_size(self):
        chunks = chunk_doc(make_doc("z" * (MAX_SIZE * 3 + 17)))

        assert len(chunks) == 4
        assert all(len(c.text) <= MAX_SIZE for c in chunks)
        assert "".join(c.text for c in chunks) == "z" * (MAX_SIZE * 3 + 17)

    def test_positions_are_contiguous_across_sections(self):
        paragraphs = [long_paragraph(i) for i in range(6)]
        body = "Intro\n\n## Big\n\n" + "\n\n".join(paragraphs) + "\n\n## Tail\n\nEnd.\n"
        chunks = chunk_doc(make_doc(body))

        assert [c.position for c in chunks] == list(range(len(chunks)))
        assert chunks[0].id == "doc#s0"
        assert chunks[1].id == "doc#s1"
        assert chunks[-1].id == "doc#s2"
        assert chunks[-1].title == "Tail"

    def test_chunk_docs_keeps_document_order(self):
        first = Document(id="first", title="First", body="one\n")
        second = Document(id="second", title="Second", body="two\n\n## More\nthree\n")
        chunks = chunk_docs([first, second])

        assert [c.id for c in chunks] == ["first#s0", "second#s0", "second#s1"]


class TestLineSeparators:
    def test_only_newlines_end_lines(self):
        sections = split_by_headings("intro text\u2028## Not a heading line\nmore\n")

        assert len(sections) == 1
        assert sections[0].title is None

    def test_form_feed_does_not_start_heading(self):
        sections = split_by_headings("page one\x0c# Not a heading\n\n# Real\nbody\n")
        assert [s.title for s in sections] == [None, "Real"]

    def test_last_line_without_newline(self):
        sections = split_by_headings("text\n## Tail")
        assert [s.text for s in sections] == ["text\n", "## Tail"]


def sized_paragraph(char, length):
    """A paragraph of exactly `length` characters including its blank-line separator."""
    return char * (length - 2) + "\n\n"


class TestSplitBySize:
    """Tests for paragraph accumulation within one oversized section."""

    def test_short_text_is_returned_unchanged(self):
        text = "a" * 100 + "\n\n"
        assert split_by_size(text) == [text]

    def test_accumulates_below_target(self):
        text = sized_paragraph("a", 1200) + sized_paragraph("b", 1200) + sized_paragraph("c", 1200) + "d" * 50
        parts = split_by_size(text)

        assert parts == [
            "a" * 1198 + "\n\n" + "b" * 1198,
            "c" * 1198 + "\n\n" + "d" * 50,
        ]

    def test_cuts_before_large_paragraph_once_target_reached(self):
        text = sized_paragraph("a", 2100) + sized_paragraph("b", 1600) + "c" * 100
        parts = split_by_size(text)

        assert parts == ["a" * 2098, "b" * 1598 + "\n\n" + "c" * 100]
        assert len(parts[0]) >= TARGET_SIZE - 2

    def test_small_paragraph_joins_part_past_target(self):
        text = sized_paragraph("a", 2100) + sized_paragraph("b", 1000) + sized_paragraph("c", 1000)
        parts = split_by_size(text)

        assert parts == ["a" * 2098 + "\n\n" + "b" * 998, "c" * 998]

    def test_oversized_paragraph_flushes_and_seeds_next_part(self):
        text = sized_paragraph("a", 500) + "x" * 4000 + "\n\n" + "tail"
        parts = split_by_size(text)

        assert parts == [
            "a" * 498,
            "x" * MAX_SIZE,
            "x" * 500 + "\n\ntail",
        ]
