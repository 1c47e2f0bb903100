"""Tests for block annotation."""

from livesync.core.annotator import annotate
from livesync.core.model import BlockKind

KITCHEN_SINK = """\
# Title

Para line one
line two

> quoted

- item a
- item b

```python
code
```

| a | b |
| - | - |
| 1 | 2 |

---
"""


def by_start(document, line):
    return [b for b in document.blocks if b.source_line_start == line]


def test_every_block_kind_is_annotated():
    document = annotate(KITCHEN_SINK)
    kinds = {b.kind for b in document.blocks}
    assert kinds == set(BlockKind.ALL)


def test_ids_are_unique():
    document = annotate(KITCHEN_SINK)
    ids = [b.stable_id for b in document.blocks]
    assert len(ids) == len(set(ids))


def test_line_ranges_are_one_based():
    document = annotate(KITCHEN_SINK)

    heading = document.by_id("title")
    assert heading is not None
    assert heading.kind == BlockKind.HEADING
    assert (heading.source_line_start, heading.source_line_end) == (1, 1)
    assert heading.heading_text == "Title"
    assert heading.heading_level == 1

    paragraph = by_start(document, 3)[0]
    assert paragraph.kind == BlockKind.PARAGRAPH
    assert paragraph.source_line_end == 4

    fence = by_start(document, 11)[0]
    assert fence.kind == BlockKind.CODE_BLOCK
    assert fence.source_line_end == 13

    table = by_start(document, 15)[0]
    assert table.kind == BlockKind.TABLE

    rule = by_start(document, 19)[0]
    assert rule.kind == BlockKind.RULE


def test_nested_blocks_keep_document_order():
    """A container is emitted before the blocks it contains."""
    document = annotate(KITCHEN_SINK)
    at_six = by_start(document, 6)
    assert [b.kind for b in at_six] == [BlockKind.BLOCKQUOTE, BlockKind.PARAGRAPH]

    at_eight = by_start(document, 8)
    assert [b.kind for b in at_eight] == [BlockKind.LIST_ITEM, BlockKind.PARAGRAPH]


def test_duplicate_heading_renames_earlier_block():
    text = "# Intro\n\ntext\n\n\n\n\n\n\n# Intro\n"
    document = annotate(text)

    first, second = (b for b in document.blocks if b.kind == BlockKind.HEADING)
    assert first.source_line_start == 1
    assert second.source_line_start == 10
    assert first.stable_id == "intro-p"
    assert second.stable_id == "intro"


def test_three_way_collision_chains_suffix():
    text = "# A\n\n# A\n\n# A\n"
    document = annotate(text)
    ids = [b.stable_id for b in document.blocks]
    assert ids == ["a-p-p", "a-p", "a"]


def test_non_heading_blocks_use_start_line():
    document = annotate("one\n\ntwo\n")
    assert [b.stable_id for b in document.blocks] == ["1", "3"]


def test_heading_without_slug_uses_line():
    document = annotate("text\n\n# ???\n")
    heading = [b for b in document.blocks if b.kind == BlockKind.HEADING][0]
    assert heading.stable_id == "3"


def test_frontmatter_lines_are_counted():
    text = "---\ntitle: Hello\n---\n# Heading\n\nBody\n"
    document = annotate(text)

    assert document.meta == {"title": "Hello"}
    assert document.line_offset == 3
    assert document.by_id("heading").source_line_start == 4
    assert by_start(document, 6)[0].kind == BlockKind.PARAGRAPH


def test_html_carries_ids_and_source_lines():
    document = annotate("---\ntitle: Hello\n---\n# Heading\n\nBody\n")
    assert 'id="heading"' in document.html
    assert 'data-source-line="4"' in document.html
    assert 'id="6"' in document.html
    assert 'data-source-line="6"' in document.html
    # frontmatter is not rendered
    assert "title: Hello" not in document.html


def test_raw_html_is_escaped():
    document = annotate("<script>alert(1)</script>\n")
    assert "<script>" not in document.html


def test_generation_is_kept():
    assert annotate("text\n", generation=7).generation == 7


def test_empty_document():
    document = annotate("")
    assert document.blocks == ()
    assert len(document) == 0
    assert document.positioned() == []


def test_annotation_is_deterministic():
    first = annotate(KITCHEN_SINK)
    second = annotate(KITCHEN_SINK)
    assert first.blocks == second.blocks
    assert first.html == second.html
