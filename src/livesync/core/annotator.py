"""Block annotation: map every renderable block back to its source lines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..adapters.markdown_parser import MarkdownItParser, block_kind, heading_level, heading_text
from ..adapters.yaml_codec import YamlFrontmatter
from .model import Block, BlockKind, RenderedDocument
from .ports import FrontmatterCodec, ParserStrategy
from .utils import slugify

COLLISION_SUFFIX = "-p"


@dataclass
class _Draft:
    kind: str
    start: int | None
    end: int | None
    token: Any
    heading_text: str | None = None
    heading_level: int | None = None
    stable_id: str = ""

    def freeze(self) -> Block:
        return Block(
            stable_id=self.stable_id,
            kind=self.kind,
            source_line_start=self.start,
            source_line_end=self.end,
            heading_text=self.heading_text,
            heading_level=self.heading_level,
        )


class _IdClaims:
    """
    Id -> block map for a single annotation pass.

    When an id is claimed twice the earlier holder moves to ``id + "-p"``
    and the newcomer keeps the bare id. A displaced holder claims its new
    name under the same rule, so a third collision pushes the oldest block
    on to ``id-p-p``.
    """

    def __init__(self) -> None:
        self._holders: dict[str, _Draft] = {}

    def claim(self, stable_id: str, draft: _Draft) -> None:
        while True:
            previous = self._holders.get(stable_id)
            self._holders[stable_id] = draft
            draft.stable_id = stable_id
            if previous is None:
                return
            draft, stable_id = previous, stable_id + COLLISION_SUFFIX


def natural_id(draft: _Draft, ordinal: int) -> str:
    """Deterministic id before collision resolution."""
    if draft.kind == BlockKind.HEADING and draft.heading_text:
        slug = slugify(draft.heading_text)
        if slug:
            return slug
    if draft.start is not None:
        return str(draft.start)
    return f"block-{ordinal}"


_default_parser: MarkdownItParser | None = None


def _parser() -> MarkdownItParser:
    global _default_parser
    if _default_parser is None:
        _default_parser = MarkdownItParser()
    return _default_parser


def annotate(
    source_text: str,
    generation: int = 0,
    parser: ParserStrategy | None = None,
    frontmatter: FrontmatterCodec | None = None,
) -> RenderedDocument:
    """
    Annotate ``source_text`` and render it.

    Every block-level node with known line bounds gets a stable id and a
    1-based line range relative to the full source (frontmatter included).
    The HTML carries the same ids plus ``data-source-line`` attributes.
    """
    parser = parser or _parser()
    frontmatter = frontmatter or YamlFrontmatter()

    meta, body, offset = frontmatter.decode(source_text)
    tokens = parser.parse(body)

    claims = _IdClaims()
    drafts: list[_Draft] = []
    for idx, token in enumerate(tokens):
        kind = block_kind(token)
        if kind is None:
            continue

        start = end = None
        if token.map and len(token.map) >= 2:
            start = token.map[0] + 1 + offset
            end = max(token.map[1] + offset, start)

        draft = _Draft(kind=kind, start=start, end=end, token=token)
        if kind == BlockKind.HEADING:
            draft.heading_text = heading_text(tokens, idx)
            draft.heading_level = heading_level(token)

        claims.claim(natural_id(draft, len(drafts)), draft)
        drafts.append(draft)

    for draft in drafts:
        draft.token.attrSet("id", draft.stable_id)
        if draft.start is not None:
            draft.token.attrSet("data-source-line", str(draft.start))

    return RenderedDocument(
        blocks=tuple(d.freeze() for d in drafts),
        html=parser.render(tokens),
        generation=generation,
        meta=meta,
        line_offset=offset,
    )
