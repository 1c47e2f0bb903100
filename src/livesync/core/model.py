from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

BlockId = str


class BlockKind:
    PARAGRAPH = "paragraph"
    HEADING = "heading"
    BLOCKQUOTE = "blockquote"
    LIST_ITEM = "list_item"
    CODE_BLOCK = "code_block"
    TABLE = "table"
    RULE = "rule"

    ALL = (PARAGRAPH, HEADING, BLOCKQUOTE, LIST_ITEM, CODE_BLOCK, TABLE, RULE)


class Origin:
    CURSOR = "cursor"
    SCROLL = "scroll"


@dataclass(frozen=True)
class Block:
    stable_id: BlockId
    kind: str  # one of BlockKind.ALL
    source_line_start: int | None  # 1-based; None = not reachable by line lookup
    source_line_end: int | None  # 1-based, inclusive
    heading_text: str | None = None
    heading_level: int | None = None

    @property
    def positioned(self) -> bool:
        return self.source_line_start is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.stable_id,
            "kind": self.kind,
            "lines": {"start": self.source_line_start, "end": self.source_line_end},
        }
        if self.heading_text is not None:
            data["heading"] = {"text": self.heading_text, "level": self.heading_level}
        return data


@dataclass(frozen=True)
class RenderedDocument:
    """One full render pass. Never patched; a source change builds a new one."""

    blocks: tuple[Block, ...] = ()
    html: str = ""
    generation: int = 0
    meta: dict[str, Any] = field(default_factory=dict, compare=False)
    line_offset: int = 0

    def __iter__(self) -> Iterator[Block]:
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)

    def by_id(self, stable_id: BlockId) -> Block | None:
        for block in self.blocks:
            if block.stable_id == stable_id:
                return block
        return None

    def positioned(self) -> list[Block]:
        return [b for b in self.blocks if b.positioned]

    def closest_preceding(self, line: int) -> Block | None:
        """
        Block with the greatest start line <= ``line``.

        On equal start lines the block emitted first (the outermost one) wins.
        Returns None when every positioned block starts after ``line``.
        """
        best: Block | None = None
        for block in self.positioned():
            start = block.source_line_start
            if start > line:
                continue
            if best is None or start > best.source_line_start:
                best = block
        return best


@dataclass(frozen=True)
class VisibilityEntry:
    block_id: BlockId
    intersection_ratio: float
    bounding_top: float


@dataclass(frozen=True)
class Reveal:
    """Source -> render: scroll the rendered surface to ``line``."""

    line: int
    block_id: BlockId | None = None
    generation: int = 0

    def to_message(self) -> dict[str, Any]:
        return {
            "type": "reveal",
            "line": self.line,
            "blockId": self.block_id,
            "generation": self.generation,
        }


@dataclass(frozen=True)
class SetPosition:
    """Render -> source: move the editor to ``line``; silent = keep focus."""

    line: int
    silent: bool = True

    def to_message(self) -> dict[str, Any]:
        return {"type": "set-position", "line": self.line, "silent": self.silent}
