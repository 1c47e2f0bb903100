from typing import Any

from markdown_it import MarkdownIt
from markdown_it.token import Token

from ..core.model import BlockKind
from ..core.ports import ParserStrategy

# token type -> block kind for every token that becomes an addressable block
BLOCK_TOKENS = {
    "paragraph_open": BlockKind.PARAGRAPH,
    "heading_open": BlockKind.HEADING,
    "blockquote_open": BlockKind.BLOCKQUOTE,
    "list_item_open": BlockKind.LIST_ITEM,
    "fence": BlockKind.CODE_BLOCK,
    "code_block": BlockKind.CODE_BLOCK,
    "table_open": BlockKind.TABLE,
    "hr": BlockKind.RULE,
}


def block_kind(token: Token) -> str | None:
    """Block kind for ``token``, or None when the token is not a block."""
    return BLOCK_TOKENS.get(token.type)


def heading_text(tokens: list[Token], idx: int) -> str:
    """Plain text of the heading whose ``heading_open`` sits at ``idx``."""
    if idx + 1 < len(tokens) and tokens[idx + 1].type == "inline":
        return tokens[idx + 1].content.strip()
    return ""


def heading_level(token: Token) -> int | None:
    if len(token.tag) == 2 and token.tag[0] == "h" and token.tag[1].isdigit():
        return int(token.tag[1])
    return None


class MarkdownItParser(ParserStrategy):
    """
    CommonMark + tables via markdown-it-py.

    Raw HTML is escaped; the preview is rendered into a page we serve, so
    documents must not be able to inject scripts into it.
    """

    def __init__(self, html: bool = False):
        self.md = MarkdownIt("commonmark", {"html": html}).enable("table")

    def parse(self, text: str) -> list[Token]:
        return self.md.parse(text)

    def render(self, tokens: list[Token], env: dict[str, Any] | None = None) -> str:
        return self.md.renderer.render(tokens, self.md.options, env or {})
