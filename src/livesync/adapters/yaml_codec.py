import io
import re
from typing import Any

import yaml

from ..core.ports import FrontmatterCodec
from ..core.utils import count_lines

_FM = re.compile(r"^---[ \t]*\n(.*?\n)?---[ \t]*(?:\n|$)", re.DOTALL)


class YamlFrontmatter(FrontmatterCodec):
    """
    Strip a leading ``---`` fenced YAML block.

    The frontmatter is not rendered, but block line numbers must still refer
    to the original text, so the number of lines it occupied is returned too.
    Malformed YAML is kept out of the render and reported as empty meta.
    """

    def decode(self, text: str) -> tuple[dict[str, Any], str, int]:
        m = _FM.match(text)
        if not m:
            return {}, text, 0
        try:
            fm = yaml.safe_load(io.StringIO(m.group(1) or "")) or {}
        except yaml.YAMLError:
            fm = {}
        if not isinstance(fm, dict):
            fm = {}
        consumed = m.group(0)
        offset = count_lines(consumed)
        if not consumed.endswith("\n"):
            # closing fence on the last line without a newline
            offset += 1
        return fm, text[m.end():], offset
