"""Utilities for resolving a source line to the rendered block that shows it."""

import json
import logging
import sys
from pathlib import Path
from typing import Any

from .core.annotator import annotate
from .core.model import Block, RenderedDocument
from .logging_utils import log_event


def locate_block(document: RenderedDocument, line: int) -> Block | None:
    """
    Resolve a 1-based source line to a block.

    - Exact start-line match wins (outermost block on ties)
    - Otherwise the closest preceding block; never a following one
    - No block at or before the line: fall back to the first positioned
      block and log it

    Returns None only when the document has no positioned blocks.
    """
    block = document.closest_preceding(line)
    if block is not None:
        return block

    positioned = document.positioned()
    if not positioned:
        return None

    fallback = positioned[0]
    log_event(
        "locate_fallback",
        level=logging.DEBUG,
        line=line,
        block=fallback.stable_id,
        generation=document.generation,
    )
    return fallback


def locate_line(
    document: RenderedDocument,
    line: int,
    format_type: str = "json",
) -> dict[str, Any] | str:
    """
    Location information for ``line`` as a dict (json) or TSV string.

    Empty dict when nothing can be located.
    """
    block = locate_block(document, line)
    if block is None:
        return {}

    if format_type == "tsv":
        return (
            f"{line}\t{block.stable_id}\t{block.kind}\t"
            f"{block.source_line_start}\t{block.source_line_end}"
        )

    result = block.to_dict()
    result["line"] = line
    result["exact"] = block.source_line_start == line
    return result


def cmd_locate(args: Any, rt: Any) -> int:
    """
    Locate command handler.

    Args:
        args: Parsed command-line arguments
        rt: Runtime instance (unused, kept for the handler signature)

    Returns:
        Exit code
    """
    path = Path(args.file)
    if not path.exists():
        print(f"File {path} not found", file=sys.stderr)
        return 1

    if args.line < 1:
        print("Line numbers start at 1", file=sys.stderr)
        return 1

    document = annotate(path.read_text(encoding="utf-8"))
    format_type = getattr(args, "format", "json")

    location = locate_line(document, args.line, format_type)
    if not location:
        print(f"No block to locate in {path}", file=sys.stderr)
        return 1

    if format_type == "json":
        location["path"] = str(path.absolute())
        print(json.dumps(location, indent=2))
    else:
        print(f"{path.absolute()}\t{location}")

    return 0
