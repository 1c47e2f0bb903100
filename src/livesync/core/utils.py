"""Utility functions for livesync."""

import re
import unicodedata


def slugify(text: str) -> str:
    """
    Convert heading text to an anchor slug.

    - Lowercase
    - Unicode normalize (NFKD), drop combining marks
    - Remove punctuation except spaces and hyphens
    - Convert whitespace to single `-`
    - Collapse multiple `-` to single, strip leading/trailing `-`

    Examples:
        >>> slugify("Getting Started")
        'getting-started'
        >>> slugify("Café – notes")
        'cafe-notes'
    """
    text = text.lower()

    # En dash, em dash and minus sign all become a plain hyphen
    text = text.replace('–', '-').replace('—', '-').replace('−', '-')

    text = unicodedata.normalize('NFKD', text)
    text = ''.join(c for c in text if not unicodedata.combining(c))

    text = re.sub(r'[^\w\s-]', '', text)
    text = re.sub(r'\s+', '-', text)
    text = re.sub(r'-+', '-', text)

    return text.strip('-')


def middle_line(top_line: int, bottom_line: int) -> int:
    """Line in the middle of a visible range (both ends inclusive)."""
    if bottom_line < top_line:
        top_line, bottom_line = bottom_line, top_line
    return (top_line + bottom_line) // 2


def count_lines(text: str) -> int:
    """Number of newline-terminated lines consumed by ``text``."""
    return text.count("\n")
