"""
Small, focused text cleaning utilities for chapter bodies.
"""

from __future__ import annotations

import re
from typing import List

from bs4 import BeautifulSoup

_ZERO_WIDTH = re.compile("[\u200b\u200c\u200d\u2060\ufeff]")
_NON_BREAKING_SPACES = re.compile("[\u00a0\u202f]")
_LINE_SEPARATORS = re.compile("[\u2028\u2029]")
_BLOCK_TAGS = ["p", "div", "br", "li", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote"]


def normalize_whitespace(value: str) -> str:
    """Collapse unusual whitespace inside one line into single ASCII spaces.

    Example:
        >>> normalize_whitespace("a\\u00a0b\\u200bb")
        'a bb'
    """

    clean = _NON_BREAKING_SPACES.sub(" ", value)
    clean = _ZERO_WIDTH.sub("", clean)
    clean = re.sub(r"[ \t\r\f\v]+", " ", clean)
    return clean.strip()


def strip_markup(body: str) -> str:
    """Reduce rich-text HTML to plain text with one block per line.

    Example:
        >>> strip_markup("<p>One <em>two</em></p><p>Three</p>")
        'One two\\nThree'
    """

    soup = BeautifulSoup(body, "html.parser")
    for tag in soup.find_all(_BLOCK_TAGS):
        if tag.name == "br":
            tag.replace_with("\n")
        else:
            tag.insert_before("\n")
            tag.insert_after("\n")
    return re.sub(r"\n{2,}", "\n", soup.get_text()).strip("\n")


def split_paragraphs(body: str, *, html: bool = False) -> List[str]:
    """Split a chapter body into cleaned, non-blank paragraphs.

    Bodies are literal text unless ``html`` is set, in which case markup is
    reduced with ``strip_markup`` first.

    Example:
        >>> split_paragraphs("First line\\n\\n  \\nSecond\\u00a0line")
        ['First line', 'Second line']
    """

    text = _LINE_SEPARATORS.sub("\n", strip_markup(body) if html else body)
    paragraphs: List[str] = []
    for line in text.splitlines():
        clean = normalize_whitespace(line)
        if clean:
            paragraphs.append(clean)
    return paragraphs
