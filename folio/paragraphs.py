"""
Flatten a manuscript into the paragraph stream consumed by pagination.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .cleaning import normalize_whitespace, split_paragraphs
from .models import Chapter, ManuscriptStructure
from .numbering import reading_sequence

HTML_FORMAT = "html"


@dataclass(slots=True)
class ParagraphFlow:
    """Paragraph texts plus the indices where a chapter starts.

    Attributes:
        paragraphs: Paragraph texts in reading order.
        breaks: Indices into ``paragraphs`` that must open a new page.
        chapter_starts: (paragraph index, chapter id) for each entry with text.
    """

    paragraphs: List[str] = field(default_factory=list)
    breaks: List[int] = field(default_factory=list)
    chapter_starts: List[tuple[int, str]] = field(default_factory=list)


def is_html_body(chapter: Chapter) -> bool:
    """Return True when the chapter body is rich text rather than literal text."""

    return str(chapter.metadata.get("format", "")).lower() == HTML_FORMAT


def manuscript_paragraphs(
    structure: ManuscriptStructure,
    *,
    include_headings: bool = True,
    break_between_chapters: bool = True,
) -> ParagraphFlow:
    """Return the paragraphs of every entry in reading order.

    Args:
        structure: Manuscript to flatten; chapter numbers must be resolved.
        include_headings: Prefix each entry with its heading line.
        break_between_chapters: Record each entry's first paragraph as a
            forced page break.
    Returns:
        ParagraphFlow for the whole manuscript. Entries without text
        contribute nothing.
    """

    flow = ParagraphFlow()
    for chapter in reading_sequence(structure):
        lines: List[str] = []
        if include_headings:
            heading = normalize_whitespace(chapter.heading())
            if heading:
                lines.append(heading)
        lines.extend(split_paragraphs(chapter.body, html=is_html_body(chapter)))
        if not lines:
            continue
        start = len(flow.paragraphs)
        flow.chapter_starts.append((start, chapter.id))
        if break_between_chapters and start:
            flow.breaks.append(start)
        flow.paragraphs.extend(lines)
    return flow
