"""
Logical reading order and chapter numbering.
"""

from __future__ import annotations

from typing import List

from .models import Chapter, ChapterType, ManuscriptStructure


def reading_sequence(structure: ManuscriptStructure) -> List[Chapter]:
    """Flatten the manuscript into reading order.

    Front matter, then each part's chapters in listed order, then chapters
    that belong to no part, then back matter.

    Args:
        structure: Manuscript to traverse.
    Returns:
        Chapter entries in reading order. The entries are the structure's own
        objects, not copies.

    Example:
        >>> s = ManuscriptStructure(chapters=[Chapter(id='a', title='A')])
        >>> [c.id for c in reading_sequence(s)]
        ['a']
    """

    by_id = {chapter.id: chapter for chapter in structure.chapters}
    in_parts: set[str] = set()
    sequence: List[Chapter] = list(structure.front_matter)
    for part in structure.parts:
        for chapter_id in part.chapter_ids:
            chapter = by_id.get(chapter_id)
            if chapter is None or chapter_id in in_parts:
                continue
            in_parts.add(chapter_id)
            sequence.append(chapter)
    sequence.extend(c for c in structure.chapters if c.id not in in_parts)
    sequence.extend(structure.back_matter)
    return sequence


def _counts_toward_numbering(chapter: Chapter) -> bool:
    return chapter.type is ChapterType.CHAPTER and chapter.is_numbered


def renumber_chapters(structure: ManuscriptStructure) -> ManuscriptStructure:
    """Assign 1-based contiguous numbers to numbered body chapters in place.

    Idempotent: running it twice yields the same numbers.

    Args:
        structure: Manuscript to renumber.
    Returns:
        The same structure, for chaining.
    """

    counter = 0
    for chapter in reading_sequence(structure):
        if _counts_toward_numbering(chapter):
            counter += 1
            chapter.chapter_number = counter
        else:
            chapter.chapter_number = None
    return structure


def numbered_titles(structure: ManuscriptStructure) -> List[str]:
    """Return display headings for every entry in reading order."""

    return [chapter.heading() for chapter in reading_sequence(structure)]
