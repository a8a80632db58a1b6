"""
Typed containers for the manuscript hierarchy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class ChapterType(str, Enum):
    """Section a chapter entry belongs to."""

    CHAPTER = "chapter"
    FRONT_MATTER = "front_matter"
    BACK_MATTER = "back_matter"


@dataclass(slots=True)
class Chapter:
    """A single entry of the manuscript: numbered chapter, front or back matter.

    Attributes:
        id: Store-generated identifier.
        title: Display title, e.g. "The Storm" or "Dedication".
        subtitle: Optional secondary title.
        body: Literal text, one paragraph per line; HTML when
            ``metadata["format"]`` is "html".
        is_numbered: False for entries such as a prologue inside the body.
        chapter_number: Derived by the store; None unless numbered.
        start_on_right_page: Print hint for recto starts.
        type: Section of the manuscript holding the entry.
        part_id: Derived by the store from part membership.
        metadata: Free-form notes (author notes, version, timestamps).
    """

    id: str
    title: str
    type: ChapterType = ChapterType.CHAPTER
    subtitle: str | None = None
    body: str = ""
    is_numbered: bool = True
    chapter_number: int | None = None
    start_on_right_page: bool = False
    part_id: str | None = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def heading(self) -> str:
        """Return the heading line shown above the body.

        Example:
            >>> Chapter(id='c1', title='The Storm', chapter_number=3).heading()
            'Chapter 3: The Storm'
            >>> Chapter(id='c2', title='Dedication', type=ChapterType.FRONT_MATTER).heading()
            'Dedication'
        """

        if self.chapter_number is None:
            return self.title
        if not self.title:
            return f"Chapter {self.chapter_number}"
        return f"Chapter {self.chapter_number}: {self.title}"


@dataclass(slots=True)
class Part:
    """Named grouping of chapters; the single owner of membership and order."""

    id: str
    title: str
    subtitle: str | None = None
    chapter_ids: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ManuscriptStructure:
    """The full ordered book document."""

    front_matter: List[Chapter] = field(default_factory=list)
    parts: List[Part] = field(default_factory=list)
    chapters: List[Chapter] = field(default_factory=list)
    back_matter: List[Chapter] = field(default_factory=list)

    def section(self, chapter_type: ChapterType) -> List[Chapter]:
        """Return the list that holds entries of ``chapter_type``."""

        if chapter_type is ChapterType.FRONT_MATTER:
            return self.front_matter
        if chapter_type is ChapterType.BACK_MATTER:
            return self.back_matter
        return self.chapters

    def all_entries(self) -> List[Chapter]:
        """Return every chapter entry in storage order (not reading order)."""

        return [*self.front_matter, *self.chapters, *self.back_matter]


@dataclass(slots=True)
class Page:
    """One paginated page; regenerated on every pagination run."""

    number: int
    paragraphs: List[str] = field(default_factory=list)
