"""
Mutable manuscript store with structural invariants.

Every mutation runs against a private draft of the structure. The draft is
renumbered and swapped in only when the whole operation succeeded, so a
rejected call leaves the published structure untouched and readers never see
a half-applied change.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from typing import Any, Callable, Dict, List, Mapping

from .errors import InvalidOperation, StructuralReferenceError
from .models import Chapter, ChapterType, ManuscriptStructure, Part
from .numbering import reading_sequence, renumber_chapters

logger = logging.getLogger(__name__)

Listener = Callable[[int], None]

_CHAPTER_FIELDS = frozenset(
    {"title", "subtitle", "body", "is_numbered", "start_on_right_page", "metadata"}
)
_DERIVED_CHAPTER_FIELDS = frozenset({"id", "chapter_number", "part_id"})
_PART_FIELDS = frozenset({"title", "subtitle"})


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _coerce_type(value: object) -> ChapterType:
    try:
        return ChapterType(value)
    except ValueError as exc:
        raise InvalidOperation(f"Unknown chapter type: {value!r}") from exc


def _check_fields(
    *, changes: Mapping[str, Any], allowed: frozenset[str], derived: frozenset[str]
) -> None:
    """Reject derived or unknown field names before touching the draft."""

    for name in changes:
        if name in derived:
            raise InvalidOperation(f"{name} is maintained by the store")
        if name not in allowed:
            raise InvalidOperation(f"Unknown field: {name}")


def _find_chapter(structure: ManuscriptStructure, chapter_id: str) -> Chapter:
    for chapter in structure.all_entries():
        if chapter.id == chapter_id:
            return chapter
    raise StructuralReferenceError("chapter", chapter_id)


def _find_part(structure: ManuscriptStructure, part_id: str) -> Part:
    for part in structure.parts:
        if part.id == part_id:
            return part
    raise StructuralReferenceError("part", part_id)


def _strip_from_parts(structure: ManuscriptStructure, chapter_id: str) -> None:
    for part in structure.parts:
        part.chapter_ids = [cid for cid in part.chapter_ids if cid != chapter_id]


def _sync_part_ids(structure: ManuscriptStructure) -> None:
    """Derive ``Chapter.part_id`` from part membership lists."""

    owner: Dict[str, str] = {}
    for part in structure.parts:
        for chapter_id in part.chapter_ids:
            owner.setdefault(chapter_id, part.id)
    for chapter in structure.chapters:
        chapter.part_id = owner.get(chapter.id)
    for chapter in (*structure.front_matter, *structure.back_matter):
        chapter.part_id = None


def validate_structure(structure: ManuscriptStructure) -> None:
    """Reject a structure that breaks section, identity, or membership rules.

    Raises:
        InvalidOperation: An entry sits in the wrong section, an id repeats,
            or a chapter is claimed by more than one part or is not a body
            chapter.
        StructuralReferenceError: A part lists an unknown chapter id.
    """

    seen: set[str] = set()
    for kind in ChapterType:
        for chapter in structure.section(kind):
            if chapter.type is not kind:
                raise InvalidOperation(
                    f"Chapter {chapter.id!r} of type {chapter.type.value} listed in {kind.value}"
                )
            if chapter.id in seen:
                raise InvalidOperation(f"Duplicate chapter id {chapter.id!r}")
            seen.add(chapter.id)
    body_ids = {chapter.id for chapter in structure.chapters}
    part_ids: set[str] = set()
    claimed: set[str] = set()
    for part in structure.parts:
        if part.id in part_ids:
            raise InvalidOperation(f"Duplicate part id {part.id!r}")
        part_ids.add(part.id)
        for chapter_id in part.chapter_ids:
            if chapter_id not in seen:
                raise StructuralReferenceError("chapter", chapter_id)
            if chapter_id not in body_ids:
                raise InvalidOperation(f"Part {part.id!r} lists non-chapter entry {chapter_id!r}")
            if chapter_id in claimed:
                raise InvalidOperation(f"Chapter {chapter_id!r} belongs to more than one part")
            claimed.add(chapter_id)


def _adopted_part(sequence: List[Chapter], index: int) -> str | None:
    """Return the part a body chapter joins when dropped at ``index``.

    The chapter joins the part of the nearest body entry before it, or of the
    nearest body entry after it when it lands first in the body.
    """

    for chapter in reversed(sequence[:index]):
        if chapter.type is ChapterType.CHAPTER:
            return chapter.part_id
    for chapter in sequence[index + 1 :]:
        if chapter.type is ChapterType.CHAPTER:
            return chapter.part_id
    return None


class ManuscriptStore:
    """Owns the manuscript hierarchy and keeps chapter numbers in sync.

    Args:
        structure: Initial hierarchy. It is checked with ``validate_structure``
            and copied; derived fields (numbers, part ids) are recomputed.

    Example:
        >>> store = ManuscriptStore()
        >>> cid = store.add_chapter(ChapterType.CHAPTER, title='Opening')
        >>> store.get_chapter(cid).chapter_number
        1
    """

    def __init__(self, structure: ManuscriptStructure | None = None) -> None:
        if structure is not None:
            validate_structure(structure)
        self._lock = threading.RLock()
        self._structure = renumber_chapters(copy.deepcopy(structure or ManuscriptStructure()))
        _sync_part_ids(self._structure)
        self._revision = 0
        self._listeners: List[Listener] = []

    # Reads

    @property
    def revision(self) -> int:
        """Number of successful mutations since construction."""

        with self._lock:
            return self._revision

    def snapshot(self) -> ManuscriptStructure:
        """Return a deep copy of the current structure."""

        with self._lock:
            return copy.deepcopy(self._structure)

    def reading_sequence(self) -> List[Chapter]:
        """Return copies of all entries in reading order with resolved numbers."""

        with self._lock:
            return copy.deepcopy(reading_sequence(self._structure))

    def get_chapter(self, chapter_id: str) -> Chapter:
        with self._lock:
            return copy.deepcopy(_find_chapter(self._structure, chapter_id))

    def get_part(self, part_id: str) -> Part:
        with self._lock:
            return copy.deepcopy(_find_part(self._structure, part_id))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(revision)`` to run after every mutation.

        Returns:
            A callable that removes the listener again.
        """

        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # Chapters

    def add_chapter(self, chapter_type: ChapterType | str, **fields: Any) -> str:
        """Create a chapter entry at the end of its section.

        Args:
            chapter_type: Section for the new entry.
            **fields: Initial values for any editable chapter field.
        Returns:
            Generated chapter id.
        """

        kind = _coerce_type(chapter_type)
        _check_fields(changes=fields, allowed=_CHAPTER_FIELDS, derived=_DERIVED_CHAPTER_FIELDS)
        chapter_id = _new_id("chapter")

        def apply(draft: ManuscriptStructure) -> None:
            chapter = Chapter(id=chapter_id, title=fields.pop("title", "Untitled"), type=kind)
            for name, value in fields.items():
                setattr(chapter, name, value)
            draft.section(kind).append(chapter)

        self._mutate(apply, action="add_chapter", target=chapter_id)
        return chapter_id

    def update_chapter(self, chapter_id: str, **changes: Any) -> None:
        """Merge ``changes`` into a chapter.

        Changing ``type`` moves the entry to the end of the matching section
        and drops any part membership.
        """

        allowed = _CHAPTER_FIELDS | {"type"}
        _check_fields(changes=changes, allowed=allowed, derived=_DERIVED_CHAPTER_FIELDS)
        new_type = _coerce_type(changes.pop("type")) if "type" in changes else None

        def apply(draft: ManuscriptStructure) -> None:
            chapter = _find_chapter(draft, chapter_id)
            for name, value in changes.items():
                setattr(chapter, name, value)
            if new_type is None or new_type is chapter.type:
                return
            draft.section(chapter.type).remove(chapter)
            _strip_from_parts(draft, chapter_id)
            chapter.type = new_type
            draft.section(new_type).append(chapter)

        self._mutate(apply, action="update_chapter", target=chapter_id)

    def remove_chapter(self, chapter_id: str) -> None:
        """Delete a chapter and drop it from any part."""

        def apply(draft: ManuscriptStructure) -> None:
            chapter = _find_chapter(draft, chapter_id)
            draft.section(chapter.type).remove(chapter)
            _strip_from_parts(draft, chapter_id)

        self._mutate(apply, action="remove_chapter", target=chapter_id)

    # Parts

    def add_part(self, title: str, subtitle: str | None = None) -> str:
        """Append an empty part and return its id."""

        part_id = _new_id("part")

        def apply(draft: ManuscriptStructure) -> None:
            draft.parts.append(Part(id=part_id, title=title, subtitle=subtitle))

        self._mutate(apply, action="add_part", target=part_id)
        return part_id

    def update_part(self, part_id: str, **changes: Any) -> None:
        """Merge title/subtitle changes into a part."""

        _check_fields(changes=changes, allowed=_PART_FIELDS, derived=frozenset({"id", "chapter_ids"}))

        def apply(draft: ManuscriptStructure) -> None:
            part = _find_part(draft, part_id)
            for name, value in changes.items():
                setattr(part, name, value)

        self._mutate(apply, action="update_part", target=part_id)

    def remove_part(self, part_id: str) -> None:
        """Delete a part; its chapters stay in the manuscript, unassigned."""

        def apply(draft: ManuscriptStructure) -> None:
            draft.parts.remove(_find_part(draft, part_id))

        self._mutate(apply, action="remove_part", target=part_id)

    def move_chapter_to_part(self, chapter_id: str, part_id: str | None) -> None:
        """Append a body chapter to a part, or un-assign it with ``None``."""

        def apply(draft: ManuscriptStructure) -> None:
            chapter = _find_chapter(draft, chapter_id)
            target = _find_part(draft, part_id) if part_id is not None else None
            if chapter.type is not ChapterType.CHAPTER:
                raise InvalidOperation(f"{chapter.type.value} entries cannot belong to a part")
            _strip_from_parts(draft, chapter_id)
            if target is not None:
                target.chapter_ids.append(chapter_id)

        self._mutate(apply, action="move_chapter_to_part", target=chapter_id)

    # Ordering

    def reorder(self, source_index: int, dest_index: int) -> None:
        """Move one entry within the flattened reading sequence.

        The entry keeps its type: front and back matter only change position
        within their own section. A body chapter adopts the part membership of
        its new neighbourhood (see ``_adopted_part``).

        Args:
            source_index: Position of the entry to move.
            dest_index: Position it should occupy after the move.
        """

        def apply(draft: ManuscriptStructure) -> None:
            sequence = reading_sequence(draft)
            for index in (source_index, dest_index):
                if not 0 <= index < len(sequence):
                    raise StructuralReferenceError("index", index)
            moved = sequence.pop(source_index)
            sequence.insert(dest_index, moved)

            membership = {c.id: c.part_id for c in draft.chapters}
            if moved.type is ChapterType.CHAPTER:
                membership[moved.id] = _adopted_part(sequence, dest_index)

            draft.front_matter = [c for c in sequence if c.type is ChapterType.FRONT_MATTER]
            draft.back_matter = [c for c in sequence if c.type is ChapterType.BACK_MATTER]
            draft.chapters = [c for c in sequence if c.type is ChapterType.CHAPTER]
            for part in draft.parts:
                part.chapter_ids = [c.id for c in draft.chapters if membership[c.id] == part.id]

        self._mutate(apply, action="reorder", target=f"{source_index}->{dest_index}")

    # Internals

    def _mutate(
        self,
        apply: Callable[[ManuscriptStructure], None],
        *,
        action: str,
        target: str,
    ) -> None:
        """Run ``apply`` on a draft and publish it only if it succeeds."""

        with self._lock:
            draft = copy.deepcopy(self._structure)
            apply(draft)
            _sync_part_ids(draft)
            renumber_chapters(draft)
            self._structure = draft
            self._revision += 1
            revision = self._revision
            listeners = list(self._listeners)
        logger.debug("%s %s -> revision %d", action, target, revision)
        for listener in listeners:
            listener(revision)
