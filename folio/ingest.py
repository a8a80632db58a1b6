"""
Load and save manuscript snapshots as JSON documents.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping

from .errors import InvalidOperation, StructuralReferenceError
from .models import Chapter, ChapterType, ManuscriptStructure, Part
from .store import ManuscriptStore

# Keys written by the browser editor, mapped onto ours.
_KEY_ALIASES = {
    "frontMatter": "front_matter",
    "backMatter": "back_matter",
    "chapterIds": "chapter_ids",
    "isNumbered": "is_numbered",
    "startOnRightPage": "start_on_right_page",
    "chapterNumber": "chapter_number",
    "partId": "part_id",
    "content": "body",
}
_TYPE_ALIASES = {
    "frontMatter": ChapterType.FRONT_MATTER,
    "backMatter": ChapterType.BACK_MATTER,
}
_SECTIONS = (
    ("front_matter", ChapterType.FRONT_MATTER),
    ("chapters", ChapterType.CHAPTER),
    ("back_matter", ChapterType.BACK_MATTER),
)


def _normalize_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in data.items():
        name = _KEY_ALIASES.get(key, key)
        if name == "body" and key == "content" and "body" in data:
            continue
        result[name] = value
    return result


def _chapter_from_dict(data: Mapping[str, Any], section: ChapterType) -> Chapter:
    entry = _normalize_keys(data)
    if "id" not in entry:
        raise InvalidOperation(f"Chapter without id in {section.value}")
    declared = entry.get("type", section.value)
    try:
        kind = _TYPE_ALIASES.get(declared) or ChapterType(declared)
    except ValueError as exc:
        raise InvalidOperation(f"Unknown chapter type: {declared!r}") from exc
    if kind is not section:
        raise InvalidOperation(f"Chapter {entry['id']!r} of type {kind.value} listed in {section.value}")
    return Chapter(
        id=str(entry["id"]),
        title=entry.get("title", "Untitled"),
        type=kind,
        subtitle=entry.get("subtitle"),
        body=entry.get("body") or "",
        is_numbered=bool(entry.get("is_numbered", True)),
        start_on_right_page=bool(entry.get("start_on_right_page", False)),
        metadata=dict(entry.get("metadata") or {}),
    )


def structure_from_dict(data: Mapping[str, Any]) -> ManuscriptStructure:
    """Build a structure from a snapshot, rejecting dangling references.

    Derived fields in the snapshot (chapter numbers, part ids) are ignored
    and recomputed by the store.
    """

    data = _normalize_keys(data)
    structure = ManuscriptStructure()
    seen: set[str] = set()
    for key, kind in _SECTIONS:
        for raw in data.get(key) or []:
            chapter = _chapter_from_dict(raw, kind)
            if chapter.id in seen:
                raise InvalidOperation(f"Duplicate chapter id {chapter.id!r}")
            seen.add(chapter.id)
            structure.section(kind).append(chapter)
    body_ids = {chapter.id for chapter in structure.chapters}
    part_ids: set[str] = set()
    claimed: set[str] = set()
    for raw in data.get("parts") or []:
        entry = _normalize_keys(raw)
        if "id" not in entry:
            raise InvalidOperation("Part without id")
        part_id = str(entry["id"])
        if part_id in part_ids:
            raise InvalidOperation(f"Duplicate part id {part_id!r}")
        part_ids.add(part_id)
        chapter_ids: List[str] = []
        for chapter_id in entry.get("chapter_ids") or []:
            if chapter_id not in body_ids:
                raise StructuralReferenceError("chapter", chapter_id)
            if chapter_id in claimed:
                raise InvalidOperation(f"Chapter {chapter_id!r} belongs to more than one part")
            claimed.add(chapter_id)
            chapter_ids.append(chapter_id)
        structure.parts.append(
            Part(
                id=part_id,
                title=entry.get("title", "Untitled"),
                subtitle=entry.get("subtitle"),
                chapter_ids=chapter_ids,
            )
        )
    return structure


def store_from_dict(data: Mapping[str, Any]) -> ManuscriptStore:
    return ManuscriptStore(structure_from_dict(data))


def _chapter_to_dict(chapter: Chapter) -> Dict[str, Any]:
    return {
        "id": chapter.id,
        "title": chapter.title,
        "subtitle": chapter.subtitle,
        "body": chapter.body,
        "type": chapter.type.value,
        "is_numbered": chapter.is_numbered,
        "chapter_number": chapter.chapter_number,
        "start_on_right_page": chapter.start_on_right_page,
        "part_id": chapter.part_id,
        "metadata": dict(chapter.metadata),
    }


def structure_to_dict(structure: ManuscriptStructure) -> Dict[str, Any]:
    """Serialize a structure, derived fields included, for exporters."""

    return {
        "front_matter": [_chapter_to_dict(c) for c in structure.front_matter],
        "parts": [
            {
                "id": part.id,
                "title": part.title,
                "subtitle": part.subtitle,
                "chapter_ids": list(part.chapter_ids),
            }
            for part in structure.parts
        ],
        "chapters": [_chapter_to_dict(c) for c in structure.chapters],
        "back_matter": [_chapter_to_dict(c) for c in structure.back_matter],
    }


def load_manuscript(path: Path) -> ManuscriptStore:
    """Read a JSON snapshot; a ``manuscript`` wrapper key is accepted."""

    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if "manuscript" in data and isinstance(data["manuscript"], Mapping):
        data = data["manuscript"]
    return store_from_dict(data)


def save_manuscript(store: ManuscriptStore, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(structure_to_dict(store.snapshot()), indent=2), encoding="utf-8")
    return path
