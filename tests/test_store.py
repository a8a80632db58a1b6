import random

import pytest

from folio.errors import InvalidOperation, InvalidReference, StructuralReferenceError
from folio.models import Chapter, ChapterType, ManuscriptStructure, Part
from folio.store import ManuscriptStore, validate_structure


def _numbers_are_contiguous(store):
    numbered = [
        c.chapter_number
        for c in store.reading_sequence()
        if c.type is ChapterType.CHAPTER and c.is_numbered
    ]
    others = [
        c.chapter_number
        for c in store.reading_sequence()
        if not (c.type is ChapterType.CHAPTER and c.is_numbered)
    ]
    return numbered == list(range(1, len(numbered) + 1)) and all(n is None for n in others)


def _membership_consistent(store):
    snapshot = store.snapshot()
    owners = {}
    for part in snapshot.parts:
        for chapter_id in part.chapter_ids:
            if chapter_id in owners:
                return False
            owners[chapter_id] = part.id
    return all(c.part_id == owners.get(c.id) for c in snapshot.chapters)


def test_front_chapter_back_sequence():
    store = ManuscriptStore()
    store.add_chapter(ChapterType.FRONT_MATTER, title="Prologue")
    chapter_id = store.add_chapter(ChapterType.CHAPTER, title="Opening")
    store.add_chapter(ChapterType.BACK_MATTER, title="Afterword")

    sequence = store.reading_sequence()
    assert len(sequence) == 3
    assert [c.chapter_number for c in sequence] == [None, 1, None]
    assert sequence[1].id == chapter_id


def test_remove_part_keeps_chapters_as_standalone():
    store = ManuscriptStore()
    first = store.add_chapter("chapter", title="One")
    second = store.add_chapter("chapter", title="Two")
    part = store.add_part("Part I")
    store.move_chapter_to_part(second, part)
    assert [c.id for c in store.reading_sequence()] == [second, first]
    assert store.get_chapter(second).part_id == part

    store.remove_part(part)

    snapshot = store.snapshot()
    assert second in [c.id for c in snapshot.chapters]
    assert store.get_chapter(second).part_id is None
    assert [c.id for c in store.reading_sequence()] == [first, second]
    assert store.get_chapter(second).chapter_number == 2


def test_remove_chapter_strips_part_membership_and_renumbers():
    store = ManuscriptStore()
    ids = [store.add_chapter("chapter", title=f"C{n}") for n in range(3)]
    part = store.add_part("Part")
    store.move_chapter_to_part(ids[0], part)
    store.move_chapter_to_part(ids[1], part)

    store.remove_chapter(ids[0])

    assert store.get_part(part).chapter_ids == [ids[1]]
    assert [c.chapter_number for c in store.reading_sequence()] == [1, 2]


def test_toggling_is_numbered_renumbers():
    store = ManuscriptStore()
    ids = [store.add_chapter("chapter", title=f"C{n}") for n in range(3)]
    store.update_chapter(ids[0], is_numbered=False)
    assert [store.get_chapter(i).chapter_number for i in ids] == [None, 1, 2]


def test_update_merges_only_given_fields():
    store = ManuscriptStore()
    chapter_id = store.add_chapter("chapter", title="Draft", body="text", subtitle="sub")
    store.update_chapter(chapter_id, title="Final")
    chapter = store.get_chapter(chapter_id)
    assert (chapter.title, chapter.body, chapter.subtitle) == ("Final", "text", "sub")


def test_changing_type_moves_entry_and_leaves_part():
    store = ManuscriptStore()
    chapter_id = store.add_chapter("chapter", title="Prologue")
    part = store.add_part("Part")
    store.move_chapter_to_part(chapter_id, part)

    store.update_chapter(chapter_id, type=ChapterType.FRONT_MATTER)

    snapshot = store.snapshot()
    assert [c.id for c in snapshot.front_matter] == [chapter_id]
    assert snapshot.chapters == []
    assert snapshot.parts[0].chapter_ids == []
    assert store.get_chapter(chapter_id).chapter_number is None


@pytest.mark.parametrize(
    "operation",
    [
        lambda s: s.update_chapter("missing", title="x"),
        lambda s: s.remove_chapter("missing"),
        lambda s: s.update_part("missing", title="x"),
        lambda s: s.remove_part("missing"),
        lambda s: s.move_chapter_to_part("missing", None),
        lambda s: s.move_chapter_to_part(s.reading_sequence()[0].id, "missing"),
        lambda s: s.reorder(0, 99),
        lambda s: s.reorder(-1, 0),
    ],
)
def test_unknown_references_leave_structure_unchanged(operation):
    store = ManuscriptStore()
    store.add_chapter("chapter", title="One")
    store.add_part("Part")
    before = store.snapshot()
    revision = store.revision

    with pytest.raises(StructuralReferenceError):
        operation(store)

    assert store.snapshot() == before
    assert store.revision == revision


def test_invalid_reference_alias():
    assert InvalidReference is StructuralReferenceError


@pytest.mark.parametrize("field", ["part_id", "chapter_number", "id", "colour"])
def test_derived_and_unknown_fields_are_rejected(field):
    store = ManuscriptStore()
    chapter_id = store.add_chapter("chapter", title="One")
    with pytest.raises(InvalidOperation):
        store.update_chapter(chapter_id, **{field: "x"})
    assert store.get_chapter(chapter_id).title == "One"


def test_front_matter_cannot_join_a_part():
    store = ManuscriptStore()
    front = store.add_chapter("front_matter", title="Foreword")
    part = store.add_part("Part")
    with pytest.raises(InvalidOperation):
        store.move_chapter_to_part(front, part)
    assert store.get_part(part).chapter_ids == []


def test_reorder_moves_standalone_chapter():
    store = ManuscriptStore()
    a, b, c = (store.add_chapter("chapter", title=t) for t in "ABC")
    store.reorder(2, 0)
    assert [ch.id for ch in store.reading_sequence()] == [c, a, b]
    assert [ch.chapter_number for ch in store.reading_sequence()] == [1, 2, 3]


def test_reorder_keeps_matter_in_its_section():
    store = ManuscriptStore()
    front = store.add_chapter("front_matter", title="Foreword")
    body = store.add_chapter("chapter", title="One")
    store.reorder(0, 1)
    snapshot = store.snapshot()
    assert [c.id for c in snapshot.front_matter] == [front]
    assert [c.id for c in store.reading_sequence()] == [front, body]


def test_reorder_into_part_adopts_membership():
    store = ManuscriptStore()
    a = store.add_chapter("chapter", title="A")
    b = store.add_chapter("chapter", title="B")
    loose = store.add_chapter("chapter", title="Loose")
    part = store.add_part("Part")
    store.move_chapter_to_part(a, part)
    store.move_chapter_to_part(b, part)
    assert [c.id for c in store.reading_sequence()] == [a, b, loose]

    store.reorder(2, 1)

    assert store.get_part(part).chapter_ids == [a, loose, b]
    assert store.get_chapter(loose).part_id == part
    assert [c.id for c in store.reading_sequence()] == [a, loose, b]

@pytest.mark.parametrize(
    "structure",
    [
        ManuscriptStructure(front_matter=[Chapter(id="c", title="C", type=ChapterType.CHAPTER)]),
        ManuscriptStructure(chapters=[Chapter(id="c", title="A"), Chapter(id="c", title="B")]),
        ManuscriptStructure(
            chapters=[Chapter(id="c", title="C")],
            parts=[Part(id="p", title="A"), Part(id="p", title="B")],
        ),
        ManuscriptStructure(
            front_matter=[Chapter(id="f", title="F", type=ChapterType.FRONT_MATTER)],
            parts=[Part(id="p", title="P", chapter_ids=["f"])],
        ),
        ManuscriptStructure(
            chapters=[Chapter(id="c", title="C")],
            parts=[Part(id="a", title="A", chapter_ids=["c"]), Part(id="b", title="B", chapter_ids=["c"])],
        ),
    ],
)
def test_store_rejects_inconsistent_initial_structure(structure):
    with pytest.raises(InvalidOperation):
        ManuscriptStore(structure)


def test_store_rejects_part_listing_unknown_chapter():
    structure = ManuscriptStructure(parts=[Part(id="p", title="P", chapter_ids=["ghost"])])
    with pytest.raises(StructuralReferenceError):
        validate_structure(structure)
    with pytest.raises(StructuralReferenceError):
        ManuscriptStore(structure)


def test_store_accepts_valid_initial_structure():
    structure = ManuscriptStructure(
        chapters=[Chapter(id="a", title="A"), Chapter(id="b", title="B")],
        parts=[Part(id="p", title="P", chapter_ids=["b"])],
    )
    store = ManuscriptStore(structure)
    assert store.get_chapter("b").part_id == "p"
    assert [c.chapter_number for c in store.reading_sequence()] == [1, 2]



def test_listeners_see_each_mutation():
    store = ManuscriptStore()
    seen = []
    unsubscribe = store.subscribe(seen.append)
    store.add_chapter("chapter", title="A")
    store.add_part("P")
    unsubscribe()
    store.add_part("Q")
    assert seen == [1, 2]


def test_snapshot_is_isolated_from_store():
    store = ManuscriptStore()
    chapter_id = store.add_chapter("chapter", title="A")
    snapshot = store.snapshot()
    snapshot.chapters[0].title = "changed"
    assert store.get_chapter(chapter_id).title == "A"


def test_random_operation_sequences_keep_invariants():
    rng = random.Random(20240607)
    for _ in range(25):
        store = ManuscriptStore()
        for _ in range(40):
            sequence = store.reading_sequence()
            parts = store.snapshot().parts
            body = [c.id for c in sequence if c.type is ChapterType.CHAPTER]
            choice = rng.randrange(8)
            try:
                if choice == 0:
                    store.add_chapter(rng.choice(list(ChapterType)), title="x")
                elif choice == 1 and sequence:
                    store.remove_chapter(rng.choice(sequence).id)
                elif choice == 2:
                    store.add_part("p")
                elif choice == 3 and parts:
                    store.remove_part(rng.choice(parts).id)
                elif choice == 4 and body:
                    target = rng.choice(parts).id if parts and rng.random() < 0.8 else None
                    store.move_chapter_to_part(rng.choice(body), target)
                elif choice == 5 and sequence:
                    store.reorder(rng.randrange(len(sequence)), rng.randrange(len(sequence)))
                elif choice == 6 and sequence:
                    store.update_chapter(rng.choice(sequence).id, is_numbered=rng.random() < 0.7)
                elif choice == 7 and sequence:
                    store.update_chapter(rng.choice(sequence).id, type=rng.choice(list(ChapterType)))
            except InvalidOperation:
                pass
            assert _numbers_are_contiguous(store)
            assert _membership_consistent(store)
            assert len(store.reading_sequence()) == len(store.snapshot().all_entries())
