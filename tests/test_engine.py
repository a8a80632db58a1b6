import asyncio
import random

import pytest

from folio.layout.engine import GenerationCounter, PaginationEngine
from folio.layout.pagination import paginate_paragraphs
from folio.layout.fallback import FallbackEstimator
from folio.layout.metrics import FixedHeightMetricsProvider, HostRenderingMetricsProvider
from folio.layout.settings import FormattingConfig, PageGeometry, PaginationSettings

FORMATTING = FormattingConfig()
GEOMETRY = PageGeometry()
SETTINGS = PaginationSettings(measure_timeout=None)
THRESHOLD = SETTINGS.break_threshold(FORMATTING, GEOMETRY)


def _run(engine, paragraphs, **kwargs):
    return asyncio.run(engine.paginate(paragraphs, FORMATTING, GEOMETRY, **kwargs))


def _flatten(pages):
    return [text for page in pages for text in page.paragraphs]


def test_threshold_reserves_footer_and_buffer():
    # 11in page, 1in margins, 1.5em footer at 12pt, 10px buffer.
    assert abs(THRESHOLD - (648 - 18 - 7.5)) < 0.01


def test_three_paragraphs_split_into_two_pages():
    # Two paragraphs fit together; the third does not fit beside them.
    block = THRESHOLD * 0.6 / 2 - SETTINGS.paragraph_spacing
    metrics = FixedHeightMetricsProvider(
        heights={"Para1": block, "Para2": block, "Para3": THRESHOLD * 0.6},
    )
    engine = PaginationEngine(metrics, settings=SETTINGS)

    result = _run(engine, ["Para1", "Para2", "Para3"])

    assert [page.paragraphs for page in result.pages] == [["Para1", "Para2"], ["Para3"]]
    assert [page.number for page in result.pages] == [1, 2]
    assert not result.estimated


def test_oversized_paragraph_gets_its_own_page():
    metrics = FixedHeightMetricsProvider(heights={"huge": THRESHOLD * 3}, height=20)
    engine = PaginationEngine(metrics, settings=SETTINGS)
    result = _run(engine, ["huge", "after"])
    assert [page.paragraphs for page in result.pages] == [["huge"], ["after"]]


def test_first_paragraph_on_each_page_is_unindented():
    metrics = FixedHeightMetricsProvider(height=THRESHOLD * 0.4)
    engine = PaginationEngine(metrics, settings=SETTINGS)
    result = _run(engine, ["a", "b", "c"])

    assert [page.paragraphs for page in result.pages] == [["a", "b"], ["c"]]
    indents = [(text, style.first_line_indent) for text, style, _ in metrics.calls]
    # "c" is measured indented, overflows, then re-measured flush.
    assert indents == [("a", 0.0), ("b", 6.0), ("c", 6.0), ("c", 0.0)]


def test_forced_breaks_open_new_pages():
    metrics = FixedHeightMetricsProvider(height=10)
    engine = PaginationEngine(metrics, settings=SETTINGS)
    result = _run(engine, ["h1", "p1", "h2", "p2"], breaks=[0, 2])
    assert [page.paragraphs for page in result.pages] == [["h1", "p1"], ["h2", "p2"]]
    assert metrics.calls[2][1].first_line_indent == 0.0


def test_empty_input_yields_one_empty_page():
    engine = PaginationEngine(FixedHeightMetricsProvider(), settings=SETTINGS)
    result = _run(engine, [])
    assert len(result.pages) == 1
    assert result.pages[0].paragraphs == []


def test_missing_provider_uses_fallback():
    result = _run(PaginationEngine(None, settings=SETTINGS), ["one two three"])
    assert result.estimated and result.reason == "unavailable"
    assert _flatten(result.pages) == ["one two three"]


def test_unavailable_host_uses_fallback_without_calls():
    host = HostRenderingMetricsProvider()
    result = _run(PaginationEngine(host, settings=SETTINGS), ["a", "b"])
    assert result.estimated and result.reason == "unavailable"


def test_failing_availability_check_uses_fallback():
    class DisconnectedBridge(FixedHeightMetricsProvider):
        def is_available(self):
            raise RuntimeError("bridge gone")

    metrics = DisconnectedBridge()
    result = _run(PaginationEngine(metrics, settings=SETTINGS), ["a", "b"])

    assert result.estimated and result.reason == "unavailable"
    assert _flatten(result.pages) == ["a", "b"]
    assert metrics.calls == []


def test_host_provider_scales_heights():
    async def host(text, style, width):
        return 100.0

    provider = HostRenderingMetricsProvider(host, scale=0.75)
    result = _run(PaginationEngine(provider, settings=SETTINGS), ["a"])
    assert not result.estimated


def test_provider_failure_falls_back_over_entire_input():
    paragraphs = [f"paragraph {n} " + "word " * 120 for n in range(6)]
    metrics = FixedHeightMetricsProvider(height=50, fail_after=3)
    result = _run(PaginationEngine(metrics, settings=SETTINGS), paragraphs)

    assert result.estimated and result.reason == "exception"
    assert result.pages == FallbackEstimator().paginate(paragraphs, FORMATTING)
    assert _flatten(result.pages) == paragraphs


def test_timeout_substitutes_fallback_and_stops_measuring():
    settings = PaginationSettings(measure_timeout=0.05)
    metrics = FixedHeightMetricsProvider(height=10, delay=0.03)
    paragraphs = [f"p{n}" for n in range(50)]

    async def scenario():
        engine = PaginationEngine(metrics, settings=settings)
        result = await engine.paginate(paragraphs, FORMATTING, GEOMETRY)
        calls_at_timeout = len(metrics.calls)
        await asyncio.sleep(0.1)
        return result, calls_at_timeout

    result, calls_at_timeout = asyncio.run(scenario())
    assert result.estimated and result.reason == "timeout"
    assert _flatten(result.pages) == paragraphs
    assert len(metrics.calls) <= calls_at_timeout + 1
    assert len(metrics.calls) < len(paragraphs)


def test_stale_run_never_overwrites_newer_result():
    slow = FixedHeightMetricsProvider(height=10, delay=0.02)

    async def scenario():
        engine = PaginationEngine(slow, settings=SETTINGS)
        first = asyncio.ensure_future(
            engine.paginate(["old-1", "old-2", "old-3"], FORMATTING, GEOMETRY)
        )
        await asyncio.sleep(0.01)
        second = await engine.paginate(["new"], FORMATTING, GEOMETRY)
        stale = await first
        return engine, second, stale

    engine, second, stale = asyncio.run(scenario())
    assert stale is None
    assert engine.latest is second
    assert _flatten(engine.latest.pages) == ["new"]


def test_stale_fallback_is_discarded():
    async def scenario():
        engine = PaginationEngine(None, settings=SETTINGS)
        token = engine.begin()
        engine.begin()
        return engine, await engine.paginate(["a"], FORMATTING, GEOMETRY, token)

    engine, result = asyncio.run(scenario())
    assert result is None
    assert engine.latest is None


def test_cancel_invalidates_in_flight_run():
    metrics = FixedHeightMetricsProvider(height=10, delay=0.01)

    async def scenario():
        engine = PaginationEngine(metrics, settings=SETTINGS)
        task = asyncio.ensure_future(engine.paginate(["a", "b", "c", "d"], FORMATTING, GEOMETRY))
        await asyncio.sleep(0.015)
        engine.cancel()
        return engine, await task

    engine, result = asyncio.run(scenario())
    assert result is None
    assert engine.latest is None
    assert len(metrics.calls) < 4


def test_generation_tokens_increase():
    counter = GenerationCounter()
    tokens = [counter.advance() for _ in range(3)]
    assert [t.generation for t in tokens] == [1, 2, 3]
    assert [t.is_current() for t in tokens] == [False, False, True]
    assert not counter.publish(tokens[0], lambda: None)
    assert counter.publish(tokens[2], lambda: None)


def test_publish_listeners_receive_results():
    engine = PaginationEngine(FixedHeightMetricsProvider(), settings=SETTINGS)
    seen = []
    engine.on_publish(seen.append)
    result = _run(engine, ["a"])
    assert seen == [result]


def test_measured_and_estimated_paths_partition_random_inputs():
    rng = random.Random(7)
    for _ in range(30):
        paragraphs = [
            " ".join("w" for _ in range(rng.randint(1, 200))) + f" #{n}"
            for n in range(rng.randint(0, 40))
        ]
        heights = {text: rng.uniform(5, THRESHOLD * 1.2) for text in paragraphs}
        measured = _run(
            PaginationEngine(FixedHeightMetricsProvider(heights=heights), settings=SETTINGS),
            paragraphs,
        )
        estimated = _run(PaginationEngine(None, settings=SETTINGS), paragraphs)
        for result in (measured, estimated):
            assert _flatten(result.pages) == paragraphs
            if paragraphs:
                assert all(page.paragraphs for page in result.pages)
            else:
                assert [page.paragraphs for page in result.pages] == [[]]
            assert [p.number for p in result.pages] == list(range(1, len(result.pages) + 1))


def test_paginate_paragraphs_helper():
    result = paginate_paragraphs(["a", "b"], metrics=FixedHeightMetricsProvider())
    assert _flatten(result.pages) == ["a", "b"]


def test_paginate_paragraphs_raises_when_run_is_superseded(monkeypatch):
    async def superseded(self, *args, **kwargs):
        return None

    monkeypatch.setattr(PaginationEngine, "paginate", superseded)
    with pytest.raises(RuntimeError):
        paginate_paragraphs(["a"])
