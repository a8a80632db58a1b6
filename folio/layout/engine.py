"""
Measurement-driven pagination with generation-based cancellation.

A run measures paragraphs one by one and keeps a cumulative height for the
page being filled. Every run carries a ``GenerationToken``; a newer run (or a
teardown) advances the generation, after which the older run stops issuing
measurement calls and its result is never published. Measurement failures of
any kind are recovered by paginating the whole input with the word-count
``FallbackEstimator``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Collection, List, Sequence

from ..errors import MetricsError, MetricsException, MetricsTimeout, MetricsUnavailable
from ..models import Page
from .constants import DEBUG_PAGINATION
from .fallback import FallbackEstimator
from .metrics import TextMetricsProvider, TextStyle
from .settings import FormattingConfig, PageGeometry, PaginationSettings

logger = logging.getLogger(__name__)


def _debug(*, msg: str) -> None:
    """Log pagination debug output when enabled.

    Args:
        msg: Message to log.
    """

    if DEBUG_PAGINATION:
        logger.debug(msg)


class _Abandoned(Exception):
    """Raised inside a measurement loop that must stop issuing calls."""


@dataclass(slots=True, frozen=True)
class GenerationToken:
    """Identity of one pagination run.

    Attributes:
        generation: Value handed out by the counter; strictly increasing.
        counter: Counter that issued the token.
    """

    generation: int
    counter: "GenerationCounter" = field(compare=False, repr=False)

    def is_current(self) -> bool:
        return self.counter.current == self.generation


class GenerationCounter:
    """Monotonic generation source with compare-and-publish.

    Example:
        >>> counter = GenerationCounter()
        >>> first, second = counter.advance(), counter.advance()
        >>> first.is_current(), second.is_current()
        (False, True)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    @property
    def current(self) -> int:
        with self._lock:
            return self._value

    def advance(self) -> GenerationToken:
        """Start a new generation and return its token."""

        with self._lock:
            self._value += 1
            return GenerationToken(self._value, self)

    def invalidate(self) -> None:
        """Supersede every outstanding token without issuing a new one."""

        with self._lock:
            self._value += 1

    def publish(self, token: GenerationToken, action: Callable[[], None]) -> bool:
        """Run ``action`` only if ``token`` is still current, atomically.

        Returns:
            True when ``action`` ran.
        """

        with self._lock:
            if token.generation != self._value:
                return False
            action()
            return True


@dataclass(slots=True)
class PaginationResult:
    """Pages produced by one run.

    Attributes:
        pages: Pages in order; never empty.
        generation: Generation of the run that produced them.
        estimated: True when the word-count fallback produced the pages.
        reason: Failure that triggered the fallback ("unavailable",
            "timeout", "exception"), or None.
    """

    pages: List[Page]
    generation: int
    estimated: bool = False
    reason: str | None = None


def _discard_outcome(task: "asyncio.Future[object]") -> None:
    """Retrieve the outcome of an abandoned loop so it is not reported."""

    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _debug(msg=f"abandoned measurement loop ended with {exc!r}")


def _pages_from_groups(groups: Sequence[List[str]]) -> List[Page]:
    return [Page(number=n, paragraphs=list(group)) for n, group in enumerate(groups, start=1)]


class PaginationEngine:
    """Split paragraphs into pages using a text metrics provider.

    Args:
        metrics: Provider to measure with; None means always estimate.
        settings: Break threshold, spacing, and timeout tunables.
        estimator: Fallback used whenever measurement fails.
        counter: Shared generation counter; one is created when omitted.
    """

    def __init__(
        self,
        metrics: TextMetricsProvider | None = None,
        *,
        settings: PaginationSettings | None = None,
        estimator: FallbackEstimator | None = None,
        counter: GenerationCounter | None = None,
    ) -> None:
        self.metrics = metrics
        self.settings = settings or PaginationSettings()
        self.estimator = estimator or FallbackEstimator()
        self.counter = counter or GenerationCounter()
        self.latest: PaginationResult | None = None
        self._listeners: List[Callable[[PaginationResult], None]] = []

    def begin(self) -> GenerationToken:
        """Start a new run, superseding every earlier one."""

        return self.counter.advance()

    def cancel(self) -> None:
        """Invalidate all in-flight runs (consumer teardown)."""

        self.counter.invalidate()

    def on_publish(self, listener: Callable[[PaginationResult], None]) -> None:
        self._listeners.append(listener)

    async def paginate(
        self,
        paragraphs: Sequence[str],
        formatting: FormattingConfig,
        geometry: PageGeometry,
        token: GenerationToken | None = None,
        *,
        breaks: Collection[int] = (),
    ) -> PaginationResult | None:
        """Paginate and publish the result unless the run was superseded.

        Args:
            paragraphs: Paragraph texts in reading order.
            formatting: Typography and margins.
            geometry: Trim size.
            token: Generation of this run; a new one is started when omitted.
            breaks: Paragraph indices that must start a new page.
        Returns:
            The published result, or None when a newer run superseded this one.
        """

        token = token or self.begin()
        paragraphs = list(paragraphs)
        breaks = frozenset(breaks)
        if not paragraphs:
            return self._publish(token, PaginationResult([Page(number=1)], token.generation))

        try:
            pages = await self._measured(paragraphs, formatting, geometry, token, breaks)
            result = PaginationResult(pages, token.generation) if pages is not None else None
        except MetricsError as exc:
            if not token.is_current():
                _debug(msg=f"generation {token.generation} superseded during {exc.reason}")
                return None
            level = logging.INFO if isinstance(exc, MetricsUnavailable) else logging.WARNING
            logger.log(level, "Measured pagination failed (%s: %s); estimating by word count", exc.reason, exc)
            pages = self.estimator.paginate(paragraphs, formatting, breaks=breaks)
            result = PaginationResult(pages, token.generation, estimated=True, reason=exc.reason)
        if result is None:
            _debug(msg=f"generation {token.generation} abandoned")
            return None
        return self._publish(token, result)

    def _publish(self, token: GenerationToken, result: PaginationResult) -> PaginationResult | None:
        def store() -> None:
            self.latest = result

        if not self.counter.publish(token, store):
            _debug(msg=f"discarding stale result of generation {token.generation}")
            return None
        for listener in list(self._listeners):
            listener(result)
        return result

    async def _measured(
        self,
        paragraphs: List[str],
        formatting: FormattingConfig,
        geometry: PageGeometry,
        token: GenerationToken,
        breaks: frozenset[int],
    ) -> List[Page] | None:
        """Race the measurement loop against the soft timeout."""

        provider = self.metrics
        if provider is None:
            raise MetricsUnavailable("no text metrics provider configured")
        try:
            available = provider.is_available()
        except MetricsError:
            raise
        except Exception as exc:
            raise MetricsUnavailable(f"availability check failed: {type(exc).__name__}: {exc}") from exc
        if not available:
            raise MetricsUnavailable("text metrics provider is not available")
        stop = asyncio.Event()
        task = asyncio.ensure_future(
            self._measure_loop(provider, paragraphs, formatting, geometry, token, breaks, stop)
        )
        timeout = self.settings.measure_timeout
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            stop.set()
            task.add_done_callback(_discard_outcome)
            raise
        if task not in done:
            # In-flight calls may finish; the loop issues no further ones.
            stop.set()
            task.add_done_callback(_discard_outcome)
            raise MetricsTimeout(f"measurement exceeded {timeout}s")
        return task.result()

    async def _measure_loop(
        self,
        provider: TextMetricsProvider,
        paragraphs: List[str],
        formatting: FormattingConfig,
        geometry: PageGeometry,
        token: GenerationToken,
        breaks: frozenset[int],
        stop: asyncio.Event,
    ) -> List[Page] | None:
        width = geometry.content_width(formatting)
        threshold = self.settings.break_threshold(formatting, geometry)
        spacing = self.settings.paragraph_spacing
        indented = TextStyle.from_formatting(formatting, indented=True)
        flush = TextStyle.from_formatting(formatting, indented=False)

        async def block_height(text: str, style: TextStyle) -> float:
            if stop.is_set() or not token.is_current():
                raise _Abandoned
            try:
                height = await provider.measure(text, style, width)
            except MetricsError:
                raise
            except Exception as exc:
                raise MetricsException(f"{type(exc).__name__}: {exc}") from exc
            return height + spacing

        groups: List[List[str]] = []
        current: List[str] = []
        cumulative = 0.0
        try:
            for index, text in enumerate(paragraphs):
                if current and index in breaks:
                    groups.append(current)
                    current, cumulative = [], 0.0
                height = await block_height(text, indented if current else flush)
                if current and cumulative + height > threshold:
                    _debug(
                        msg=(
                            f"page {len(groups) + 1} closed at {cumulative:.1f}pt "
                            f"(+{height:.1f} > {threshold:.1f})"
                        )
                    )
                    groups.append(current)
                    current = []
                    if indented != flush:
                        height = await block_height(text, flush)
                    cumulative = 0.0
                current.append(text)
                cumulative += height
        except _Abandoned:
            return None
        groups.append(current)
        return _pages_from_groups(groups)


def paginate_paragraphs(
    paragraphs: Sequence[str],
    formatting: FormattingConfig | None = None,
    geometry: PageGeometry | None = None,
    *,
    metrics: TextMetricsProvider | None = None,
    settings: PaginationSettings | None = None,
    breaks: Collection[int] = (),
) -> PaginationResult:
    """Run one pagination to completion outside an event loop."""

    engine = PaginationEngine(metrics, settings=settings)
    result = asyncio.run(
        engine.paginate(
            paragraphs,
            formatting or FormattingConfig(),
            geometry or PageGeometry(),
            breaks=breaks,
        )
    )
    if result is None:
        raise RuntimeError("pagination run was superseded before it finished")
    return result
