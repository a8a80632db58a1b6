"""
Keep a paginated preview in step with a manuscript store.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Set

from .layout.engine import PaginationEngine, PaginationResult
from .layout.settings import FormattingConfig, PageGeometry
from .models import Page
from .paragraphs import manuscript_paragraphs
from .store import ManuscriptStore

logger = logging.getLogger(__name__)


class PreviewSession:
    """Re-paginate whenever the manuscript or its formatting changes.

    Each trigger starts a new generation; older runs are abandoned, never
    awaited or queued. Triggers fired outside a running event loop only mark
    the session stale, and the next ``refresh`` picks them up.

    Args:
        store: Manuscript to preview.
        engine: Engine that owns the generation counter.
        formatting: Typography and margins.
        geometry: Trim size.
        include_headings: Put chapter headings into the page flow.
    """

    def __init__(
        self,
        store: ManuscriptStore,
        engine: PaginationEngine,
        *,
        formatting: FormattingConfig | None = None,
        geometry: PageGeometry | None = None,
        include_headings: bool = True,
    ) -> None:
        self.store = store
        self.engine = engine
        self.formatting = formatting or FormattingConfig()
        self.geometry = geometry or PageGeometry()
        self.include_headings = include_headings
        self.stale = True
        self.closed = False
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe = store.subscribe(self._on_change)

    @property
    def result(self) -> PaginationResult | None:
        return self.engine.latest

    @property
    def pages(self) -> List[Page]:
        latest = self.engine.latest
        return latest.pages if latest is not None else []

    def set_formatting(self, formatting: FormattingConfig) -> None:
        self.formatting = formatting
        self.schedule()

    def set_geometry(self, geometry: PageGeometry) -> None:
        self.geometry = geometry
        self.schedule()

    def schedule(self) -> "asyncio.Task[PaginationResult | None] | None":
        """Start a pagination run for the current snapshot.

        Returns:
            The task running the new generation, or None when the session is
            closed or no event loop is running.
        """

        if self.closed:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.stale = True
            return None
        token = self.engine.begin()
        flow = manuscript_paragraphs(self.store.snapshot(), include_headings=self.include_headings)
        task = loop.create_task(
            self.engine.paginate(
                flow.paragraphs,
                self.formatting,
                self.geometry,
                token,
                breaks=flow.breaks,
            )
        )
        self.stale = False
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("scheduled pagination generation %d", token.generation)
        return task

    async def refresh(self) -> PaginationResult | None:
        """Start a new run and wait for it.

        Returns:
            The run's result, or None if it was superseded before publishing.
        """

        task = self.schedule()
        if task is None:
            return None
        return await task

    async def settle(self) -> PaginationResult | None:
        """Wait for every scheduled run and return the latest published result."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks))
        return self.engine.latest

    def close(self) -> None:
        """Stop listening and invalidate in-flight runs."""

        if self.closed:
            return
        self.closed = True
        self._unsubscribe()
        self.engine.cancel()

    def _on_change(self, revision: int) -> None:
        logger.debug("manuscript revision %d", revision)
        self.schedule()
