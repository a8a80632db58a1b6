"""
Text measurement capability used by the pagination engine.

The engine never computes glyph metrics itself. It asks a provider for the
rendered height of one paragraph at a given width and style. Three providers
ship here: a reportlab font-metrics backend (deterministic and headless), a
host-rendering bridge that forwards to whatever renderer the caller attaches,
and a scripted fixed-height double for tests and previews.
"""

from __future__ import annotations

import asyncio
import html as htmllib
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Mapping, Protocol, runtime_checkable

from pyphen import Pyphen
from reportlab.lib.styles import ParagraphStyle
from reportlab.platypus import Paragraph

from ..errors import MetricsException, MetricsUnavailable
from .settings import FormattingConfig, paragraph_style

WORD_RE = re.compile(r"[A-Za-z]{7,}")
SOFT_HYPHEN = "\u00ad"
_MAX_HEIGHT = 10_000


@dataclass(slots=True, frozen=True)
class TextStyle:
    """Style of a paragraph as seen by a measurement provider.

    Attributes:
        font_name: Author-facing family name or registered reportlab font.
        font_size: Size in points.
        leading: Line distance in points.
        alignment: "left", "center", "right", or "justify".
        first_line_indent: Indent of the first line in points.
    """

    font_name: str
    font_size: float
    leading: float
    alignment: str = "left"
    first_line_indent: float = 0.0

    @classmethod
    def from_formatting(cls, formatting: FormattingConfig, *, indented: bool) -> "TextStyle":
        """Return the body style, with or without the paragraph indent.

        Example:
            >>> TextStyle.from_formatting(FormattingConfig(), indented=False).first_line_indent
            0.0
        """

        return cls(
            font_name=formatting.font_family,
            font_size=formatting.font_size,
            leading=formatting.leading,
            alignment=formatting.alignment,
            first_line_indent=formatting.indent_points if indented else 0.0,
        )


@runtime_checkable
class TextMetricsProvider(Protocol):
    """Capability returning the rendered height of a styled text run.

    Heights are points. Results must be deterministic for identical inputs
    during one pagination run.
    """

    def is_available(self) -> bool:
        """Return False while the provider cannot measure yet."""

    async def measure(self, text: str, style: TextStyle, width: float) -> float:
        """Return the height of ``text`` wrapped at ``width`` points."""


def hyphenate_text(text: str, dic: Pyphen) -> str:
    """Insert soft hyphens into long words.

    Example:
        >>> hyphenate_text("everlasting", Pyphen(lang="en_US")).replace(SOFT_HYPHEN, "-")
        'ev-er-last-ing'
    """

    def repl(match: re.Match[str]) -> str:
        return dic.inserted(match.group(0), hyphen=SOFT_HYPHEN)

    return WORD_RE.sub(repl, text)


class ReportLabMetricsProvider:
    """Measure paragraphs with reportlab font metric tables.

    Args:
        hyphenator: Optional Pyphen dictionary; long words get soft hyphens
            before wrapping so measured line breaks match the proof renderer.
    """

    def __init__(self, *, hyphenator: Pyphen | None = None) -> None:
        self.hyphenator = hyphenator
        self._styles: Dict[TextStyle, ParagraphStyle] = {}

    def is_available(self) -> bool:
        return True

    async def measure(self, text: str, style: TextStyle, width: float) -> float:
        return self.measure_now(text, style, width)

    def measure_now(self, text: str, style: TextStyle, width: float) -> float:
        """Synchronous measurement, shared with the proof renderer."""

        _, height = self.paragraph(text, style).wrap(width, _MAX_HEIGHT)
        return height

    def paragraph(self, text: str, style: TextStyle) -> Paragraph:
        """Return the reportlab Paragraph for ``text`` in ``style``."""

        markup = htmllib.escape(text, quote=False)
        if self.hyphenator is not None:
            markup = hyphenate_text(markup, self.hyphenator)
        return Paragraph(markup, self._style_for(style))

    def _style_for(self, style: TextStyle) -> ParagraphStyle:
        cached = self._styles.get(style)
        if cached is None:
            cached = paragraph_style(
                name=f"measure-{len(self._styles)}",
                font_name=style.font_name,
                font_size=style.font_size,
                leading=style.leading,
                alignment=style.alignment,
                first_line_indent=style.first_line_indent,
            )
            self._styles[style] = cached
        return cached


HostMeasure = Callable[[str, TextStyle, float], Awaitable[float]]


class HostRenderingMetricsProvider:
    """Forward measurements to a host renderer (e.g. a browser bridge).

    The provider reports itself unavailable until a host callback is
    attached. Host heights are multiplied by ``scale`` to obtain points, so a
    host reporting CSS pixels uses ``scale=0.75``.
    """

    def __init__(self, host: HostMeasure | None = None, *, scale: float = 1.0) -> None:
        self._host = host
        self.scale = scale

    def attach(self, host: HostMeasure) -> None:
        self._host = host

    def detach(self) -> None:
        self._host = None

    def is_available(self) -> bool:
        return self._host is not None

    async def measure(self, text: str, style: TextStyle, width: float) -> float:
        host = self._host
        if host is None:
            raise MetricsUnavailable("no host renderer attached")
        height = await host(text, style, width / self.scale)
        if height is None or height < 0:
            raise MetricsException(f"host returned invalid height {height!r}")
        return float(height) * self.scale


class FixedHeightMetricsProvider:
    """Scripted provider returning predetermined heights.

    Args:
        height: Height returned for any paragraph without an override.
        heights: Per-text overrides.
        delay: Seconds to sleep inside every call.
        fail_after: Raise on the call after this many successful calls.
        available: Value reported by ``is_available``.
    """

    def __init__(
        self,
        height: float = 14.0,
        *,
        heights: Mapping[str, float] | None = None,
        delay: float = 0.0,
        fail_after: int | None = None,
        available: bool = True,
    ) -> None:
        self.height = height
        self.heights = dict(heights or {})
        self.delay = delay
        self.fail_after = fail_after
        self.available = available
        self.calls: List[tuple[str, TextStyle, float]] = []

    def is_available(self) -> bool:
        return self.available

    async def measure(self, text: str, style: TextStyle, width: float) -> float:
        self.calls.append((text, style, width))
        if self.fail_after is not None and len(self.calls) > self.fail_after:
            raise RuntimeError(f"scripted failure on call {len(self.calls)}")
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.heights.get(text, self.height)
