"""Public pagination helpers."""

from __future__ import annotations

from .engine import (
    GenerationCounter,
    GenerationToken,
    PaginationEngine,
    PaginationResult,
    paginate_paragraphs,
)
from .fallback import FallbackEstimator
from .metrics import (
    FixedHeightMetricsProvider,
    HostRenderingMetricsProvider,
    ReportLabMetricsProvider,
    TextMetricsProvider,
    TextStyle,
)
from .settings import FormattingConfig, PageGeometry, PaginationSettings, trim_size

__all__ = [
    "FallbackEstimator",
    "FixedHeightMetricsProvider",
    "FormattingConfig",
    "GenerationCounter",
    "GenerationToken",
    "HostRenderingMetricsProvider",
    "PageGeometry",
    "PaginationEngine",
    "PaginationResult",
    "PaginationSettings",
    "ReportLabMetricsProvider",
    "TextMetricsProvider",
    "TextStyle",
    "paginate_paragraphs",
    "trim_size",
]
