"""Word-count page estimate used when measurement is unavailable."""

from __future__ import annotations

import math
from typing import Collection, List, Sequence

from ..models import Page
from .settings import FormattingConfig


def word_count(text: str) -> int:
    """Return the number of whitespace-separated words.

    Example:
        >>> word_count("  It was a dark  night ")
        5
    """

    return len(text.split())


class FallbackEstimator:
    """Deterministic pagination by word count.

    The reference page holds 250 words at 12 pt with a 1.5 line height. These
    are tuning assumptions, not derived values; override the class attributes
    to recalibrate.

    Example:
        >>> FallbackEstimator().words_per_page(FormattingConfig(font_size=12, line_height=1.5))
        250
        >>> FallbackEstimator().words_per_page(FormattingConfig(font_size=10, line_height=2.0))
        225
    """

    reference_words = 250
    reference_font_size = 12.0
    reference_line_height = 1.5

    def words_per_page(self, formatting: FormattingConfig) -> int:
        font_size = formatting.font_size or self.reference_font_size
        line_height = formatting.line_height or self.reference_line_height
        estimate = math.floor(
            (self.reference_words * self.reference_font_size / font_size)
            * (self.reference_line_height / line_height)
        )
        return max(1, estimate)

    def paginate(
        self,
        paragraphs: Sequence[str],
        formatting: FormattingConfig,
        *,
        breaks: Collection[int] = (),
    ) -> List[Page]:
        """Greedily fill pages with whole paragraphs.

        Args:
            paragraphs: Paragraph texts in reading order.
            formatting: Formatting that determines the page capacity.
            breaks: Paragraph indices that must start a new page.
        Returns:
            Pages in order; one empty page when ``paragraphs`` is empty.
        """

        capacity = self.words_per_page(formatting)
        groups: List[List[str]] = []
        current: List[str] = []
        used = 0
        for index, text in enumerate(paragraphs):
            words = word_count(text)
            if current and (index in breaks or used + words > capacity):
                groups.append(current)
                current, used = [], 0
            current.append(text)
            used += words
        if current or not groups:
            groups.append(current)
        return [Page(number=n, paragraphs=group) for n, group in enumerate(groups, start=1)]
