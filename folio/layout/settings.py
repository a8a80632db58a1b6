"""Formatting, page geometry, and pagination tunables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY, TA_LEFT, TA_RIGHT
from reportlab.lib.styles import ParagraphStyle
from reportlab.pdfbase import pdfmetrics

from .constants import DEFAULT_MEASURE_TIMEOUT, EPSILON, POINTS_PER_INCH, POINTS_PER_MM, POINTS_PER_PX

# Templates whose paragraphs are centered and never indented.
CENTERED_TEMPLATES = frozenset({"poetry"})

_ALIGNMENTS = {
    "left": TA_LEFT,
    "center": TA_CENTER,
    "right": TA_RIGHT,
    "justify": TA_JUSTIFY,
}

# Host font families mapped onto the standard PDF base-14 faces.
_FONT_FAMILIES = {
    "times new roman": "Times-Roman",
    "times": "Times-Roman",
    "georgia": "Times-Roman",
    "garamond": "Times-Roman",
    "palatino": "Times-Roman",
    "serif": "Times-Roman",
    "arial": "Helvetica",
    "helvetica": "Helvetica",
    "verdana": "Helvetica",
    "sans-serif": "Helvetica",
    "courier": "Courier",
    "courier new": "Courier",
    "monospace": "Courier",
}


@dataclass(slots=True)
class FormattingConfig:
    """Author-controlled typography.

    Attributes:
        font_family: Family name as chosen by the author.
        font_size: Body size in points.
        line_height: Unitless multiplier of the font size.
        margin_top: Top margin in inches (likewise for the other margins).
        paragraph_indent: First-line indent in em.
        template: Book template name; "poetry" centers text without indent.

    Example:
        >>> FormattingConfig().indent_points
        6.0
    """

    font_family: str = "Times New Roman"
    font_size: float = 12.0
    line_height: float = 1.5
    margin_top: float = 1.0
    margin_bottom: float = 1.0
    margin_left: float = 1.0
    margin_right: float = 1.0
    paragraph_indent: float = 0.5
    template: str = "classic"

    @property
    def leading(self) -> float:
        """Line distance in points."""

        return self.font_size * self.line_height

    @property
    def alignment(self) -> str:
        return "center" if self.template in CENTERED_TEMPLATES else "left"

    @property
    def indent_points(self) -> float:
        """Configured first-line indent in points (0 for centered templates)."""

        if self.template in CENTERED_TEMPLATES or self.paragraph_indent <= 0:
            return 0.0
        return self.paragraph_indent * self.font_size


@dataclass(slots=True, frozen=True)
class PageGeometry:
    """Physical trim size of a page, in inches.

    Example:
        >>> round(PageGeometry.from_millimeters(148, 210).width, 2)
        5.83
    """

    width: float = 8.5
    height: float = 11.0
    name: str = "US Letter"

    @classmethod
    def from_millimeters(cls, width: float, height: float, name: str = "Custom") -> "PageGeometry":
        return cls(width=width * POINTS_PER_MM / POINTS_PER_INCH, height=height * POINTS_PER_MM / POINTS_PER_INCH, name=name)

    @property
    def width_points(self) -> float:
        return self.width * POINTS_PER_INCH

    @property
    def height_points(self) -> float:
        return self.height * POINTS_PER_INCH

    def content_width(self, formatting: FormattingConfig) -> float:
        """Return the text block width inside the margins, in points."""

        return max(
            0.0,
            self.width_points - (formatting.margin_left + formatting.margin_right) * POINTS_PER_INCH,
        )

    def content_height(self, formatting: FormattingConfig) -> float:
        """Return the text block height inside the margins, in points."""

        return max(
            0.0,
            self.height_points
            - (formatting.margin_top + formatting.margin_bottom) * POINTS_PER_INCH
            + EPSILON,
        )


TRIM_SIZES: Dict[str, PageGeometry] = {
    "letter": PageGeometry(8.5, 11.0, "US Letter"),
    "6x9": PageGeometry(6.0, 9.0, "US Trade"),
    "5.5x8.5": PageGeometry(5.5, 8.5, "Digest"),
    "5x8": PageGeometry(5.0, 8.0, "Pocket"),
    "a5": PageGeometry(148 / 25.4, 210 / 25.4, "A5"),
}


def trim_size(key: str) -> PageGeometry:
    """Return a preset geometry by key, or parse ``WxH`` inches / ``WxHmm``.

    Example:
        >>> trim_size("6x9").name
        'US Trade'
        >>> trim_size("7x10").height
        10.0
    """

    normalized = key.strip().lower()
    if normalized in TRIM_SIZES:
        return TRIM_SIZES[normalized]
    in_mm = normalized.endswith("mm")
    if in_mm:
        normalized = normalized[:-2]
    width_text, sep, height_text = normalized.partition("x")
    if not sep:
        raise ValueError(f"Unknown trim size: {key!r}")
    width, height = float(width_text), float(height_text)
    if width <= 0 or height <= 0:
        raise ValueError(f"Trim size must be positive: {key!r}")
    if in_mm:
        return PageGeometry.from_millimeters(width, height)
    return PageGeometry(width, height, "Custom")


@dataclass(slots=True)
class PaginationSettings:
    """Tunables for page breaking.

    Attributes:
        overflow_buffer: Slack (points) subtracted from the usable height so a
            page is closed slightly before the measured content hits the
            bottom. 7.5 pt equals 10 CSS px.
        footer_reservation_em: Footer band for the page number, in em of the
            body font size.
        paragraph_spacing: Space after every paragraph, in points (16 CSS px).
        measure_timeout: Seconds the measured path may take before the
            word-count estimate is used instead; None waits indefinitely.
    """

    overflow_buffer: float = 10 * POINTS_PER_PX
    footer_reservation_em: float = 1.5
    paragraph_spacing: float = 16 * POINTS_PER_PX
    measure_timeout: float | None = DEFAULT_MEASURE_TIMEOUT

    def footer_reservation(self, formatting: FormattingConfig) -> float:
        return self.footer_reservation_em * formatting.font_size

    def break_threshold(self, formatting: FormattingConfig, geometry: PageGeometry) -> float:
        """Return the cumulative height above which a page is closed."""

        return (
            geometry.content_height(formatting)
            - self.footer_reservation(formatting)
            - self.overflow_buffer
        )


def resolve_font(font_family: str) -> str:
    """Return a reportlab font name for an author-facing family name.

    Registered TrueType fonts are used as-is; known families map to the
    base-14 faces; anything else falls back to Times-Roman.

    Example:
        >>> resolve_font("Arial")
        'Helvetica'
    """

    if font_family in pdfmetrics.getRegisteredFontNames():
        return font_family
    if font_family in pdfmetrics.standardFonts:
        return font_family
    return _FONT_FAMILIES.get(font_family.strip().lower(), "Times-Roman")


def alignment_code(alignment: str) -> int:
    return _ALIGNMENTS.get(alignment, TA_LEFT)


def paragraph_style(
    *,
    name: str,
    font_name: str,
    font_size: float,
    leading: float,
    alignment: str,
    first_line_indent: float,
) -> ParagraphStyle:
    """Build the reportlab style used both to measure and to draw a paragraph."""

    return ParagraphStyle(
        name,
        fontName=resolve_font(font_name),
        fontSize=font_size,
        leading=leading,
        alignment=alignment_code(alignment),
        firstLineIndent=first_line_indent,
        leftIndent=0,
        spaceBefore=0,
        spaceAfter=0,
        wordWrap=None,
    )
