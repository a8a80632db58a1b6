"""Draw paginated pages to a proof PDF."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from reportlab.pdfgen import canvas
from tqdm import tqdm

from ..models import Page
from .constants import POINTS_PER_INCH
from .metrics import ReportLabMetricsProvider, TextStyle
from .settings import FormattingConfig, PageGeometry, PaginationSettings, resolve_font


def render_proof(
    output: Path,
    pages: Sequence[Page],
    formatting: FormattingConfig,
    geometry: PageGeometry,
    *,
    settings: PaginationSettings | None = None,
    metrics: ReportLabMetricsProvider | None = None,
    progress: bool = False,
) -> Path:
    """Render ``pages`` one PDF page each, numbering them in the footer band.

    The first paragraph on every page is drawn without indent, mirroring the
    pagination rule, so the proof matches what was measured.

    Args:
        output: Destination PDF path.
        pages: Pages from a pagination run.
        formatting: Typography and margins used for the run.
        geometry: Trim size used for the run.
        settings: Spacing and footer band; defaults match the engine.
        metrics: Provider whose paragraph builder (and hyphenation) to reuse.
        progress: Show a tqdm progress bar.
    Returns:
        The output path.
    """

    settings = settings or PaginationSettings()
    provider = metrics or ReportLabMetricsProvider()
    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)

    width = geometry.content_width(formatting)
    left = formatting.margin_left * POINTS_PER_INCH
    top = geometry.height_points - formatting.margin_top * POINTS_PER_INCH
    footer_base = formatting.margin_bottom * POINTS_PER_INCH
    indented = TextStyle.from_formatting(formatting, indented=True)
    flush = TextStyle.from_formatting(formatting, indented=False)
    footer_font = resolve_font(formatting.font_family)
    footer_size = max(6.0, formatting.font_size * 0.8)

    pdf = canvas.Canvas(str(output), pagesize=(geometry.width_points, geometry.height_points))
    for page in tqdm(pages, desc="Rendering pages", unit="page", disable=not progress):
        y = top
        for index, text in enumerate(page.paragraphs):
            paragraph = provider.paragraph(text, flush if index == 0 else indented)
            _, height = paragraph.wrap(width, y)
            paragraph.drawOn(pdf, left, y - height)
            y -= height + settings.paragraph_spacing
        pdf.setFont(footer_font, footer_size)
        band = settings.footer_reservation(formatting)
        pdf.drawCentredString(
            left + width / 2,
            footer_base + (band - footer_size) / 2,
            str(page.number),
        )
        pdf.showPage()
    pdf.save()
    return output
