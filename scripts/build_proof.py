"""
Paginate a manuscript snapshot and render a proof PDF.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pyphen import Pyphen

from folio.ingest import load_manuscript
from folio.layout.constants import DEBUG_PAGINATION, DEFAULT_MEASURE_TIMEOUT
from folio.layout.engine import PaginationEngine, PaginationResult
from folio.layout.metrics import ReportLabMetricsProvider
from folio.layout.proof import render_proof
from folio.layout.settings import FormattingConfig, PaginationSettings, trim_size
from folio.paragraphs import manuscript_paragraphs


def _parse_args() -> argparse.Namespace:
    """Return CLI arguments for the proof builder."""

    defaults = FormattingConfig()
    parser = argparse.ArgumentParser(
        description="Paginate a manuscript JSON snapshot and write a proof PDF."
    )
    parser.add_argument("manuscript", type=Path, help="Manuscript snapshot (JSON).")
    parser.add_argument(
        "--output-file",
        "-o",
        type=Path,
        default=Path("output/proof.pdf"),
        help="File path into which the proof will be saved.",
    )
    parser.add_argument(
        "--trim",
        default="letter",
        help="Trim size preset (letter, 6x9, 5.5x8.5, 5x8, a5) or WxH / WxHmm.",
    )
    parser.add_argument("--font", default=defaults.font_family, help="Font family.")
    parser.add_argument("--font-size", type=float, default=defaults.font_size)
    parser.add_argument("--line-height", type=float, default=defaults.line_height)
    parser.add_argument(
        "--margins",
        type=float,
        nargs=4,
        metavar=("TOP", "RIGHT", "BOTTOM", "LEFT"),
        default=[defaults.margin_top, defaults.margin_right, defaults.margin_bottom, defaults.margin_left],
        help="Margins in inches.",
    )
    parser.add_argument("--indent", type=float, default=defaults.paragraph_indent, help="Indent in em.")
    parser.add_argument("--template", default=defaults.template)
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_MEASURE_TIMEOUT,
        help="Seconds before falling back to the word-count estimate.",
    )
    parser.add_argument(
        "--estimate-only",
        action="store_true",
        help="Skip measurement and use the word-count estimate.",
    )
    parser.add_argument("--no-headings", action="store_true", help="Omit chapter headings.")
    parser.add_argument("--hyphenate", action="store_true", help="Hyphenate long words (en_US).")
    return parser.parse_args()


def _formatting(args: argparse.Namespace) -> FormattingConfig:
    top, right, bottom, left = args.margins
    return FormattingConfig(
        font_family=args.font,
        font_size=args.font_size,
        line_height=args.line_height,
        margin_top=top,
        margin_right=right,
        margin_bottom=bottom,
        margin_left=left,
        paragraph_indent=args.indent,
        template=args.template,
    )


def main() -> None:
    """Write the proof PDF and report the page count.

    Example:
        >>> main()  # doctest: +SKIP
    """

    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if DEBUG_PAGINATION else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    store = load_manuscript(args.manuscript)
    flow = manuscript_paragraphs(store.snapshot(), include_headings=not args.no_headings)
    formatting = _formatting(args)
    geometry = trim_size(args.trim)
    settings = PaginationSettings(measure_timeout=args.timeout)
    metrics = None
    if not args.estimate_only:
        metrics = ReportLabMetricsProvider(hyphenator=Pyphen(lang="en_US") if args.hyphenate else None)
    engine = PaginationEngine(metrics, settings=settings)
    result: PaginationResult | None = asyncio.run(
        engine.paginate(flow.paragraphs, formatting, geometry, breaks=flow.breaks)
    )
    if result is None:
        raise SystemExit("pagination was superseded")
    render_proof(
        args.output_file,
        result.pages,
        formatting,
        geometry,
        settings=settings,
        metrics=metrics,
        progress=True,
    )
    mode = f"estimated ({result.reason})" if result.estimated else "measured"
    print(f"Wrote {len(result.pages)} {mode} pages to {args.output_file}")


if __name__ == "__main__":
    main()
