"""Shared constants for page layout and measurement."""

from __future__ import annotations

import os

POINTS_PER_INCH = 72.0
POINTS_PER_MM = POINTS_PER_INCH / 25.4
# CSS reference pixel: 96 per inch.
POINTS_PER_PX = POINTS_PER_INCH / 96.0
EPSILON = 1e-4
DEBUG_PAGINATION = os.getenv("DEBUG_PAGINATION", "0") not in {
    "",
    "0",
    "false",
    "False",
}


def _env_timeout(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    if raw.strip().lower() in {"none", "off"}:
        return None
    return float(raw)


DEFAULT_MEASURE_TIMEOUT = _env_timeout("FOLIO_MEASURE_TIMEOUT", 2.0)
