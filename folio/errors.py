"""
Exception hierarchy for manuscript structure and text measurement.
"""

from __future__ import annotations


class FolioError(Exception):
    """Base class for every error raised by folio."""


class StructureError(FolioError):
    """A manuscript mutation was rejected; the structure is unchanged."""


class StructuralReferenceError(StructureError, LookupError):
    """A chapter id, part id, or sequence position does not exist.

    Attributes:
        kind: "chapter", "part", or "index".
        ref: The offending id or index.
    """

    def __init__(self, kind: str, ref: object) -> None:
        super().__init__(f"Unknown {kind}: {ref!r}")
        self.kind = kind
        self.ref = ref


InvalidReference = StructuralReferenceError


class InvalidOperation(StructureError, ValueError):
    """The ids resolve but the requested change is not allowed."""


class MetricsError(FolioError):
    """Text measurement could not produce a height.

    These never escape the pagination engine; they select the fallback path.
    """

    reason = "metrics-error"


class MetricsUnavailable(MetricsError):
    reason = "unavailable"


class MetricsTimeout(MetricsError):
    reason = "timeout"


class MetricsException(MetricsError):
    reason = "exception"
