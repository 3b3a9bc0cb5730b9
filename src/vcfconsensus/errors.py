"""Exception taxonomy for the conversion pipeline.

Two families matter to callers:

- ``LineError`` (and the codec's ``UnknownGenotype``): one VCF line cannot be
  converted. The line is skipped, reported on the ``vcfconsensus.rejected``
  logger, and conversion continues.
- ``FatalConversionError``: the run cannot continue. Raised out of
  ``convert_vcf`` after output streams are closed.
"""

from __future__ import annotations

from typing import Optional, Sequence


class ConversionError(RuntimeError):
    """Base class for all conversion errors."""


class LineError(ConversionError):
    """Raised when a single VCF data line cannot be converted."""

    def __init__(self, message: str, *, fields: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.fields = tuple(fields) if fields is not None else None


class FormatLengthMismatch(LineError):
    """FORMAT column and sample column have a different number of subfields."""


class UnclassifiableLine(LineError):
    """No classification rule accepts the sample's alleles."""


class MalformedGenotype(LineError):
    """GT subfield missing, not parseable, or pointing outside the allele table."""


class ColumnCountMismatch(LineError):
    """Data line width differs from the column header width."""


class RecordEncodingError(LineError):
    """A numeric value does not fit its master record field."""


class MalformedPosition(LineError):
    """POS column is not a non-negative integer."""


class UnknownGenotype(ConversionError, KeyError):
    """Genotype token has no byte code."""

    def __str__(self) -> str:
        return RuntimeError.__str__(self)


class UnknownCode(ConversionError, KeyError):
    """Byte code has no genotype token."""

    def __str__(self) -> str:
        return RuntimeError.__str__(self)


class FatalConversionError(ConversionError):
    """Raised when the whole conversion run must stop."""


class DuplicateSNPPosition(FatalConversionError):
    """Two SNP calls share one coordinate and cannot be reconciled."""


class MissingInput(FatalConversionError):
    """A required input file is missing or unreadable."""


class MalformedHeader(FatalConversionError):
    """VCF header is absent or names no sample columns."""


class CorruptConsensusFile(FatalConversionError):
    """Master/detail bytes violate the record layout."""
