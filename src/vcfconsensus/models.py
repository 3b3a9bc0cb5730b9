from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

# VCF column indices (0-based) of a tab-split data line.
CHROM_COLUMN = 0
POS_COLUMN = 1
REF_COLUMN = 3
ALT_COLUMN = 4
QUAL_COLUMN = 5
FORMAT_COLUMN = 8
FIRST_SAMPLE_COLUMN = 9


@dataclass(frozen=True)
class VcfLine:
    """One tab-split VCF data line.

    Attributes
    ----------
    fields:
        Immutable tuple of the raw tab-delimited fields.
    ordinal:
        0-based index of the line among the data lines of its file. The
        synthetic window sentinel uses -1.
    """

    fields: Tuple[str, ...]
    ordinal: int

    @classmethod
    def parse(cls, text: str, ordinal: int) -> "VcfLine":
        return cls(fields=tuple(text.rstrip("\r\n").split("\t")), ordinal=ordinal)

    @classmethod
    def sentinel(cls) -> "VcfLine":
        return cls(fields=("", "0"), ordinal=-1)

    @property
    def chrom(self) -> str:
        return self.fields[CHROM_COLUMN]

    @property
    def pos(self) -> int:
        return int(self.fields[POS_COLUMN])

    @property
    def position(self) -> Tuple[str, int]:
        return (self.chrom, self.pos)

    @property
    def is_sentinel(self) -> bool:
        return self.ordinal < 0

    @property
    def text(self) -> str:
        return "\t".join(self.fields)


@dataclass(frozen=True)
class AlignedRead:
    """Snapshot of the aligned-read fields the consensus needs.

    Coordinates are 1-based inclusive, matching VCF POS.
    """

    chrom: str
    start: int
    end: int
    mapq: int
    bases: str
    qualities: str
    is_reverse: bool


@dataclass(frozen=True)
class VariantRecord:
    """Per (VCF line, sample column) classification result."""

    column: int
    chrom: str
    position: int
    genotype: str
    reference_genotype: str
    consensus_quality: int
    snp_quality: int
    mapping_quality: int
    read_depth: int
    read_bases: str
    read_qualities: str
    is_indel: bool = False
    is_snp: bool = False
    is_reverse_strand: bool = False
    is_no_call: bool = False
    has_no_reference_data: bool = False

    @property
    def is_variant(self) -> bool:
        return self.is_indel or self.is_snp or self.is_no_call


@dataclass(frozen=True)
class MasterRecord:
    """Decoded fixed-width master record."""

    genotype_code: int
    consensus_quality: int
    snp_quality: int
    mapping_quality: int
    read_depth: int
    detail_pointer: int
    coordinate: int = -1  # exome layout only

    @property
    def has_detail(self) -> bool:
        return self.detail_pointer >= 0
