"""Per sample-column classification of VCF data lines.

A line is classified once per sample column. The FORMAT column is parsed
once per line into a ``FormatLayout``; everything else derived from the
line lives in a ``CallContext`` built for one (line, column) pair, so no
state survives between lines or columns.

Classification is an ordered rule list: the first rule whose predicate
accepts the call decides the record. Rule order is part of the format:
deletions are detected before no-calls, and insertions after them.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from .alignment import MISSING_BASES, MISSING_MAPQ, MISSING_QUALITIES, AlignmentCursor
from .errors import FormatLengthMismatch, MalformedGenotype, UnclassifiableLine
from .genotypes import NO_CALL, NULL_CALL, deletion_token, insertion_token
from .models import (
    ALT_COLUMN,
    FIRST_SAMPLE_COLUMN,
    FORMAT_COLUMN,
    QUAL_COLUMN,
    REF_COLUMN,
    AlignedRead,
    VariantRecord,
    VcfLine,
)

logger = logging.getLogger(__name__)

FORMAT_GENOTYPE = "GT"
FORMAT_READ_DEPTH = "DP"
FORMAT_CONSENSUS_QUALITY = "GQ"

MISSING_VALUE = "."
NO_CALL_GENOTYPES = frozenset({"./.", ".|.", "."})
DEFAULT_NUMERIC = "0"

_GT_SPLIT = re.compile(r"[/|]")


class VariantCategory(str, Enum):
    NO_REFERENCE_DATA = "no_reference_data"
    DELETION = "deletion"
    NO_CALL = "no_call"
    INSERTION = "insertion"
    MONOMORPHIC_REFERENCE = "monomorphic_reference"
    LARGE_STRUCTURAL_VARIANT = "large_structural_variant"
    HETEROZYGOUS_SNP = "heterozygous_snp"
    HOMOZYGOUS_ALT_SNP = "homozygous_alt_snp"
    SAME_ALT_AND_REF = "same_alt_and_ref"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_number(text: str, *, rounding: bool) -> int:
    """Best-effort numeric parse; missing or non-numeric text yields 0."""
    try:
        value = float(text)
    except (TypeError, ValueError):
        logger.debug("Non-numeric value %r replaced by %s", text, DEFAULT_NUMERIC)
        return 0
    if not math.isfinite(value):
        return 0
    return round_half_up(value) if rounding else int(value)


@dataclass(frozen=True)
class FormatLayout:
    """Subfield indices of one line's FORMAT column."""

    keys: Tuple[str, ...]
    genotype_index: Optional[int]
    read_depth_index: Optional[int]
    consensus_quality_index: Optional[int]
    has_snp_quality: bool

    @classmethod
    def parse(cls, fields: Sequence[str]) -> "FormatLayout":
        keys = tuple(fields[FORMAT_COLUMN].split(":"))
        if not keys or keys == ("",):
            raise FormatLengthMismatch("FORMAT column is empty", fields=fields)

        def index_of(key: str) -> Optional[int]:
            return keys.index(key) if key in keys else None

        qual = fields[QUAL_COLUMN]
        has_snp_quality = False
        if qual != MISSING_VALUE:
            try:
                float(qual)
                has_snp_quality = True
            except ValueError:
                has_snp_quality = False

        return cls(
            keys=keys,
            genotype_index=index_of(FORMAT_GENOTYPE),
            read_depth_index=index_of(FORMAT_READ_DEPTH),
            consensus_quality_index=index_of(FORMAT_CONSENSUS_QUALITY),
            has_snp_quality=has_snp_quality,
        )


def parse_zygosity(genotype: str) -> Tuple[Tuple[int, int], bool]:
    """Return ``((i, j), no_call)`` for a GT subfield value.

    ``./.`` and ``.`` map to ``(0, 0)`` with ``no_call`` set. A haploid call
    ``i`` is read as ``(i, i)``; extra ploidy beyond two is ignored.
    """
    if genotype in NO_CALL_GENOTYPES:
        return (0, 0), True
    parts = _GT_SPLIT.split(genotype)
    try:
        indices = [int(p) for p in parts[:2]]
    except ValueError:
        raise MalformedGenotype(f"Cannot parse GT value {genotype!r}") from None
    if len(indices) == 1:
        indices.append(indices[0])
    return (indices[0], indices[1]), False


@dataclass(frozen=True)
class CallContext:
    """Everything the rules need for one (line, sample column) pair."""

    line: VcfLine
    layout: FormatLayout
    column: int
    values: Tuple[str, ...]
    alleles: Tuple[str, ...]
    zygosity: Tuple[int, int]
    no_call_sample: bool

    @classmethod
    def build(cls, line: VcfLine, layout: FormatLayout, column: int) -> "CallContext":
        fields = line.fields
        values = tuple(fields[FIRST_SAMPLE_COLUMN + column].split(":"))
        if len(values) != len(layout.keys):
            raise FormatLengthMismatch(
                f"FORMAT has {len(layout.keys)} subfields but sample column {column} has {len(values)}",
                fields=fields,
            )
        if layout.genotype_index is None:
            raise MalformedGenotype("FORMAT column has no GT subfield", fields=fields)

        alleles = (fields[REF_COLUMN],) + tuple(fields[ALT_COLUMN].split(","))
        zygosity, no_call = parse_zygosity(values[layout.genotype_index])
        if max(zygosity) >= len(alleles) or min(zygosity) < 0:
            raise MalformedGenotype(
                f"GT {values[layout.genotype_index]!r} points outside {len(alleles)} alleles",
                fields=fields,
            )
        return cls(
            line=line,
            layout=layout,
            column=column,
            values=values,
            alleles=alleles,
            zygosity=zygosity,
            no_call_sample=no_call,
        )

    @property
    def ref(self) -> str:
        return self.line.fields[REF_COLUMN]

    @property
    def alt(self) -> str:
        return self.line.fields[ALT_COLUMN]

    @property
    def first(self) -> str:
        return self.alleles[self.zygosity[0]]

    @property
    def second(self) -> str:
        return self.alleles[self.zygosity[1]]

    def subfield(self, index: Optional[int]) -> str:
        if self.no_call_sample or index is None:
            return DEFAULT_NUMERIC
        return self.values[index]

    @property
    def consensus_quality(self) -> int:
        return parse_number(self.subfield(self.layout.consensus_quality_index), rounding=True)

    @property
    def read_depth(self) -> int:
        return parse_number(self.subfield(self.layout.read_depth_index), rounding=False)

    @property
    def snp_quality(self) -> int:
        return parse_number(self.line.fields[QUAL_COLUMN], rounding=True)


# -----------------
# Rule predicates
# -----------------

def has_inconsistent_data(ctx: CallContext) -> bool:
    """Placeholder for calls whose alleles contradict their genotype; never triggers."""
    return False


def has_no_reference_data(ctx: CallContext) -> bool:
    return ctx.ref == MISSING_VALUE


def has_deletion(ctx: CallContext) -> bool:
    ref_len = len(ctx.alleles[0])
    return ref_len > len(ctx.first) or ref_len > len(ctx.second)


def has_no_call(ctx: CallContext) -> bool:
    if ctx.alleles[0] == MISSING_VALUE and ctx.alleles[1] == MISSING_VALUE:
        return True
    return ctx.no_call_sample


def has_insertion(ctx: CallContext) -> bool:
    ref_len = len(ctx.alleles[0])
    return ref_len < len(ctx.first) or ref_len < len(ctx.second)


def has_monomorphic_reference(ctx: CallContext) -> bool:
    i, j = ctx.zygosity
    return i == j == 0 and len(ctx.first) == len(ctx.second) and ctx.alt == MISSING_VALUE


def has_large_structural_variant(ctx: CallContext) -> bool:
    """Symbolic structural variants (``<DEL>`` etc.) are not converted; never triggers."""
    return False


def has_single_heterozygous_snp(ctx: CallContext) -> bool:
    i, j = ctx.zygosity
    return i != j and len(ctx.alleles[0]) == 1 and len(ctx.first) == len(ctx.second)


def has_single_homozygous_alt_snp(ctx: CallContext) -> bool:
    i, j = ctx.zygosity
    return i == j == 1 and len(ctx.alleles[0]) == 1 and len(ctx.first) == len(ctx.second)


def _always(ctx: CallContext) -> bool:
    return True


RULES: Tuple[Tuple[VariantCategory, Callable[[CallContext], bool]], ...] = (
    (VariantCategory.NO_REFERENCE_DATA, has_no_reference_data),
    (VariantCategory.DELETION, has_deletion),
    (VariantCategory.NO_CALL, has_no_call),
    (VariantCategory.INSERTION, has_insertion),
    (VariantCategory.MONOMORPHIC_REFERENCE, has_monomorphic_reference),
    (VariantCategory.LARGE_STRUCTURAL_VARIANT, has_large_structural_variant),
    (VariantCategory.HETEROZYGOUS_SNP, has_single_heterozygous_snp),
    (VariantCategory.HOMOZYGOUS_ALT_SNP, has_single_homozygous_alt_snp),
    (VariantCategory.SAME_ALT_AND_REF, _always),
)


def categorize(ctx: CallContext) -> VariantCategory:
    if has_inconsistent_data(ctx):
        raise UnclassifiableLine(
            "Mismatched or nonsensical call (monomorphic site with a 0/1 genotype?)",
            fields=ctx.line.fields,
        )
    for category, predicate in RULES:
        if predicate(ctx):
            return category
    raise AssertionError("rule list must end with a catch-all")


def same_alt_and_ref_genotype(ctx: CallContext) -> str:
    i, j = ctx.zygosity
    if i == j == 0 and len(ctx.alleles[0]) == 1:
        return ctx.alleles[0]
    if i == j and len(ctx.first) == len(ctx.second):
        return ctx.first
    raise UnclassifiableLine("Don't know how to handle this line", fields=ctx.line.fields)


@dataclass(frozen=True)
class Classification:
    category: VariantCategory
    record: Optional[VariantRecord]  # None for categories that are dropped


def build_record(
    ctx: CallContext,
    category: VariantCategory,
    read: Optional[AlignedRead],
) -> Optional[VariantRecord]:
    """Build the VariantRecord for an already categorized call."""
    flags = {}
    reference_genotype = ctx.ref

    if category is VariantCategory.NO_REFERENCE_DATA:
        genotype = NULL_CALL
        flags["has_no_reference_data"] = True
    elif category is VariantCategory.DELETION:
        shorter = ctx.second if len(ctx.second) < len(ctx.first) else ctx.first
        genotype = deletion_token(shorter)
        flags["is_indel"] = True
    elif category is VariantCategory.NO_CALL:
        genotype = NO_CALL
        flags["is_no_call"] = True
    elif category is VariantCategory.INSERTION:
        longer = ctx.second if len(ctx.second) > len(ctx.first) else ctx.first
        genotype = insertion_token(longer)
        flags["is_indel"] = True
    elif category is VariantCategory.MONOMORPHIC_REFERENCE:
        genotype = ctx.ref
    elif category is VariantCategory.LARGE_STRUCTURAL_VARIANT:
        return None
    elif category in (VariantCategory.HETEROZYGOUS_SNP, VariantCategory.HOMOZYGOUS_ALT_SNP):
        genotype = ctx.alt
        reference_genotype = f"{ctx.ref} {ctx.alt}"
        flags["is_snp"] = True
    else:
        genotype = same_alt_and_ref_genotype(ctx)

    return VariantRecord(
        column=ctx.column,
        chrom=ctx.line.chrom,
        position=ctx.line.pos,
        genotype=genotype,
        reference_genotype=reference_genotype,
        consensus_quality=ctx.consensus_quality,
        snp_quality=ctx.snp_quality,
        mapping_quality=read.mapq if read is not None else MISSING_MAPQ,
        read_depth=ctx.read_depth,
        read_bases=read.bases if read is not None else MISSING_BASES,
        read_qualities=read.qualities if read is not None else MISSING_QUALITIES,
        is_reverse_strand=read.is_reverse if read is not None else False,
        **flags,
    )


class VariantClassifier:
    """Classify every sample column of a VCF line.

    Owns the AlignmentCursor for its file: the cursor advances exactly once
    per classified line, so lines must be fed in ascending position order.
    """

    def __init__(self, cursor: AlignmentCursor, sample_count: int) -> None:
        self.cursor = cursor
        self.sample_count = sample_count

    def classify_line(self, line: VcfLine) -> List[Classification]:
        read = self.cursor.advance_to(line.chrom, line.pos)
        layout = FormatLayout.parse(line.fields)
        contexts = [CallContext.build(line, layout, column) for column in range(self.sample_count)]

        results: List[Classification] = []
        for ctx in contexts:
            category = categorize(ctx)
            results.append(Classification(category=category, record=build_record(ctx, category, read)))
        return results
