"""Interval filter for VCF files.

Keeps the header and the records whose position falls inside an
interval of its chromosome. Interval list lines are ``chrom:start-end`` or
``chrom:pos`` (closed, 1-based); blank lines and ``#`` comments are ignored.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

import pysam

from .utils import open_textmaybe_gzip
from .validation import check_input_file

logger = logging.getLogger(__name__)


class IntervalSet:
    """Merged, sorted closed intervals per chromosome."""

    def __init__(self, intervals: Iterable[Tuple[str, int, int]] = ()) -> None:
        raw: Dict[str, List[Tuple[int, int]]] = {}
        for chrom, start, end in intervals:
            if end < start:
                start, end = end, start
            raw.setdefault(chrom, []).append((start, end))

        self._starts: Dict[str, List[int]] = {}
        self._ends: Dict[str, List[int]] = {}
        for chrom, spans in raw.items():
            merged: List[List[int]] = []
            for start, end in sorted(spans):
                if merged and start <= merged[-1][1] + 1:
                    merged[-1][1] = max(merged[-1][1], end)
                else:
                    merged.append([start, end])
            self._starts[chrom] = [s for s, _ in merged]
            self._ends[chrom] = [e for _, e in merged]

    def __len__(self) -> int:
        return sum(len(v) for v in self._starts.values())

    def chromosomes(self) -> List[str]:
        return list(self._starts)

    def contains(self, chrom: str, pos: int) -> bool:
        starts = self._starts.get(chrom)
        if not starts:
            return False
        i = bisect.bisect_right(starts, pos) - 1
        return i >= 0 and pos <= self._ends[chrom][i]


def parse_interval(text: str) -> Tuple[str, int, int]:
    chrom, sep, span = text.strip().rpartition(":")
    if not sep or not chrom:
        raise ValueError(f"Interval must look like chrom:start-end or chrom:pos, got {text!r}")
    start_s, dash, end_s = span.partition("-")
    start = int(start_s)
    end = int(end_s) if dash else start
    return chrom, start, end


def read_intervals(path: str | Path) -> IntervalSet:
    intervals = []
    with open_textmaybe_gzip(path, "rt") as fh:
        for lineno, line in enumerate(fh, start=1):
            text = line.strip()
            if not text or text.startswith("#"):
                continue
            try:
                intervals.append(parse_interval(text))
            except ValueError as e:
                raise ValueError(f"{path}:{lineno}: {e}") from None
    return IntervalSet(intervals)


def is_variant_or_missing(rec: pysam.VariantRecord) -> bool:
    """True if the record has an ALT allele or the first sample's GT has a missing allele."""
    if rec.alts:
        return True
    if len(rec.samples) == 0 or "GT" not in rec.format:
        return False
    gt = rec.samples[0]["GT"]
    return gt is None or any(allele is None for allele in gt)


@dataclass
class FilterStats:
    data_lines: int = 0
    kept_in_interval: int = 0
    kept_missing: int = 0

    @property
    def kept(self) -> int:
        return self.kept_in_interval + self.kept_missing


def filter_vcf(
    input_path: str | Path,
    output_path: str | Path,
    intervals_path: str | Path,
    *,
    with_missing: bool = False,
) -> FilterStats:
    """Write the records of ``input_path`` that fall inside the listed intervals.

    With ``with_missing``, records outside every interval are still kept
    when they carry an ALT allele or a missing first-sample genotype. A
    ``.gz`` output path is written bgzip-compressed.
    """
    check_input_file(input_path, kind="VCF")
    check_input_file(intervals_path, kind="Interval list")

    intervals = read_intervals(intervals_path)
    logger.info("Filtering %s against %d intervals on %d chromosomes", input_path, len(intervals), len(intervals.chromosomes()))

    mode = "wz" if str(output_path).endswith(".gz") else "w"
    stats = FilterStats()
    with pysam.VariantFile(str(input_path)) as vcf_in, pysam.VariantFile(
        str(output_path), mode, header=vcf_in.header
    ) as vcf_out:
        # Sequential iteration; no index is required.
        for rec in vcf_in:
            stats.data_lines += 1
            if intervals.contains(rec.chrom, rec.pos):
                stats.kept_in_interval += 1
                vcf_out.write(rec)
            elif with_missing and is_variant_or_missing(rec):
                stats.kept_missing += 1
                vcf_out.write(rec)

    logger.info("Kept %d of %d data lines", stats.kept, stats.data_lines)
    return stats
