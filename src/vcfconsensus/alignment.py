from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional

import pysam

from .models import AlignedRead

logger = logging.getLogger(__name__)

# Values reported when no aligned read is available for a position.
MISSING_MAPQ = 0
MISSING_BASES = "0"
MISSING_QUALITIES = "0"


def aligned_read_from_segment(read: pysam.AlignedSegment) -> AlignedRead:
    """Convert a mapped pysam segment into a 1-based inclusive AlignedRead."""
    quals = read.query_qualities
    return AlignedRead(
        chrom=str(read.reference_name),
        start=int(read.reference_start) + 1,
        end=int(read.reference_end),
        mapq=int(read.mapping_quality),
        bases=read.query_sequence or "",
        qualities=pysam.array_to_qualitystring(quals) if quals is not None else "*",
        is_reverse=bool(read.is_reverse),
    )


def iter_aligned_reads(bam_path: str) -> Iterator[AlignedRead]:
    """Yield mapped reads from a coordinate-sorted BAM in file order.

    The BAM does not need an index; reads are streamed with ``until_eof``.
    Unmapped reads are skipped.
    """
    with pysam.AlignmentFile(bam_path, "rb") as bam:
        for read in bam.fetch(until_eof=True):
            if read.is_unmapped or read.reference_end is None:
                continue
            yield aligned_read_from_segment(read)


class AlignmentCursor:
    """Single forward cursor over coordinate-sorted aligned reads.

    Queries must arrive in the same ascending (chromosome, position) order as
    the reads. That ordering is assumed, not checked: out-of-order queries
    silently join against the wrong read.
    """

    def __init__(self, reads: Iterable[AlignedRead]) -> None:
        self._reads = iter(reads)
        self._current: Optional[AlignedRead] = None
        self._exhausted = False
        self.matched = 0
        self.unmatched = 0

    @property
    def current(self) -> Optional[AlignedRead]:
        return self._current

    def _pull(self) -> Optional[AlignedRead]:
        if self._exhausted:
            return None
        read = next(self._reads, None)
        if read is None:
            self._exhausted = True
            logger.debug("Aligned-read source exhausted")
        return read

    def advance_to(self, chrom: str, position: int) -> Optional[AlignedRead]:
        """Return the read joined to ``(chrom, position)``, or None when starved."""
        if self._current is None:
            self._current = self._pull()
            if self._current is None:
                return None

        read = self._current
        keep = False
        if read.chrom.lower() == chrom.lower():
            if read.start <= position <= read.end:
                keep = True
                self.matched += 1
            elif position > read.end:
                self.unmatched += 1
            else:
                # Cursor is ahead of the query; a later query may still fall in range.
                keep = True
                self.unmatched += 1
        else:
            self.unmatched += 1

        if keep:
            return read
        self._current = self._pull()
        return self._current

    def summary(self) -> str:
        return f"Matched: {self.matched} Unmatched: {self.unmatched}"
