from pathlib import Path

from vcfconsensus.alignment import AlignmentCursor, iter_aligned_reads
from vcfconsensus.models import AlignedRead
from vcfconsensus.toy_data import make_toy_data


def make_read(chrom: str = "1", start: int = 100, end: int = 150, *, mapq: int = 60) -> AlignedRead:
    n = end - start + 1
    return AlignedRead(chrom=chrom, start=start, end=end, mapq=mapq, bases="A" * n, qualities="I" * n, is_reverse=False)


def test_query_inside_span_keeps_read() -> None:
    read = make_read()
    cursor = AlignmentCursor([read])
    assert cursor.advance_to("1", 120) is read
    assert cursor.matched == 1
    assert cursor.unmatched == 0
    assert cursor.advance_to("1", 150) is read
    assert cursor.matched == 2


def test_query_past_span_advances() -> None:
    first = make_read(start=100, end=150)
    second = make_read(start=300, end=350, mapq=20)
    cursor = AlignmentCursor([first, second])
    assert cursor.advance_to("1", 120) is first
    got = cursor.advance_to("1", 200)
    assert got is second
    assert cursor.unmatched == 1
    assert cursor.matched == 1


def test_query_before_span_keeps_read_as_unmatched() -> None:
    read = make_read(start=100, end=150)
    cursor = AlignmentCursor([read])
    assert cursor.advance_to("1", 50) is read
    assert cursor.unmatched == 1
    assert cursor.advance_to("1", 120) is read
    assert cursor.matched == 1


def test_chromosome_change_advances_and_ignores_case() -> None:
    r1 = make_read(chrom="chr1")
    r2 = make_read(chrom="chr2", start=10, end=60)
    cursor = AlignmentCursor([r1, r2])
    assert cursor.advance_to("CHR1", 120) is r1
    assert cursor.advance_to("chr2", 20) is r2
    assert cursor.unmatched == 1
    assert cursor.advance_to("chr2", 30) is r2
    assert cursor.matched == 2


def test_exhausted_source_starves_later_queries() -> None:
    cursor = AlignmentCursor([make_read()])
    assert cursor.advance_to("1", 200) is None
    assert cursor.advance_to("1", 120) is None
    assert cursor.current is None

    empty = AlignmentCursor([])
    assert empty.advance_to("1", 1) is None
    assert empty.matched == 0 and empty.unmatched == 0


def test_iter_aligned_reads_uses_one_based_inclusive_spans(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    reads = list(iter_aligned_reads(toy["bam"]))
    assert [r.start for r in reads] == [11, 101, 201]
    assert [r.end for r in reads] == [60, 150, 250]
    assert [r.mapq for r in reads] == [60, 40, 30]
    assert reads[0].qualities == "I" * 50
    assert len(reads[0].bases) == 50
    assert [r.is_reverse for r in reads] == [False, False, True]
