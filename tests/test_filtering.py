import gzip
from pathlib import Path
from typing import List

import pysam
import pytest

from vcfconsensus.errors import MissingInput
from vcfconsensus.filtering import IntervalSet, filter_vcf, is_variant_or_missing, parse_interval, read_intervals

HEADER = [
    "##fileformat=VCFv4.2",
    "##contig=<ID=chr1,length=1000>",
    "##contig=<ID=chr2,length=1000>",
    '##FORMAT=<ID=GT,Number=1,Type=String,Description="Genotype">',
    '##FORMAT=<ID=DP,Number=1,Type=Integer,Description="Read depth">',
    "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\tS1",
]

DATA = [
    "chr1\t5\t.\tA\t.\t50\tPASS\t.\tGT\t0/0",
    "chr1\t15\t.\tA\t.\t50\tPASS\t.\tGT\t0/0",
    "chr1\t40\t.\tA\tC\t50\tPASS\t.\tGT\t0/1",
    "chr1\t50\t.\tA\t.\t50\tPASS\t.\tGT\t./.",
    "chr1\t60\t.\tA\t.\t50\tPASS\t.\tGT\t0/0",
    "chr2\t7\t.\tG\t.\t50\tPASS\t.\tGT\t0/0",
]


def _write_vcf(path: Path, data: List[str]) -> Path:
    path.write_text("\n".join(HEADER + data) + "\n", encoding="utf-8")
    return path


def _data_positions(lines: List[str]) -> List[str]:
    return [ln.split("\t")[1] for ln in lines if ln and not ln.startswith("#")]


def test_interval_set_merges_and_searches() -> None:
    s = IntervalSet([("chr1", 10, 20), ("chr1", 21, 30), ("chr1", 100, 90), ("chr2", 7, 7)])
    assert len(s) == 3
    assert sorted(s.chromosomes()) == ["chr1", "chr2"]
    assert s.contains("chr1", 10)
    assert s.contains("chr1", 30)
    assert not s.contains("chr1", 31)
    assert s.contains("chr1", 95)
    assert s.contains("chr2", 7)
    assert not s.contains("chr3", 7)
    assert not s.contains("chr1", 9)


def test_parse_interval_forms() -> None:
    assert parse_interval("chr1:10-20") == ("chr1", 10, 20)
    assert parse_interval("chr1:15") == ("chr1", 15, 15)
    assert parse_interval("HLA-A*01:01:1-5") == ("HLA-A*01:01", 1, 5)
    with pytest.raises(ValueError):
        parse_interval("chr1")


def test_read_intervals_reports_bad_lines(tmp_path: Path) -> None:
    p = tmp_path / "bad.list"
    p.write_text("# comment\n\nchr1:1-5\nchr1:x-y\n", encoding="utf-8")
    with pytest.raises(ValueError, match="bad.list:4"):
        read_intervals(p)


def test_is_variant_or_missing(tmp_path: Path) -> None:
    vcf = _write_vcf(
        tmp_path / "calls.vcf",
        [
            "chr1\t1\t.\tA\tC\t.\t.\t.\tGT\t0/1",
            "chr1\t2\t.\tA\t.\t.\t.\t.\tGT:DP\t./.:3",
            "chr1\t3\t.\tA\t.\t.\t.\t.\tGT\t0/0",
            "chr1\t4\t.\tA\t.\t.\t.\t.\tDP\t3",
        ],
    )
    with pysam.VariantFile(str(vcf)) as fh:
        flags = [is_variant_or_missing(rec) for rec in fh]
    assert flags == [True, True, False, False]


def test_filter_vcf_keeps_lines_in_intervals(tmp_path: Path) -> None:
    vcf = _write_vcf(tmp_path / "in.vcf", DATA)
    intervals = tmp_path / "targets.list"
    intervals.write_text("chr1:10-20\nchr2:7\n", encoding="utf-8")

    out = tmp_path / "out.vcf"
    stats = filter_vcf(vcf, out, intervals)
    lines = out.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "##fileformat=VCFv4.2"
    assert any(ln.startswith("#CHROM") and ln.endswith("\tS1") for ln in lines)
    assert _data_positions(lines) == ["15", "7"]
    assert (stats.data_lines, stats.kept) == (6, 2)


def test_filter_vcf_with_missing_and_gzip_output(tmp_path: Path) -> None:
    vcf = _write_vcf(tmp_path / "in.vcf", DATA)
    intervals = tmp_path / "targets.list"
    intervals.write_text("chr1:10-20\n", encoding="utf-8")

    out = tmp_path / "out.vcf.gz"
    stats = filter_vcf(vcf, out, intervals, with_missing=True)
    with gzip.open(out, "rt") as fh:
        lines = fh.read().splitlines()
    assert _data_positions(lines) == ["15", "40", "50"]
    assert stats.kept_in_interval == 1
    assert stats.kept_missing == 2


def test_filter_vcf_missing_inputs(tmp_path: Path) -> None:
    with pytest.raises(MissingInput):
        filter_vcf(tmp_path / "nope.vcf", tmp_path / "out.vcf", tmp_path / "nope.list")
