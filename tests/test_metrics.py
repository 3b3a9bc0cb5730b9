import json
from pathlib import Path

from vcfconsensus.metrics import ConversionMetrics, PairMetrics, format_metrics_text, write_metrics
from vcfconsensus.models import VariantRecord


def rec(depth: int, **flags) -> VariantRecord:
    return VariantRecord(
        column=0,
        chrom="chr1",
        position=1,
        genotype="A",
        reference_genotype="A",
        consensus_quality=0,
        snp_quality=0,
        mapping_quality=0,
        read_depth=depth,
        read_bases="0",
        read_qualities="0",
        **flags,
    )


def test_pair_metrics_counts_and_integer_average() -> None:
    p = PairMetrics()
    assert p.average_read_depth == 0
    p.add(rec(10, is_snp=True))
    p.add(rec(11, is_indel=True))
    p.add(rec(0, is_no_call=True))
    assert (p.snps, p.indels, p.positions, p.read_depth_total) == (1, 1, 3, 21)
    assert p.average_read_depth == 7


def test_totals_average_per_pair_averages() -> None:
    m = ConversionMetrics()
    m.collect("chr1-S1", rec(10))
    m.collect("chr1-S1", rec(20, is_snp=True))
    m.collect("chr1-S2", rec(5, is_indel=True))
    t = m.totals()
    assert t == {"snps": 1, "indels": 1, "positions": 3, "average_read_depth": 10}
    assert ConversionMetrics().totals()["average_read_depth"] == 0


def test_metrics_text_format() -> None:
    m = ConversionMetrics()
    m.collect("chr1-S1", rec(10, is_snp=True))
    text = format_metrics_text(m, "x.vcf")
    lines = text.splitlines()
    assert lines[0] == "chr1-S1:\tTotal Indels:0\tTotal SNPs: 1\t\tTotal Positions: 1\t\tAverage Read Depth:10"
    assert lines[1] == ""
    assert lines[2] == (
        "File: x.vcf\tTotal Indels:0\tTotal SNPs: 1\t\tTotal Positions: 1\t\tTotal Average Read Depth: 10"
    )


def test_write_metrics_files(tmp_path: Path) -> None:
    m = ConversionMetrics(lines_read=3, lines_converted=2, lines_rejected=1)
    m.categories["insertion"] += 2
    m.collect("chr2-S1", rec(4, is_indel=True))
    paths = write_metrics(m, outdir=tmp_path, vcf_name="x.vcf")
    assert paths["metrics"] == tmp_path / "x.vcf.metrics"
    payload = json.loads(paths["metrics_json"].read_text(encoding="utf-8"))
    assert payload["lines_rejected"] == 1
    assert payload["categories"] == {"insertion": 2}
    assert payload["pairs"]["chr2-S1"]["average_read_depth"] == 4
    assert payload["totals"]["indels"] == 1
