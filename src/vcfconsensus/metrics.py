from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict

from .models import VariantRecord
from .utils import write_json

logger = logging.getLogger(__name__)


@dataclass
class PairMetrics:
    """Counters for one ``<chrom>-<sample>`` file pair."""

    snps: int = 0
    indels: int = 0
    positions: int = 0
    read_depth_total: int = 0

    @property
    def average_read_depth(self) -> int:
        if self.positions == 0:
            return 0
        return self.read_depth_total // self.positions

    def add(self, record: VariantRecord) -> None:
        if record.is_snp:
            self.snps += 1
        if record.is_indel:
            self.indels += 1
        self.positions += 1
        self.read_depth_total += record.read_depth


@dataclass
class ConversionMetrics:
    """Run-level counters for one VCF conversion.

    Attributes
    ----------
    pairs:
        Per file pair counters, in the order pairs were first written.
    categories:
        Classified sample calls per VariantCategory value.
    lines_read:
        Data lines read from the VCF.
    lines_converted:
        Lines whose every sample column was written.
    lines_rejected:
        Lines skipped for a per-line error.
    calls_dropped:
        Sample calls dropped as large structural variants.
    duplicates_resolved:
        Lines emitted as a same-coordinate duplicate resolution.
    variant_lines:
        Lines copied to the variants-only VCF.
    """

    pairs: Dict[str, PairMetrics] = field(default_factory=dict)
    categories: Counter = field(default_factory=Counter)
    lines_read: int = 0
    lines_converted: int = 0
    lines_rejected: int = 0
    calls_dropped: int = 0
    duplicates_resolved: int = 0
    variant_lines: int = 0
    reads_matched: int = 0
    reads_unmatched: int = 0

    def collect(self, key: str, record: VariantRecord) -> None:
        self.pairs.setdefault(key, PairMetrics()).add(record)

    def totals(self) -> Dict[str, int]:
        snps = sum(p.snps for p in self.pairs.values())
        indels = sum(p.indels for p in self.pairs.values())
        positions = sum(p.positions for p in self.pairs.values())
        # Mean of the per-pair averages, as the metrics file has always reported it.
        avg = sum(p.average_read_depth for p in self.pairs.values()) // len(self.pairs) if self.pairs else 0
        return {"snps": snps, "indels": indels, "positions": positions, "average_read_depth": avg}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pairs": {
                key: dict(asdict(p), average_read_depth=p.average_read_depth) for key, p in self.pairs.items()
            },
            "totals": self.totals(),
            "categories": dict(self.categories),
            "lines_read": self.lines_read,
            "lines_converted": self.lines_converted,
            "lines_rejected": self.lines_rejected,
            "calls_dropped": self.calls_dropped,
            "duplicates_resolved": self.duplicates_resolved,
            "variant_lines": self.variant_lines,
            "reads_matched": self.reads_matched,
            "reads_unmatched": self.reads_unmatched,
        }


def format_metrics_text(metrics: ConversionMetrics, vcf_name: str) -> str:
    lines = []
    for key, p in metrics.pairs.items():
        lines.append(
            f"{key}:\tTotal Indels:{p.indels}\tTotal SNPs: {p.snps}"
            f"\t\tTotal Positions: {p.positions}\t\tAverage Read Depth:{p.average_read_depth}"
        )
    t = metrics.totals()
    lines.append("")
    lines.append(
        f"File: {vcf_name}\tTotal Indels:{t['indels']}\tTotal SNPs: {t['snps']}"
        f"\t\tTotal Positions: {t['positions']}\t\tTotal Average Read Depth: {t['average_read_depth']}"
    )
    return "\n".join(lines) + "\n"


def write_metrics(metrics: ConversionMetrics, *, outdir: str | Path, vcf_name: str) -> Dict[str, Path]:
    """Write ``<vcf>.metrics`` and ``<vcf>.metrics.json``."""
    outdir = Path(outdir)
    text_path = outdir / f"{vcf_name}.metrics"
    json_path = outdir / f"{vcf_name}.metrics.json"
    text_path.write_text(format_metrics_text(metrics, vcf_name), encoding="utf-8")
    write_json(json_path, metrics.to_dict())
    logger.info("Wrote metrics: %s", text_path)
    return {"metrics": text_path, "metrics_json": json_path}
