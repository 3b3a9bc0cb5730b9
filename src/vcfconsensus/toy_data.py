from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import pysam

from .utils import ensure_outdir, write_json

TOY_SAMPLES = ("S1", "S2")

# Data lines of the toy VCF; one of each classification path plus a
# SNP/indel pair sharing chr1:110.
_TOY_LINES = [
    "chr1\t20\t.\tA\t.\t50\tPASS\t.\tGT:DP:GQ\t0/0:30:99\t0/0:28:90",
    "chr1\t30\t.\tC\tT\t80.4\tPASS\t.\tGT:DP:GQ\t0/1:25:70.6\t1/1:22:60",
    "chr1\t45\t.\tG\tGA\t70\tPASS\t.\tGT:DP:GQ\t0/1:20:65\t0/0:18:55",
    "chr1\t110\t.\tT\tC\t60\tPASS\t.\tGT:DP:GQ\t0/1:40:80\t0/0:35:75",
    "chr1\t110\t.\tTA\tT\t55\tPASS\t.\tGT:DP:GQ\t0/1:38:70\t./.:.:.",
    "chr1\t130\t.\t.\t.\t.\tPASS\t.\tGT:DP:GQ\t0/0:10:20\t0/0:12:22",
    "chr1\t140\t.\tA\t.\t.\tPASS\t.\tGT:DP:GQ\t./.:.:.\t./.:.:.",
    "chr1\t220\t.\tG\tA\t90\tPASS\t.\tGT:DP:GQ\t1/1:45:99\t0/1:44:97",
    "chr2\t15\t.\tC\t.\t40\tPASS\t.\tGT:DP:GQ\t0/0:12:50\t0/0:10:45",
]


def _make_read(
    name: str,
    start0: int,
    seq: str,
    *,
    mapq: int = 60,
    reverse: bool = False,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = 16 if reverse else 0
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = mapq
    a.cigartuples = [(0, len(seq))]
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    return a


def _vcf_header(contigs: Dict[str, int]) -> str:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    for contig, length in contigs.items():
        header.contigs.add(contig, length=length)
    header.formats.add("GT", number=1, type="String", description="Genotype")
    header.formats.add("DP", number=1, type="Integer", description="Read depth")
    header.formats.add("GQ", number=1, type="Float", description="Genotype quality")
    for sample in TOY_SAMPLES:
        header.add_sample(sample)
    return str(header).rstrip("\n") + "\n"


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny BAM and VCF pair suitable for quick demos/tests.

    The outputs include:
    - toy.bam (+ .bai), three 50 bp reads on chr1
    - toy.vcf, two samples, nine data lines

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    ref_seq = ("ACGT" * 100)[:300]
    contigs = {"chr1": len(ref_seq), "chr2": 100}

    bam_path = outdir_p / "toy.bam"
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": name, "LN": length} for name, length in contigs.items()],
    }

    reads: List[pysam.AlignedSegment] = [
        _make_read("r1", 10, ref_seq[10:60], mapq=60),
        _make_read("r2", 100, ref_seq[100:150], mapq=40),
        _make_read("r3", 200, ref_seq[200:250], mapq=30, reverse=True),
    ]

    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)

    pysam.index(str(bam_path))

    vcf_path = outdir_p / "toy.vcf"
    vcf_path.write_text(_vcf_header(contigs) + "\n".join(_TOY_LINES) + "\n", encoding="utf-8")

    summary = {
        "bam": str(bam_path),
        "vcf": str(vcf_path),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
