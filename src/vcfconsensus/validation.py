from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Sequence

import pysam

from .errors import MissingInput

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"


def check_input_file(path: str | Path, *, kind: str) -> Path:
    """Raise MissingInput unless ``path`` is an existing regular file."""
    p = Path(path)
    if not p.exists():
        raise MissingInput(f"{kind} not found: {p}")
    if not p.is_file():
        raise MissingInput(f"{kind} is not a regular file: {p}")
    return p


def bam_contigs(bam_path: str | Path) -> List[str]:
    """Return the reference names from a BAM header.

    Also warns when the header does not declare coordinate sort order; the
    read cursor assumes sorted input and does not check it.
    """
    try:
        with pysam.AlignmentFile(str(bam_path), "rb") as bam:
            header = bam.header.to_dict()
            contigs = list(bam.references)
    except (OSError, ValueError) as e:
        raise MissingInput(f"Cannot read BAM {bam_path}: {e}") from e

    sort_order = header.get("HD", {}).get("SO")
    if sort_order != "coordinate":
        logger.warning("BAM %s does not declare SO:coordinate (found %r); reads must be coordinate sorted", bam_path, sort_order)
    return contigs


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.lower().startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return "ucsc"
    return "ensembl"


def warn_contig_style_mismatch(vcf_contigs: Sequence[str], bam_contigs_: Sequence[str]) -> bool:
    """Log a warning when VCF and BAM use different contig naming styles.

    Returns True when a mismatch was detected. Chromosome names are compared
    ignoring case only, so ``chr1`` and ``1`` never join.
    """
    vcf_style = detect_contig_style(vcf_contigs)
    bam_style = detect_contig_style(bam_contigs_)
    if "unknown" in (vcf_style, bam_style) or vcf_style == bam_style:
        return False
    logger.warning(
        "VCF contigs look %s-style but BAM contigs look %s-style; no reads will be joined", vcf_style, bam_style
    )
    return True
