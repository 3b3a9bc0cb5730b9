"""vcfconsensus: convert VCF variant calls plus aligned reads into master/detail consensus files.

Public API is intentionally small; most users should use the CLI:

    vcfconsensus convert --vcf calls.vcf.gz --bam sample.bam --outdir out/ --genome

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.3.0"
