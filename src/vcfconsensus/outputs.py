"""Output file bookkeeping for one VCF conversion.

One master/detail pair is opened lazily per (chromosome, sample) the first
time a record is written for it. All streams stay open until ``close``.
"""

from __future__ import annotations

import bz2
import gzip
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, List, Optional, TextIO

from . import __version__
from .consensus import ConsensusCodec, ConsensusWriter
from .utils import ensure_outdir, sanitize_filename

logger = logging.getLogger(__name__)

POSITION_MAP_HEADER = f"vcfconsensus {__version__}"


def pair_key(chrom: str, sample: str) -> str:
    return sanitize_filename(f"{chrom}-{sample}")


@dataclass
class FilePair:
    """Open streams and paths of one (chromosome, sample) pair."""

    key: str
    master_path: Path
    detail_path: Path
    text_path: Optional[Path]
    writer: ConsensusWriter
    master: BinaryIO
    detail: BinaryIO
    text: Optional[TextIO]

    def close(self) -> None:
        self.master.close()
        self.detail.close()
        if self.text is not None:
            self.text.close()


class OutputManager:
    """Creates and tracks every output file of one VCF conversion.

    Parameters
    ----------
    outdir:
        Directory receiving all outputs.
    vcf_name:
        Base name of the input VCF; embedded in every output file name.
    codec:
        Shared ConsensusCodec for all pairs.
    text_mode:
        Also write a human-readable text file per pair.
    """

    def __init__(self, *, outdir: str | Path, vcf_name: str, codec: ConsensusCodec, text_mode: bool = False) -> None:
        self.outdir = ensure_outdir(outdir)
        self.vcf_name = vcf_name
        self.codec = codec
        self.text_mode = text_mode
        self.pairs: Dict[str, FilePair] = {}
        self._variants: Optional[TextIO] = None

    @property
    def variants_only_path(self) -> Path:
        return self.outdir / f"{self.vcf_name}.variants-only.gz"

    @property
    def position_map_path(self) -> Path:
        return self.outdir / f"{self.vcf_name}-positionmap.txt"

    def master_path(self, key: str) -> Path:
        return self.outdir / f"master-{self.vcf_name}-{key}.dat.bz2"

    def detail_path(self, key: str) -> Path:
        return self.outdir / f"detail-{self.vcf_name}-{key}.dat.bz2"

    def text_path(self, key: str) -> Path:
        return self.outdir / f"text-mode-{self.vcf_name}-{key}.txt"

    def writer_for(self, chrom: str, sample: str) -> ConsensusWriter:
        key = pair_key(chrom, sample)
        pair = self.pairs.get(key)
        if pair is None:
            pair = self._open_pair(key)
            self.pairs[key] = pair
        return pair.writer

    def _open_pair(self, key: str) -> FilePair:
        master_path = self.master_path(key)
        detail_path = self.detail_path(key)
        # "wb" truncates any earlier conversion's files.
        master = bz2.open(master_path, "wb")
        detail = bz2.open(detail_path, "wb")
        text_path = None
        text = None
        if self.text_mode:
            text_path = self.text_path(key)
            text = open(text_path, "wt", encoding="ascii")
        logger.debug("Opened file pair %s", key)
        writer = ConsensusWriter(self.codec, master, detail, text=text)
        return FilePair(
            key=key,
            master_path=master_path,
            detail_path=detail_path,
            text_path=text_path,
            writer=writer,
            master=master,
            detail=detail,
            text=text,
        )

    # --- variants-only VCF

    def open_variants_only(self) -> TextIO:
        if self._variants is None:
            self._variants = gzip.open(self.variants_only_path, "wt", encoding="utf-8")
        return self._variants

    def write_variant_header(self, lines: Iterable[str]) -> None:
        fh = self.open_variants_only()
        for line in lines:
            fh.write(line + "\n")

    def write_variant_line(self, text: str) -> None:
        self.open_variants_only().write(text + "\n")

    # --- position map

    def position_map_lines(self) -> List[str]:
        lines = [POSITION_MAP_HEADER]
        for key, pair in self.pairs.items():
            w = pair.writer
            lines.append(f"{pair.master_path.name}:{key}:{w.first_position}:{w.last_position}")
        return lines

    def write_position_map(self) -> Path:
        path = self.position_map_path
        path.write_text("\n".join(self.position_map_lines()) + "\n", encoding="utf-8")
        return path

    def close(self) -> None:
        for pair in self.pairs.values():
            pair.close()
        if self._variants is not None:
            self._variants.close()
            self._variants = None

    def __enter__(self) -> "OutputManager":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
