"""VCF + BAM to consensus file conversion driver.

``convert_vcf`` converts one VCF end to end and is strictly sequential: the
duplicate resolver and the read cursor both consume sorted streams in a
single pass. ``convert_many`` runs independent files in separate processes.
"""

from __future__ import annotations

import contextlib
import logging
import re
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, TextIO, Tuple

from tqdm import tqdm

from . import __version__
from .alignment import AlignmentCursor, iter_aligned_reads
from .classifier import VariantClassifier
from .consensus import LAYOUTS, ConsensusCodec, EncodedRecord, WritePath
from .errors import (
    ColumnCountMismatch,
    DuplicateSNPPosition,
    LineError,
    MalformedHeader,
    MalformedPosition,
    UnknownGenotype,
)
from .genotypes import GenotypeCodec
from .metrics import ConversionMetrics, write_metrics
from .models import FIRST_SAMPLE_COLUMN, FORMAT_COLUMN, VariantRecord, VcfLine
from .outputs import OutputManager, pair_key
from .plotting import plot_category_counts, plot_pair_depths
from .report import render_report
from .resolver import DuplicatePositionResolver, ResolvedLine
from .utils import ensure_outdir, open_textmaybe_gzip
from .validation import bam_contigs, check_input_file, warn_contig_style_mismatch

logger = logging.getLogger(__name__)

REJECTED_LOGGER = "vcfconsensus.rejected"
rejected_logger = logging.getLogger(REJECTED_LOGGER)

_CONTIG_ID = re.compile(r"^##contig=<.*?ID=([^,>]+)")


@dataclass(frozen=True)
class VcfHeader:
    """Meta lines and column header of a VCF.

    Attributes
    ----------
    meta_lines:
        ``##`` lines in file order.
    columns:
        Tokens of the ``#CHROM`` line, without the leading ``#``.
    samples:
        Sample column names (the tokens after ``FORMAT``).
    """

    meta_lines: Tuple[str, ...]
    columns: Tuple[str, ...]
    samples: Tuple[str, ...]

    @property
    def column_count(self) -> int:
        return len(self.columns)

    @property
    def column_line(self) -> str:
        return "#" + "\t".join(self.columns)

    @property
    def contigs(self) -> List[str]:
        out = []
        for line in self.meta_lines:
            m = _CONTIG_ID.match(line)
            if m:
                out.append(m.group(1))
        return out


def read_vcf_header(lines: Iterator[str]) -> VcfHeader:
    """Consume header lines from ``lines`` up to and including ``#CHROM``."""
    meta: List[str] = []
    for raw in lines:
        text = raw.rstrip("\r\n")
        if not text:
            continue
        if text.startswith("##"):
            meta.append(text)
            continue
        if text.startswith("#"):
            columns = tuple(text[1:].split("\t"))
            if len(columns) <= FORMAT_COLUMN or columns[FORMAT_COLUMN] != "FORMAT":
                raise MalformedHeader(f"Column header has no FORMAT column: {text!r}")
            samples = columns[FIRST_SAMPLE_COLUMN:]
            if not samples:
                raise MalformedHeader("Found no individual or sample data column names in the VCF header")
            return VcfHeader(meta_lines=tuple(meta), columns=columns, samples=samples)
        raise MalformedHeader(f"Data line before the #CHROM header line: {text[:80]!r}")
    raise MalformedHeader("VCF has no #CHROM header line")


def reject_line(text: str, err: Exception, metrics: ConversionMetrics) -> None:
    metrics.lines_rejected += 1
    rejected_logger.warning("%s: %s\t%s", type(err).__name__, err, text)


def iter_data_lines(lines: Iterable[str], header: VcfHeader, metrics: ConversionMetrics) -> Iterator[VcfLine]:
    """Yield well-formed data lines; reject lines with a bad width or POS."""
    ordinal = 0
    for raw in lines:
        text = raw.rstrip("\r\n")
        if not text:
            continue
        metrics.lines_read += 1
        line = VcfLine.parse(text, ordinal)
        ordinal += 1
        try:
            if len(line.fields) != header.column_count:
                raise ColumnCountMismatch(
                    f"Wrong number of data columns: header columns: {header.column_count}, "
                    f"data columns: {len(line.fields)}",
                    fields=line.fields,
                )
            try:
                pos = line.pos
            except ValueError:
                raise MalformedPosition(f"POS is not an integer: {line.fields[1]!r}", fields=line.fields) from None
            if pos < 0:
                raise MalformedPosition(f"POS is negative: {pos}", fields=line.fields)
        except LineError as e:
            reject_line(text, e, metrics)
            continue
        yield line


def choose_write_path(record: VariantRecord, *, is_duplicate: bool) -> WritePath:
    """Pick the single write path for a record; first match wins."""
    if record.is_indel:
        return WritePath.INDEL
    if record.is_snp and is_duplicate:
        raise DuplicateSNPPosition(f"SNP duplicate positions detected at {record.chrom}:{record.position}")
    if record.is_no_call:
        return WritePath.INDEL
    if record.is_snp:
        return WritePath.SNP
    if record.has_no_reference_data:
        return WritePath.NO_REFERENCE_DATA
    return WritePath.GENOMIC


@dataclass
class ConversionResult:
    vcf_path: str
    samples: List[str]
    outputs: Dict[str, str]
    metrics: ConversionMetrics
    pairs: List[str] = field(default_factory=list)
    elapsed_s: float = 0.0


class LineConverter:
    """Classify, encode and write resolved lines for one VCF."""

    def __init__(
        self,
        *,
        header: VcfHeader,
        classifier: VariantClassifier,
        codec: ConsensusCodec,
        outputs: OutputManager,
        metrics: ConversionMetrics,
    ) -> None:
        self.header = header
        self.classifier = classifier
        self.codec = codec
        self.outputs = outputs
        self.metrics = metrics

    def plan(self, resolved: ResolvedLine) -> List[Tuple[str, EncodedRecord]]:
        """Classify and encode every sample column without writing anything."""
        line, is_duplicate = resolved
        classifications = self.classifier.classify_line(line)

        routed: List[Tuple[str, VariantRecord, WritePath]] = []
        dropped = 0
        for sample, c in zip(self.header.samples, classifications):
            if c.record is None:
                logger.debug("Dropped %s call at %s:%d for %s", c.category.value, line.chrom, line.pos, sample)
                dropped += 1
                continue
            routed.append((sample, c.record, choose_write_path(c.record, is_duplicate=is_duplicate)))

        planned = [(sample, self.codec.encode(record, path)) for sample, record, path in routed]
        # Counted only once every column of the line encoded.
        self.metrics.calls_dropped += dropped
        for c in classifications:
            self.metrics.categories[c.category.value] += 1
        return planned

    def write(self, resolved: ResolvedLine, planned: Sequence[Tuple[str, EncodedRecord]]) -> None:
        line = resolved.line
        for sample, encoded in planned:
            self.outputs.writer_for(line.chrom, sample).write(encoded)
            self.metrics.collect(pair_key(line.chrom, sample), encoded.record)

        if any(encoded.record.is_variant for _, encoded in planned):
            self.outputs.write_variant_line(line.text)
            self.metrics.variant_lines += 1
        if resolved.is_duplicate:
            self.metrics.duplicates_resolved += 1
        self.metrics.lines_converted += 1

    def convert(self, resolved: ResolvedLine) -> bool:
        """Convert one resolved line; return False if it was rejected.

        DuplicateSNPPosition and other fatal errors propagate.
        """
        try:
            planned = self.plan(resolved)
        except (LineError, UnknownGenotype) as e:
            reject_line(resolved.line.text, e, self.metrics)
            return False
        self.write(resolved, planned)
        return True


@contextlib.contextmanager
def _rejected_lines_file(path: Path) -> Iterator[None]:
    """Copy rejected-line messages to ``path`` while the block runs.

    The file is only created once a line is rejected.
    """
    path.unlink(missing_ok=True)
    handler = logging.FileHandler(path, mode="w", encoding="utf-8", delay=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    rejected_logger.addHandler(handler)
    try:
        yield
    finally:
        rejected_logger.removeHandler(handler)
        handler.close()


def _open_vcf(vcf_path: Path) -> TextIO:
    return open_textmaybe_gzip(vcf_path, "rt")


def convert_vcf(
    *,
    vcf_path: str | Path,
    bam_path: str | Path,
    outdir: str | Path,
    layout: str = "genome",
    text_mode: bool = False,
    write_metrics_files: bool = False,
    progress: bool = True,
) -> ConversionResult:
    """Convert one VCF into per (chromosome, sample) master/detail file pairs.

    Parameters
    ----------
    vcf_path:
        Plain or gzip-compressed VCF, coordinate sorted.
    bam_path:
        Coordinate-sorted BAM supplying mapping quality, read bases and
        qualities for each VCF position.
    outdir:
        Output directory; created if missing. Existing outputs of the same
        VCF are replaced.
    layout:
        ``"genome"`` (23-byte master records) or ``"exome"`` (31-byte,
        coordinate prefixed).
    text_mode:
        Also write a human-readable text file per file pair.
    write_metrics_files:
        Write ``.metrics``/``.metrics.json``, an HTML report and plots.
    progress:
        Show a progress bar over VCF data lines.

    Raises
    ------
    FatalConversionError
        On a duplicate SNP position, a missing input, or a malformed header.
        Output streams are closed first.
    """
    t0 = time.time()
    vcf_p = check_input_file(vcf_path, kind="VCF")
    bam_p = check_input_file(bam_path, kind="BAM")
    if layout not in LAYOUTS:
        raise ValueError(f"Unknown master layout {layout!r}; expected one of {sorted(LAYOUTS)}")
    outdir_p = ensure_outdir(outdir)
    vcf_name = vcf_p.name

    codec = ConsensusCodec(LAYOUTS[layout], GenotypeCodec())
    metrics = ConversionMetrics()
    contigs = bam_contigs(bam_p)

    logger.info("Converting %s with %s (%s layout)", vcf_p, bam_p, layout)

    with contextlib.ExitStack() as stack:
        stack.enter_context(_rejected_lines_file(outdir_p / f"{vcf_name}.errors.txt"))
        vcf_fh = stack.enter_context(_open_vcf(vcf_p))
        outputs = stack.enter_context(
            OutputManager(outdir=outdir_p, vcf_name=vcf_name, codec=codec, text_mode=text_mode)
        )
        reads = stack.enter_context(contextlib.closing(iter_aligned_reads(str(bam_p))))

        lines = iter(vcf_fh)
        header = read_vcf_header(lines)
        logger.info("Samples: %s", ", ".join(header.samples))
        warn_contig_style_mismatch(header.contigs, contigs)
        outputs.write_variant_header(list(header.meta_lines) + [header.column_line])

        cursor = AlignmentCursor(reads)
        converter = LineConverter(
            header=header,
            classifier=VariantClassifier(cursor, len(header.samples)),
            codec=codec,
            outputs=outputs,
            metrics=metrics,
        )

        data: Iterable[str] = lines
        if progress:
            data = tqdm(data, unit="line", desc=f"Converting {vcf_name}")

        resolver = DuplicatePositionResolver()
        for resolved in resolver.resolve(iter_data_lines(data, header, metrics)):
            converter.convert(resolved)

        metrics.reads_matched = cursor.matched
        metrics.reads_unmatched = cursor.unmatched
        logger.info("Read join: %s", cursor.summary())
        position_map = outputs.write_position_map()
        pairs = list(outputs.pairs)

    out: Dict[str, str] = {
        "position_map": str(position_map),
        "variants_only": str(outputs.variants_only_path),
    }
    errors_txt = outdir_p / f"{vcf_name}.errors.txt"
    if errors_txt.exists():
        out["errors"] = str(errors_txt)

    if write_metrics_files:
        out.update({k: str(v) for k, v in write_metrics(metrics, outdir=outdir_p, vcf_name=vcf_name).items()})
        plots_dir = outdir_p / "plots"
        categories_png = plots_dir / f"{vcf_name}-categories.png"
        depths_png = plots_dir / f"{vcf_name}-depths.png"
        plot_category_counts(category_counts=dict(metrics.categories), out_png=categories_png)
        plot_pair_depths(
            average_depths={k: p.average_read_depth for k, p in metrics.pairs.items()},
            out_png=depths_png,
        )
        report = render_report(
            outdir=outdir_p,
            version=__version__,
            run={
                "vcf_path": str(vcf_p),
                "vcf_name": vcf_name,
                "bam_path": str(bam_p),
                "layout": layout,
                "samples": list(header.samples),
                "position_map": position_map.name,
                "variants_only": outputs.variants_only_path.name,
            },
            metrics=metrics.to_dict(),
            plots={
                "categories": str(categories_png.relative_to(outdir_p)),
                "depths": str(depths_png.relative_to(outdir_p)),
            },
            name=f"{vcf_name}.report.html",
        )
        out["report"] = str(report)

    logger.info(
        "Converted %d/%d lines of %s (%d rejected)",
        metrics.lines_converted,
        metrics.lines_read,
        vcf_name,
        metrics.lines_rejected,
    )
    return ConversionResult(
        vcf_path=str(vcf_p),
        samples=list(header.samples),
        outputs=out,
        metrics=metrics,
        pairs=pairs,
        elapsed_s=time.time() - t0,
    )


# -----------------
# Multi-file runs
# -----------------

@dataclass(frozen=True)
class ConversionJob:
    vcf_path: str
    bam_path: str
    outdir: str
    layout: str = "genome"
    text_mode: bool = False
    write_metrics_files: bool = False
    progress: bool = False

    def run(self) -> ConversionResult:
        return convert_vcf(
            vcf_path=self.vcf_path,
            bam_path=self.bam_path,
            outdir=self.outdir,
            layout=self.layout,
            text_mode=self.text_mode,
            write_metrics_files=self.write_metrics_files,
            progress=self.progress,
        )


@dataclass
class JobOutcome:
    job: ConversionJob
    result: Optional[ConversionResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _run_job(job: ConversionJob) -> ConversionResult:
    return job.run()


def convert_many(jobs: Sequence[ConversionJob], *, workers: int = 1) -> List[JobOutcome]:
    """Convert several VCF/BAM pairs; one failing job does not stop the others.

    Outcomes are returned in job order.
    """
    outcomes = [JobOutcome(job=job) for job in jobs]
    if workers <= 1 or len(jobs) <= 1:
        for outcome in outcomes:
            try:
                outcome.result = outcome.job.run()
            except Exception as e:  # reported per job
                logger.error("Conversion of %s failed: %s", outcome.job.vcf_path, e)
                outcome.error = f"{type(e).__name__}: {e}"
        return outcomes

    with ProcessPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(_run_job, job): i for i, job in enumerate(jobs)}
        for future in as_completed(futures):
            outcome = outcomes[futures[future]]
            try:
                outcome.result = future.result()
            except Exception as e:  # reported per job
                logger.error("Conversion of %s failed: %s", outcome.job.vcf_path, e)
                outcome.error = f"{type(e).__name__}: {e}"
    return outcomes
