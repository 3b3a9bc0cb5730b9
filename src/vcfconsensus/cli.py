from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .consensus import LAYOUTS, read_master_records, read_stream_bytes, read_detail_payload
from .errors import ConversionError
from .filtering import filter_vcf
from .genotypes import GenotypeCodec
from .pipeline import ConversionJob, convert_many
from .toy_data import make_toy_data
from .utils import ensure_outdir


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _positive_int(v: str) -> int:
    n = int(v)
    if n < 1:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got {v}")
    return n


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, ConversionError):
        msg = str(err)
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _add_layout_flags(parser: argparse.ArgumentParser) -> None:
    g = parser.add_mutually_exclusive_group(required=True)
    g.add_argument(
        "--genome",
        dest="layout",
        action="store_const",
        const="genome",
        help="Whole-genome master layout (23-byte records).",
    )
    g.add_argument(
        "--exome",
        dest="layout",
        action="store_const",
        const="exome",
        help="Exome master layout (31-byte records with leading coordinate).",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="vcfconsensus",
        description=(
            "vcfconsensus: convert VCF genotype calls joined with BAM read data into compact "
            "per-sample master/detail consensus files."
        ),
    )
    p.add_argument("--version", action="version", version=f"vcfconsensus {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # convert
    # -----------------
    c = sub.add_parser(
        "convert",
        help="Convert one or more VCF/BAM pairs into master/detail consensus files.",
    )
    c.add_argument(
        "--vcf",
        required=True,
        action="append",
        type=_path_exists,
        help="Coordinate-sorted VCF (.vcf/.vcf.gz). Repeat for several files.",
    )
    c.add_argument(
        "--bam",
        required=True,
        action="append",
        type=_path_exists,
        help="Coordinate-sorted BAM paired with the --vcf at the same position.",
    )
    c.add_argument("--outdir", required=True, help="Output directory.")
    _add_layout_flags(c)
    c.add_argument("--metrics", action="store_true", help="Write metrics files, plots and an HTML report.")
    c.add_argument(
        "--text-mode",
        action="store_true",
        help="Also write a human-readable text consensus file per (chromosome, sample).",
    )
    c.add_argument("--workers", type=_positive_int, default=1, help="Files converted concurrently.")
    c.add_argument("--no-progress", action="store_true", help="Disable progress bars.")
    c.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned jobs.")
    c.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # inspect
    # -----------------
    i = sub.add_parser(
        "inspect",
        help="Print decoded master records (and detail payloads) as TSV.",
    )
    i.add_argument("--master", required=True, type=_path_exists, help="master-*.dat.bz2 file.")
    i.add_argument("--detail", type=_path_exists, default=None, help="Matching detail-*.dat.bz2 file.")
    _add_layout_flags(i)
    i.add_argument("--limit", type=_positive_int, default=None, help="Print at most N records.")
    i.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # filter-vcf
    # -----------------
    f = sub.add_parser(
        "filter-vcf",
        help="Keep VCF lines inside an interval list (chrom:start-end per line).",
    )
    f.add_argument("-i", "--input", required=True, type=_path_exists, help="Input VCF.")
    f.add_argument("-o", "--output", required=True, help="Output VCF (.gz to compress).")
    f.add_argument("-l", "--interval-list", required=True, type=_path_exists, help="Interval list file.")
    f.add_argument(
        "-m",
        "--missing",
        action="store_true",
        help="Also keep lines outside the intervals that have an ALT allele or a missing genotype.",
    )
    f.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny BAM and VCF for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    return p


def cmd_convert(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "convert.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("vcfconsensus")
    logger.info("vcfconsensus %s", __version__)

    try:
        if len(args.vcf) != len(args.bam):
            raise ValueError(f"Got {len(args.vcf)} --vcf but {len(args.bam)} --bam; pass one BAM per VCF.")

        jobs = [
            ConversionJob(
                vcf_path=vcf,
                bam_path=bam,
                outdir=str(outdir),
                layout=args.layout,
                text_mode=bool(args.text_mode),
                write_metrics_files=bool(args.metrics),
                progress=not args.no_progress and len(args.vcf) == 1,
            )
            for vcf, bam in zip(args.vcf, args.bam)
        ]

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Layout: {args.layout} ({LAYOUTS[args.layout].size}-byte master records)")
            for job in jobs:
                print(f"  {job.vcf_path} + {job.bam_path} -> {outdir}")
            return 0

        ensure_outdir(outdir)
        outcomes = convert_many(jobs, workers=int(args.workers))

        failed = 0
        for outcome in outcomes:
            if outcome.ok and outcome.result is not None:
                m = outcome.result.metrics
                print(
                    f"{outcome.job.vcf_path}\tOK\t{m.lines_converted} converted\t"
                    f"{m.lines_rejected} rejected\t{outcome.result.outputs['position_map']}"
                )
            else:
                failed += 1
                print(f"{outcome.job.vcf_path}\tFAILED\t{outcome.error}")

        if failed:
            sys.stderr.write(f"{failed} of {len(outcomes)} conversion(s) failed\n")
            sys.stderr.write(f"See log: {log_path}\n")
            return 2
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_inspect(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)

    try:
        layout = LAYOUTS[args.layout]
        records = read_master_records(args.master, layout)
        detail = read_stream_bytes(args.detail) if args.detail else None
        genotypes = GenotypeCodec()

        cols = ["index", "genotype", "consensus_quality", "snp_quality", "mapping_quality", "read_depth", "detail_pointer"]
        if layout.has_coordinate:
            cols.insert(1, "coordinate")
        if detail is not None:
            cols.append("detail")
        print("\t".join(cols))

        limit = args.limit if args.limit is not None else len(records)
        for idx, row in enumerate(records[:limit]):
            values = [str(idx)]
            if layout.has_coordinate:
                values.append(str(int(row["coordinate"])))
            pointer = int(row["detail_pointer"])
            values.extend(
                [
                    genotypes.decode(int(row["genotype_code"])),
                    str(int(row["consensus_quality"])),
                    str(int(row["snp_quality"])),
                    str(int(row["mapping_quality"])),
                    str(int(row["read_depth"])),
                    str(pointer),
                ]
            )
            if detail is not None:
                values.append(read_detail_payload(detail, pointer) if pointer >= 0 else "")
            print("\t".join(values))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=None)


def cmd_filter_vcf(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)

    try:
        stats = filter_vcf(args.input, args.output, args.interval_list, with_missing=bool(args.missing))
        print(f"Kept {stats.kept} of {stats.data_lines} data lines -> {args.output}")
        return 0
    except Exception as e:
        return _handle_error(e, log_path=None)


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "convert":
        return cmd_convert(args)
    if args.cmd == "inspect":
        return cmd_inspect(args)
    if args.cmd == "filter-vcf":
        return cmd_filter_vcf(args)
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
