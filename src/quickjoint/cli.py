from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import pysam

from . import __version__
from .genotype_index import DEFAULT_MAX_ALLELES
from .genotyper import genotype_vcf
from .models import GenotypingConfig, PLMode
from .plotting import plot_af_hist, plot_qd_hist, plot_site_outcomes
from .regions import load_regions
from .report import render_report
from .toy_data import make_toy_data
from .utils import ensure_outdir
from .validation import check_vcf_index, validate_config


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


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    sys.stderr.write(f"{err.__class__.__name__}: {err}\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _vcf_contigs_and_samples(vcf_path: str) -> tuple[list[str], list[str]]:
    with pysam.VariantFile(vcf_path) as vcf:
        return list(vcf.header.contigs), list(vcf.header.samples)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="quickjoint",
        description=(
            "QuickJoint: fast joint genotyping of merged multi-sample GVCFs. "
            "Strips the <NON_REF> placeholder, calls diploid genotypes from PLs and "
            "finalizes site-level annotations (AC/AF/AN, QD, FS, SOR, MQ)."
        ),
    )
    p.add_argument("--version", action="version", version=f"quickjoint {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print 3 ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny merged GVCF and BED file for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # genotype
    # -----------------
    g = sub.add_parser(
        "genotype",
        help="Jointly genotype a merged multi-sample GVCF.",
    )
    g.add_argument("--vcf", required=True, type=_path_exists, help="Merged GVCF (.vcf/.vcf.gz).")
    g.add_argument("--outdir", required=True, help="Output directory.")
    g.add_argument(
        "--output-vcf",
        default=None,
        help="Genotyped VCF path (default: <outdir>/genotyped.vcf.gz).",
    )
    g.add_argument(
        "--sites-only-vcf",
        default=None,
        help="Also write a sites-only VCF with AC/AF/AN and the raw SB table.",
    )
    g.add_argument(
        "--dbsnp",
        type=_path_exists,
        default=None,
        help="Indexed dbSNP VCF used to fill the ID column.",
    )
    g.add_argument(
        "--stand-call-conf",
        type=float,
        default=30.0,
        help="Phred-scaled confidence threshold for emitting variant sites.",
    )
    g.add_argument(
        "--heterozygosity",
        type=float,
        default=0.001,
        help="Heterozygosity prior; its phred value is added to --stand-call-conf.",
    )
    g.add_argument(
        "--region",
        action="append",
        default=None,
        help="Region ctg[:start[-end]] (1-based, repeatable).",
    )
    g.add_argument("--regions-bed", type=_path_exists, default=None, help="BED file of regions.")
    g.add_argument(
        "--only-output-calls-starting-in-intervals",
        action="store_true",
        help="Emit only sites whose start lies within the given regions.",
    )
    g.add_argument(
        "--summarize-pls",
        action="store_true",
        help="Replace per-sample PL with RGQ/ABGQ/ALTGQ summaries.",
    )
    g.add_argument(
        "--max-cached-alleles",
        type=int,
        default=DEFAULT_MAX_ALLELES,
        help="Largest allele count whose genotype enumeration is precomputed.",
    )
    g.add_argument(
        "--on-error",
        choices=["abort", "skip"],
        default="abort",
        help="What to do with malformed sites: abort the run or log and skip them.",
    )
    g.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    g.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    g.add_argument("--resume", action="store_true", help="Skip if summary.json already exists.")
    g.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "QuickJoint quickstart (copy/paste):",
        "",
        "1) Whole merged GVCF:",
        "   quickjoint genotype \\",
        "     --vcf merged.g.vcf.gz \\",
        "     --outdir results/",
        "   Outputs: results/genotyped.vcf.gz, results/report.html, results/summary.json",
        "",
        "2) Scattered run over intervals (calls starting in the shard only):",
        "   quickjoint genotype \\",
        "     --vcf merged.g.vcf.gz \\",
        "     --regions-bed shard_001.bed \\",
        "     --only-output-calls-starting-in-intervals \\",
        "     --sites-only-vcf results/shard_001.sites.vcf.gz \\",
        "     --outdir results/",
        "",
        "3) Large cohorts (compact genotype qualities, dbSNP IDs, skip bad sites):",
        "   quickjoint genotype \\",
        "     --vcf merged.g.vcf.gz \\",
        "     --dbsnp dbsnp.vcf.gz \\",
        "     --summarize-pls \\",
        "     --on-error skip \\",
        "     --outdir results/",
        "",
        "Tip: use --dry-run to validate inputs and print the planned outputs.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_genotype(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "genotype.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("quickjoint")
    logger.info("quickjoint %s", __version__)

    try:
        check_vcf_index(args.vcf)
        if args.dbsnp is not None:
            check_vcf_index(args.dbsnp, require_index=True)

        contigs, samples = _vcf_contigs_and_samples(args.vcf)
        regions = load_regions(args.region, args.regions_bed, target_contigs=contigs)

        config = GenotypingConfig(
            stand_call_conf=float(args.stand_call_conf),
            heterozygosity=float(args.heterozygosity),
            only_output_calls_starting_in_intervals=bool(args.only_output_calls_starting_in_intervals),
            regions=tuple(regions),
            max_cached_alleles=int(args.max_cached_alleles),
            pl_mode=PLMode.SUMMARIZE if args.summarize_pls else PLMode.RETAIN,
            on_error=str(args.on_error),
        )
        validate_config(config)

        output_vcf = Path(args.output_vcf) if args.output_vcf else outdir / "genotyped.vcf.gz"

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Samples: {len(samples)}")
            print(f"Regions: {len(regions)}")
            print(f"Minimum QUALapprox: {config.min_qual_approx:.2f}")
            print("Planned outputs:")
            print(f"  genotyped VCF -> {output_vcf}")
            if args.sites_only_vcf:
                print(f"  sites-only VCF -> {args.sites_only_vcf}")
            print(f"  report.html -> {outdir / 'report.html'}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            return 0

        outdir = ensure_outdir(outdir)

        if args.resume and (outdir / "summary.json").exists():
            logger.info("Resume enabled: summary.json already exists in %s", outdir)
            print(str(outdir / "report.html"))
            return 0

        run = genotype_vcf(
            vcf_path=args.vcf,
            outdir=outdir,
            config=config,
            output_vcf=output_vcf,
            sites_only_vcf=args.sites_only_vcf,
            dbsnp_path=args.dbsnp,
            progress=not bool(args.no_progress),
        )

        plots_dir = outdir / "plots"
        plots_dir.mkdir(parents=True, exist_ok=True)

        outcomes_png = plots_dir / "site_outcomes.png"
        qd_png = plots_dir / "qd_hist.png"
        af_png = plots_dir / "af_hist.png"

        plot_site_outcomes(counts=run["counts"], out_png=outcomes_png)
        plot_qd_hist(
            bin_edges=run["qd_hist"]["bin_edges"],
            counts=run["qd_hist"]["counts"],
            out_png=qd_png,
        )
        plot_af_hist(
            bin_edges=run["af_hist"]["bin_edges"],
            counts=run["af_hist"]["counts"],
            out_png=af_png,
        )

        plots_rel = {
            "site_outcomes": str(Path("plots") / outcomes_png.name),
            "qd_hist": str(Path("plots") / qd_png.name),
            "af_hist": str(Path("plots") / af_png.name),
        }

        report_path = render_report(
            outdir=outdir,
            version=__version__,
            run=run,
            plots=plots_rel,
        )

        logger.info("Report written: %s", report_path)
        print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "genotype":
        return cmd_genotype(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
