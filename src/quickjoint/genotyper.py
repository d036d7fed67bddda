from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import numpy as np
import pysam
from tqdm import tqdm

from .aggregate import AlleleCounter, fisher_strand, strand_odds_ratio, sum_strand_bias
from .alleles import is_properly_polymorphic, resolve_alleles
from .caller import call_sample
from .errors import SiteError
from .genotype_index import GenotypeIndexCache
from .models import GenotypingConfig, SiteOutcome, SiteRecord, SiteSummary
from .summarize import (
    RegionSet,
    finalize_mapping_quality,
    passes_quality_threshold,
    quality_by_depth,
)
from .utils import OneShotWarning, ensure_outdir, write_json
from .validation import validate_config
from .vcfio import DbsnpAnnotator, GenotypedVcfWriter, iter_sites

logger = logging.getLogger(__name__)

SITE_STATUSES = (
    "emitted",
    "dropped_nonvariant",
    "dropped_low_quality",
    "dropped_region",
    "error",
)


class SiteGenotyper:
    """Turns merged SiteRecords into genotyped SiteOutcomes.

    Holds the only state shared across sites: the read-only genotype index
    cache and the once-per-run missing-annotation warning.
    """

    def __init__(
        self,
        config: GenotypingConfig,
        cache: Optional[GenotypeIndexCache] = None,
    ) -> None:
        self.config = config
        self.cache = cache or GenotypeIndexCache(config.max_cached_alleles)
        self.regions = RegionSet(config.regions)
        self.missing_qual_warning = OneShotWarning(
            "Variant is missing the QUALapprox annotation and will be treated as QUALapprox=0 "
            "(it will not be output); check that the merged input carries QUALapprox",
            log=logger,
        )

    def genotype(self, site: SiteRecord) -> SiteOutcome:
        """Genotype one site; structural problems come back as an ``error`` outcome."""
        try:
            return self._genotype(site)
        except SiteError as err:
            if err.locus is None:
                err = err.at(site.contig, site.pos)
            return SiteOutcome(status="error", error=err)

    def _genotype(self, site: SiteRecord) -> SiteOutcome:
        if not is_properly_polymorphic(site.alleles):
            return SiteOutcome(status="dropped_nonvariant")

        qual = site.qual_approx
        if qual is None:
            self.missing_qual_warning.warn()
            qual = 0.0
        # Missing depth is malformed even when the site would fail the threshold.
        qd = quality_by_depth(qual, site.depth, contig=site.contig, pos=site.pos)
        if not passes_quality_threshold(qual, self.config):
            return SiteOutcome(status="dropped_low_quality")

        finalized, removed = resolve_alleles(site.alleles, self.config.placeholder)

        calls = tuple(
            call_sample(
                sample,
                site=site,
                finalized=finalized,
                placeholder_removed=removed,
                cache=self.cache,
                pl_mode=self.config.pl_mode,
            )
            for sample in site.samples
        )

        counter = AlleleCounter(finalized)
        counter.add_all(calls)
        sb = sum_strand_bias(site.samples)

        summary = SiteSummary(
            contig=site.contig,
            pos=site.pos,
            alleles=finalized,
            qual=float(qual),
            qd=round(qd, 2),
            ac=counter.alt_counts(),
            af=counter.alt_frequencies(),
            an=counter.an,
            sb_table=sb,
            fs=fisher_strand(sb),
            sor=strand_odds_ratio(sb),
            mq=finalize_mapping_quality(site.info),
            record_id=site.record_id,
            info=site.info,
        )

        status = "emitted"
        if self.config.only_output_calls_starting_in_intervals and not self.regions.contains(
            site.contig, site.pos
        ):
            status = "dropped_region"
        return SiteOutcome(status=status, summary=summary, calls=calls)


def genotype_sites(
    sites: Iterable[SiteRecord],
    genotyper: SiteGenotyper,
) -> Iterable[SiteOutcome]:
    """Apply the run's error policy to a stream of sites.

    With ``on_error="abort"`` the first site error is raised; with ``"skip"``
    it is logged and the errored outcome is still yielded so callers can
    count it.
    """
    for site in sites:
        outcome = genotyper.genotype(site)
        if outcome.status == "error":
            assert outcome.error is not None
            if genotyper.config.on_error == "abort":
                raise outcome.error
            logger.warning("Skipping site: %s", outcome.error)
        yield outcome


def genotype_vcf(
    *,
    vcf_path: str,
    outdir: str | Path,
    config: GenotypingConfig,
    output_vcf: Optional[str | Path] = None,
    sites_only_vcf: Optional[str | Path] = None,
    dbsnp_path: Optional[str | Path] = None,
    progress: bool = True,
) -> Dict[str, object]:
    """Main workhorse: stream merged sites, genotype, write outputs, return summary dict."""
    t0 = time.time()
    validate_config(config)
    outdir_path = ensure_outdir(outdir)
    if output_vcf is None:
        output_vcf = outdir_path / "genotyped.vcf.gz"

    genotyper = SiteGenotyper(config)
    # Regions without the start gate still bound the traversal, as with -L.
    traversal = RegionSet(config.regions) if config.regions else None

    counts: Dict[str, int] = {"sites_total": 0, "sites_outside_intervals": 0}
    counts.update({f"sites_{s}": 0 for s in SITE_STATUSES})
    genotype_counts = {"calls": 0, "no_calls": 0}

    qd_bins = np.linspace(0.0, 40.0, 81)
    qd_counts = np.zeros(len(qd_bins) - 1, dtype=np.int64)
    af_bins = np.linspace(0.0, 1.0, 21)
    af_counts = np.zeros(len(af_bins) - 1, dtype=np.int64)
    errors: List[str] = []

    dbsnp = DbsnpAnnotator(dbsnp_path) if dbsnp_path is not None else None
    vcf = pysam.VariantFile(vcf_path)
    samples = list(vcf.header.samples)
    logger.info("Genotyping %d sample(s) from %s", len(samples), vcf_path)

    try:
        with GenotypedVcfWriter(
            output_vcf,
            vcf.header,
            pl_mode=config.pl_mode,
            sites_only_vcf=sites_only_vcf,
            dbsnp=dbsnp,
        ) as writer:
            sites: Iterable[SiteRecord] = iter_sites(vcf)
            if progress:
                sites = tqdm(sites, unit="site", desc="Genotyping sites")

            def _in_traversal(site_iter: Iterable[SiteRecord]) -> Iterable[SiteRecord]:
                for site in site_iter:
                    counts["sites_total"] += 1
                    if traversal is not None and not traversal.overlaps(site.contig, site.pos, site.end):
                        counts["sites_outside_intervals"] += 1
                        continue
                    yield site

            for outcome in genotype_sites(_in_traversal(sites), genotyper):
                counts[f"sites_{outcome.status}"] += 1
                if outcome.status == "error":
                    errors.append(str(outcome.error))
                    continue
                writer.write(outcome)
                if not outcome.emitted or outcome.summary is None:
                    continue
                for call in outcome.calls:
                    genotype_counts["no_calls" if call.is_no_call else "calls"] += 1
                qd_counts += np.histogram([min(outcome.summary.qd, 40.0)], bins=qd_bins)[0]
                if outcome.summary.af:
                    af_counts += np.histogram(list(outcome.summary.af), bins=af_bins)[0]
    finally:
        vcf.close()
        if dbsnp is not None:
            dbsnp.close()

    dt = time.time() - t0

    summary = {
        "vcf_path": str(vcf_path),
        "output_vcf": str(output_vcf),
        "sites_only_vcf": str(sites_only_vcf) if sites_only_vcf is not None else None,
        "dbsnp": str(dbsnp_path) if dbsnp_path is not None else None,
        "samples": len(samples),
        "stand_call_conf": float(config.stand_call_conf),
        "heterozygosity": float(config.heterozygosity),
        "min_qual_approx": float(config.min_qual_approx),
        "pl_mode": config.pl_mode.value,
        "on_error": config.on_error,
        "regions": len(config.regions),
        "only_output_calls_starting_in_intervals": bool(config.only_output_calls_starting_in_intervals),
        "counts": counts,
        "genotype_counts": genotype_counts,
        "missing_qual_approx": genotyper.missing_qual_warning.count,
        "site_errors": errors[:100],
        "qd_hist": {"bin_edges": qd_bins.tolist(), "counts": qd_counts.tolist()},
        "af_hist": {"bin_edges": af_bins.tolist(), "counts": af_counts.tolist()},
        "runtime_seconds": float(dt),
    }

    write_json(outdir_path / "summary.json", summary)
    return summary
