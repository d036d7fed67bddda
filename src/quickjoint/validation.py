from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from .models import GenotypingConfig

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"
_ON_ERROR_CHOICES = ("abort", "skip")


def check_vcf_index(vcf_path: str | Path, *, require_index: bool = False) -> None:
    """Ensure a bgzipped VCF has a tabix index; raise ValueError with fix instructions.

    Uncompressed VCFs are accepted unless ``require_index`` is set (random
    access, e.g. dbSNP lookups, needs an index).
    """
    vcf = Path(vcf_path)
    if vcf.suffix == ".gz":
        tbi = vcf.with_suffix(vcf.suffix + ".tbi")
        csi = vcf.with_suffix(vcf.suffix + ".csi")
        if not (tbi.exists() or csi.exists()):
            raise ValueError(
                "VCF is not bgzip/tabix indexed. Run: bgzip -c "
                + str(vcf.with_suffix(""))
                + " > "
                + str(vcf)
                + "; tabix -p vcf "
                + str(vcf)
            )
    elif require_index:
        raise ValueError(
            f"{vcf} must be bgzip-compressed and tabix-indexed. Run: bgzip {vcf}; tabix -p vcf {vcf}.gz"
        )
    elif vcf.suffix == ".vcf":
        logger.info(
            "VCF is uncompressed (.vcf). This is supported but slower; "
            "consider bgzip+tabix for large files."
        )


def validate_config(config: GenotypingConfig) -> None:
    """Raise ValueError for settings that cannot produce a meaningful run."""
    if not 0.0 < config.heterozygosity < 1.0:
        raise ValueError(f"heterozygosity must be in (0, 1), got {config.heterozygosity}")
    if config.stand_call_conf < 0:
        raise ValueError(f"stand_call_conf must be >= 0, got {config.stand_call_conf}")
    if config.max_cached_alleles < 1:
        raise ValueError(f"max_cached_alleles must be >= 1, got {config.max_cached_alleles}")
    if config.on_error not in _ON_ERROR_CHOICES:
        raise ValueError(f"on_error must be one of {_ON_ERROR_CHOICES}, got {config.on_error!r}")
    if config.only_output_calls_starting_in_intervals and not config.regions:
        raise ValueError(
            "Intervals are required when restricting output to calls starting in intervals. "
            "Provide --region and/or --regions-bed."
        )
    for r in config.regions:
        if r.start < 1 or r.end < r.start:
            raise ValueError(f"Invalid region {r.contig}:{r.start}-{r.end}")


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return "ucsc"
    return "ensembl"


def remap_contig(contig: str, style: str) -> str:
    """Remap a contig name to the requested style (ucsc or ensembl)."""
    if style == "ucsc":
        if contig.startswith(_UCSC_PREFIX):
            return contig
        if contig == "MT":
            return "chrM"
        return f"{_UCSC_PREFIX}{contig}"
    if style == "ensembl":
        if contig.startswith(_UCSC_PREFIX):
            core = contig[len(_UCSC_PREFIX) :]
            if core == "M":
                return "MT"
            return core
        return contig
    return contig
