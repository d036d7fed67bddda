from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

NON_REF = "<NON_REF>"
NO_CALL = "."


class PLMode(Enum):
    """How per-sample likelihoods are shaped in the output."""

    RETAIN = "retain"  # reduced PL + GQ
    SUMMARIZE = "summarize"  # RGQ/ABGQ/ALTGQ instead of PL


@dataclass(frozen=True)
class Region:
    """A 1-based, closed genomic interval."""

    contig: str
    start: int
    end: int

    def contains(self, contig: str, pos: int) -> bool:
        return contig == self.contig and self.start <= pos <= self.end


@dataclass(frozen=True)
class GenotypingConfig:
    """User-configurable thresholds and output modes.

    Attributes
    ----------
    stand_call_conf:
        Phred-scaled minimum confidence for emitting a site.
    heterozygosity:
        Prior heterozygosity; its phred value is added to ``stand_call_conf``
        because the incoming QUALapprox carries no prior.
    only_output_calls_starting_in_intervals:
        Emit only sites whose start lies within ``regions``.
    regions:
        Intervals used by the region gate.
    placeholder:
        Symbol of the "any other allele" placeholder.
    max_cached_alleles:
        Largest allele count whose genotype enumeration is precomputed.
    pl_mode:
        Retain reduced PLs or replace them with three quality summaries.
    on_error:
        ``"abort"`` stops at the first malformed site; ``"skip"`` logs and
        continues.
    """

    stand_call_conf: float = 30.0
    heterozygosity: float = 0.001
    only_output_calls_starting_in_intervals: bool = False
    regions: Tuple[Region, ...] = ()
    placeholder: str = NON_REF
    max_cached_alleles: int = 7
    pl_mode: PLMode = PLMode.RETAIN
    on_error: str = "abort"

    @property
    def min_qual_approx(self) -> float:
        return self.stand_call_conf - 10.0 * math.log10(self.heterozygosity)


@dataclass(frozen=True)
class SampleGenotype:
    """One sample's raw genotype at a merged site.

    ``alleles`` are the input GT allele strings (``None`` for a missing
    allele); the ploidy is their count. ``pl`` and ``ad`` are sized for the
    raw, placeholder-inclusive allele set. ``sb`` is the per-sample
    strand-bias table (ref-fwd, ref-rev, alt-fwd, alt-rev).
    """

    name: str
    alleles: Tuple[Optional[str], ...]
    pl: Optional[Tuple[Optional[int], ...]] = None
    ad: Optional[Tuple[Optional[int], ...]] = None
    sb: Optional[Tuple[int, ...]] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @property
    def ploidy(self) -> int:
        return len(self.alleles)


@dataclass(frozen=True)
class SiteRecord:
    """A merged multi-sample site. ``pos`` is 1-based."""

    contig: str
    pos: int
    alleles: Tuple[str, ...]
    qual_approx: Optional[float]
    depth: Optional[int]
    samples: Tuple[SampleGenotype, ...]
    record_id: Optional[str] = None
    info: Mapping[str, Any] = field(default_factory=dict)

    @property
    def locus(self) -> str:
        return f"{self.contig}:{self.pos}"

    @property
    def end(self) -> int:
        """1-based inclusive end of the reference allele."""
        return self.pos + max(len(self.alleles[0]), 1) - 1 if self.alleles else self.pos


@dataclass(frozen=True)
class GenotypeCall:
    """Per-sample consensus call. Allele slots hold ``NO_CALL`` for a no-call."""

    sample: str
    alleles: Tuple[str, str]
    gq: Optional[int] = None
    pl: Optional[Tuple[int, ...]] = None
    ad: Optional[Tuple[int, ...]] = None
    pl_summary: Optional[Dict[str, Optional[int]]] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_no_call(self) -> bool:
        return NO_CALL in self.alleles


@dataclass(frozen=True)
class SiteSummary:
    """Site-level annotations for a genotyped site."""

    contig: str
    pos: int
    alleles: Tuple[str, ...]
    qual: float
    qd: float
    ac: Tuple[int, ...]
    af: Optional[Tuple[float, ...]]
    an: int
    sb_table: Tuple[int, int, int, int]
    fs: float
    sor: float
    mq: Optional[float]
    record_id: Optional[str] = None
    info: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SiteOutcome:
    """Result of genotyping one site.

    ``status`` is one of ``emitted``, ``dropped_nonvariant``,
    ``dropped_low_quality``, ``dropped_region`` or ``error``. A site dropped
    by the region gate still carries its summary (for the sites-only
    output); an errored site carries ``error`` and nothing else.
    """

    status: str
    summary: Optional[SiteSummary] = None
    calls: Tuple[GenotypeCall, ...] = ()
    error: Optional[Exception] = None

    @property
    def emitted(self) -> bool:
        return self.status == "emitted"
