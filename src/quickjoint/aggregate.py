from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from scipy.stats import fisher_exact

from .errors import MalformedSiteError
from .models import NO_CALL, GenotypeCall, SampleGenotype

logger = logging.getLogger(__name__)

# Tables larger than this are scaled down before the Fisher test; with deep
# coverage any small imbalance would otherwise look significant.
_TARGET_TABLE_SIZE = 200
_MIN_PVALUE = 1e-320
_SOR_PSEUDOCOUNT = 1.0

StrandTable = Tuple[Tuple[int, int], Tuple[int, int]]


class AlleleCounter:
    """Running allele counts (AC/AN) over the finalized alleles of one site."""

    def __init__(self, alleles: Sequence[str]) -> None:
        self.alleles = tuple(alleles)
        self.counts: Dict[str, int] = {a: 0 for a in self.alleles}

    def add(self, call: GenotypeCall) -> None:
        for allele in call.alleles:
            if allele == NO_CALL:
                continue
            self.counts[allele] = self.counts.get(allele, 0) + 1

    def add_all(self, calls: Iterable[GenotypeCall]) -> None:
        for call in calls:
            self.add(call)

    @property
    def an(self) -> int:
        return sum(self.counts.values())

    def alt_counts(self) -> Tuple[int, ...]:
        return tuple(self.counts[a] for a in self.alleles[1:])

    def alt_frequencies(self) -> Optional[Tuple[float, ...]]:
        """AF per alternate allele, or ``None`` when no allele was called."""
        an = self.an
        if an == 0:
            return None
        return tuple(c / an for c in self.alt_counts())


def _as_sb(sample: SampleGenotype) -> Optional[Tuple[int, int, int, int]]:
    if sample.sb is None:
        return None
    values = list(sample.sb)
    if len(values) != 4 or any(v is None for v in values):
        raise MalformedSiteError(
            f"Strand bias table must hold 4 integers, got {values!r}", sample=sample.name
        )
    return (int(values[0]), int(values[1]), int(values[2]), int(values[3]))


def sum_strand_bias(samples: Iterable[SampleGenotype]) -> Tuple[int, int, int, int]:
    """Element-wise sum of per-sample SB tables; samples without SB are skipped."""
    total: List[int] = [0, 0, 0, 0]
    for sample in samples:
        sb = _as_sb(sample)
        if sb is None:
            continue
        for i, v in enumerate(sb):
            total[i] += v
    return (total[0], total[1], total[2], total[3])


def decode_sb(sb: Sequence[int]) -> StrandTable:
    """[ref-fwd, ref-rev, alt-fwd, alt-rev] -> 2x2 table (rows: ref, alt)."""
    return ((int(sb[0]), int(sb[1])), (int(sb[2]), int(sb[3])))


def normalize_table(table: StrandTable) -> StrandTable:
    total = sum(sum(row) for row in table)
    if total <= 2 * _TARGET_TABLE_SIZE:
        return table
    factor = total / (2.0 * _TARGET_TABLE_SIZE)
    return (
        (int(table[0][0] / factor), int(table[0][1] / factor)),
        (int(table[1][0] / factor), int(table[1][1] / factor)),
    )


def fisher_strand(sb: Sequence[int]) -> float:
    """Phred-scaled two-sided Fisher's exact p-value for strand bias (FS)."""
    table = normalize_table(decode_sb(sb))
    _, pvalue = fisher_exact(table)
    pvalue = min(1.0, max(float(pvalue), _MIN_PVALUE))
    # +0.0 turns -0.0 into 0.0
    return round(-10.0 * math.log10(pvalue) + 0.0, 3)


def strand_odds_ratio(sb: Sequence[int]) -> float:
    """Symmetric strand odds ratio (SOR) with a pseudocount of one read per cell."""
    (r_fwd, r_rev), (a_fwd, a_rev) = decode_sb(sb)
    t00 = r_fwd + _SOR_PSEUDOCOUNT
    t01 = r_rev + _SOR_PSEUDOCOUNT
    t10 = a_fwd + _SOR_PSEUDOCOUNT
    t11 = a_rev + _SOR_PSEUDOCOUNT
    ratio = (t00 / t01) * (t11 / t10) + (t01 / t00) * (t10 / t11)
    ref_ratio = min(t00, t01) / max(t00, t01)
    alt_ratio = min(t10, t11) / max(t10, t11)
    return round(math.log(ratio) + math.log(ref_ratio) - math.log(alt_ratio), 3)
