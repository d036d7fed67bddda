"""Per-sample consensus genotype calling from phred-scaled likelihoods.

Convention: likelihood arrays are PLs (phred-scaled, normalised so the best
genotype is 0). Smaller is more likely, so the maximum-likelihood genotype is
the arg-min of the array; on ties the lowest index wins, which favours the
reference and earlier alternates. GQ is the gap between the two smallest PLs.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from .errors import InconsistentArrayLengthError, UnsupportedPloidyError
from .genotype_index import AllelePair, GenotypeIndexCache
from .models import NO_CALL, GenotypeCall, PLMode, SampleGenotype, SiteRecord
from .reducer import reduce_ad, reduce_pl

logger = logging.getLogger(__name__)

DIPLOID = 2
NO_CALL_PAIR = (NO_CALL, NO_CALL)

# FORMAT fields consumed here and not carried into the output genotype.
_CONSUMED_FORMAT_KEYS = {"MIN_DP", "SB"}

PLSummary = Dict[str, Optional[int]]


def is_informative(pl: Optional[Sequence[Optional[float]]]) -> bool:
    """True if ``pl`` can discriminate between genotypes.

    Missing arrays, arrays with missing values and flat arrays (all values
    equal, e.g. all zero) carry no information.
    """
    if pl is None or len(pl) == 0:
        return False
    if any(v is None for v in pl):
        return False
    return len(set(pl)) > 1


def best_genotype_index(pl: Sequence[float]) -> int:
    # np.argmin returns the first occurrence on ties
    return int(np.argmin(np.asarray(pl, dtype=float)))


def genotype_quality(pl: Sequence[float]) -> Optional[int]:
    """Second-smallest minus smallest PL; ``None`` for a single-genotype array."""
    if len(pl) < 2:
        return None
    lowest = np.partition(np.asarray(pl, dtype=float), 1)[:2]
    return int(round(float(lowest[1] - lowest[0])))


def call_genotype(
    pl: Optional[Sequence[Optional[float]]],
    num_alleles: int,
    cache: GenotypeIndexCache,
) -> Tuple[Optional[AllelePair], Optional[int]]:
    """Pick the most likely diploid genotype.

    Returns ``(allele_index_pair, gq)``; the pair is ``None`` for a no-call.
    GQ is reported only when the allele set has an alternate allele.
    """
    if not is_informative(pl):
        return None, None
    assert pl is not None
    size = cache.size_for(num_alleles)
    if len(pl) != size:
        raise InconsistentArrayLengthError(
            f"PL array has {len(pl)} values but {num_alleles} alleles need {size}"
        )
    best = best_genotype_index(pl)
    pair = cache.allele_pair_at(best, num_alleles)
    gq = genotype_quality(pl) if num_alleles > 1 else None
    return pair, gq


def summarize_pls(
    pl: Sequence[Optional[int]],
    pair: Optional[AllelePair],
    num_alleles: int,
    cache: GenotypeIndexCache,
) -> PLSummary:
    """Condense a PL array into three genotype quality scalars.

    RGQ
        PL of the homozygous-reference genotype.
    ABGQ
        Smallest non-zero PL among the alternatives an allele-balance error
        would produce: the homozygous genotypes of a het call's alleles, or
        any genotype sharing an allele with a homozygous call.
    ALTGQ
        Confidence that no alternate is present; defined for hom-ref calls.
    """
    rgq = pl[0] if len(pl) else None
    if pair is None or not is_informative(pl):
        return {"RGQ": rgq, "ABGQ": None, "ALTGQ": None}

    called = set(pair)
    if len(called) > 1:
        candidates = [pl[cache.index_of(a, a)] for a in sorted(called)]
    else:
        candidates = [
            pl[i]
            for i, (a1, a2) in enumerate(cache.genotype_pairs(num_alleles))
            if a1 in called or a2 in called
        ]
    nonzero = [int(v) for v in candidates if v]
    abgq = min(nonzero) if nonzero else None
    altgq = abgq if called == {0} else None
    return {"RGQ": rgq, "ABGQ": abgq, "ALTGQ": altgq}


def _retain_likelihoods(
    pl: Tuple[Optional[int], ...],
    pair: Optional[AllelePair],
    num_alleles: int,
    cache: GenotypeIndexCache,
) -> Tuple[Optional[Tuple[Optional[int], ...]], Optional[PLSummary]]:
    return pl, None


def _summarize_likelihoods(
    pl: Tuple[Optional[int], ...],
    pair: Optional[AllelePair],
    num_alleles: int,
    cache: GenotypeIndexCache,
) -> Tuple[Optional[Tuple[Optional[int], ...]], Optional[PLSummary]]:
    return None, summarize_pls(pl, pair, num_alleles, cache)


_LIKELIHOOD_SHAPERS: Mapping[
    PLMode,
    Callable[..., Tuple[Optional[Tuple[Optional[int], ...]], Optional[PLSummary]]],
] = {
    PLMode.RETAIN: _retain_likelihoods,
    PLMode.SUMMARIZE: _summarize_likelihoods,
}


def is_reference_shorthand(sample: SampleGenotype, ref: str) -> bool:
    """Ploidy-1 reference genotype emitted upstream for samples with no data."""
    return sample.ploidy == 1 and sample.alleles[0] == ref


def call_sample(
    sample: SampleGenotype,
    *,
    site: SiteRecord,
    finalized: Tuple[str, ...],
    placeholder_removed: bool,
    cache: GenotypeIndexCache,
    pl_mode: PLMode = PLMode.RETAIN,
) -> GenotypeCall:
    """Produce the consensus genotype for one sample at one site."""
    attrs = {k: v for k, v in sample.attributes.items() if k not in _CONSUMED_FORMAT_KEYS}

    if is_reference_shorthand(sample, site.alleles[0]):
        return GenotypeCall(sample=sample.name, alleles=NO_CALL_PAIR, attributes=attrs)

    if sample.ploidy != DIPLOID:
        raise UnsupportedPloidyError(
            f"This tool assumes diploid genotypes, but found ploidy {sample.ploidy}",
            contig=site.contig,
            pos=site.pos,
            sample=sample.name,
        )

    n = len(finalized)
    # Without likelihoods there is nothing to call from; the input GT is not reused.
    allele_pair: Tuple[str, str] = NO_CALL_PAIR
    gq: Optional[int] = None
    pl: Optional[Tuple[Optional[int], ...]] = None
    pl_summary: Optional[PLSummary] = None
    ad: Optional[Tuple[Optional[int], ...]] = None

    try:
        if sample.ad is not None:
            ad = reduce_ad(sample.ad, n) if placeholder_removed else tuple(sample.ad)
        if sample.pl is not None:
            reduced = reduce_pl(sample.pl, n, cache)
            pair, gq = call_genotype(reduced, n, cache)
            allele_pair = NO_CALL_PAIR if pair is None else (finalized[pair[0]], finalized[pair[1]])
            pl, pl_summary = _LIKELIHOOD_SHAPERS[pl_mode](reduced, pair, n, cache)
    except InconsistentArrayLengthError as err:
        raise err.at(site.contig, site.pos, sample.name) from err

    return GenotypeCall(
        sample=sample.name,
        alleles=allele_pair,
        gq=gq,
        pl=pl,
        ad=ad,
        pl_summary=pl_summary,
        attributes=attrs,
    )
