"""Canonical diploid genotype indexing.

A diploid genotype over alleles ``a1 <= a2`` lives at linear index
``a2 * (a2 + 1) / 2 + a1`` of a PL array (the VCF ``Number=G`` order). Adding
an allele only appends combinations whose ``a2`` is the new allele, so the
array for ``n - 1`` alleles is always a prefix of the array for ``n``.
"""

from __future__ import annotations

import logging
import math
from typing import List, Tuple

logger = logging.getLogger(__name__)

AllelePair = Tuple[int, int]

# Reference plus six alternates.
DEFAULT_MAX_ALLELES = 7


def genotype_count(num_alleles: int) -> int:
    """Number of unordered diploid genotypes over ``num_alleles`` alleles."""
    if num_alleles < 1:
        raise ValueError(f"num_alleles must be >= 1, got {num_alleles}")
    return num_alleles * (num_alleles + 1) // 2


def genotype_index(a1: int, a2: int) -> int:
    if a1 > a2:
        a1, a2 = a2, a1
    if a1 < 0:
        raise ValueError(f"Allele indices must be >= 0, got ({a1}, {a2})")
    return a2 * (a2 + 1) // 2 + a1


def allele_pair(index: int) -> AllelePair:
    """Inverse of :func:`genotype_index`."""
    if index < 0:
        raise ValueError(f"Genotype index must be >= 0, got {index}")
    a2 = (math.isqrt(8 * index + 1) - 1) // 2
    a1 = index - a2 * (a2 + 1) // 2
    return a1, a2


def _enumerate_pairs(num_alleles: int) -> Tuple[AllelePair, ...]:
    return tuple((a1, a2) for a2 in range(num_alleles) for a1 in range(a2 + 1))


class GenotypeIndexCache:
    """Precomputed genotype counts and pair lists for small allele counts.

    Everything is built in ``__init__``; afterwards the object is read-only
    and can be shared freely. Requests above ``max_alleles`` are answered
    from the closed-form formulas and are not stored.
    """

    def __init__(self, max_alleles: int = DEFAULT_MAX_ALLELES) -> None:
        if max_alleles < 1:
            raise ValueError(f"max_alleles must be >= 1, got {max_alleles}")
        self.max_alleles = int(max_alleles)
        self._sizes: List[int] = [genotype_count(n) for n in range(1, self.max_alleles + 1)]
        self._pairs: List[Tuple[AllelePair, ...]] = [
            _enumerate_pairs(n) for n in range(1, self.max_alleles + 1)
        ]
        logger.debug(
            "Precomputed diploid genotype tables for 1..%d alleles", self.max_alleles
        )

    def is_cached(self, num_alleles: int) -> bool:
        return 1 <= num_alleles <= self.max_alleles

    def size_for(self, num_alleles: int) -> int:
        if self.is_cached(num_alleles):
            return self._sizes[num_alleles - 1]
        return genotype_count(num_alleles)

    def genotype_pairs(self, num_alleles: int) -> Tuple[AllelePair, ...]:
        """Allele-index pairs ordered by increasing genotype index."""
        if self.is_cached(num_alleles):
            return self._pairs[num_alleles - 1]
        genotype_count(num_alleles)  # validates
        return _enumerate_pairs(num_alleles)

    def allele_pair_at(self, index: int, num_alleles: int) -> AllelePair:
        size = self.size_for(num_alleles)
        if not 0 <= index < size:
            raise ValueError(
                f"Genotype index {index} out of range for {num_alleles} alleles (size {size})"
            )
        if self.is_cached(num_alleles):
            return self._pairs[num_alleles - 1][index]
        return allele_pair(index)

    def index_of(self, a1: int, a2: int) -> int:
        return genotype_index(a1, a2)
