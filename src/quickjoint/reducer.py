"""Truncation of PL/AD arrays to the finalized allele set.

PL arrays shrink by prefix because of the ordering described in
:mod:`quickjoint.genotype_index`; AD arrays are indexed by allele, so they
shrink by prefix trivially. Both functions return new tuples.
"""

from __future__ import annotations

from typing import Sequence, Tuple, TypeVar

from .errors import InconsistentArrayLengthError
from .genotype_index import GenotypeIndexCache

T = TypeVar("T")


def _prefix(raw: Sequence[T], size: int, what: str) -> Tuple[T, ...]:
    if len(raw) < size:
        raise InconsistentArrayLengthError(
            f"{what} array has {len(raw)} values but {size} are required"
        )
    return tuple(raw[:size])


def reduce_pl(
    raw: Sequence[T],
    new_allele_count: int,
    cache: GenotypeIndexCache,
) -> Tuple[T, ...]:
    """First ``size_for(new_allele_count)`` likelihoods of ``raw``."""
    return _prefix(raw, cache.size_for(new_allele_count), "PL")


def reduce_ad(raw: Sequence[T], new_allele_count: int) -> Tuple[T, ...]:
    """First ``new_allele_count`` allele depths of ``raw``."""
    return _prefix(raw, new_allele_count, "AD")
