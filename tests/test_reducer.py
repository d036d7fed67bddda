import pytest

from quickjoint.errors import InconsistentArrayLengthError
from quickjoint.genotype_index import GenotypeIndexCache
from quickjoint.reducer import reduce_ad, reduce_pl


def test_reduce_pl_drops_placeholder_genotypes():
    cache = GenotypeIndexCache()
    raw = [10, 0, 20, 30, 40, 50]  # A, C, <NON_REF>
    assert reduce_pl(raw, 2, cache) == (10, 0, 20)


def test_reduce_pl_returns_new_tuple():
    cache = GenotypeIndexCache()
    raw = [0, 1, 2]
    out = reduce_pl(raw, 2, cache)
    raw[0] = 99
    assert out == (0, 1, 2)


def test_reduce_pl_too_short():
    cache = GenotypeIndexCache()
    with pytest.raises(InconsistentArrayLengthError):
        reduce_pl([0, 1, 2], 3, cache)


def test_reduce_pl_above_cache_ceiling():
    cache = GenotypeIndexCache(max_alleles=2)
    raw = list(range(15))
    assert reduce_pl(raw, 4, cache) == tuple(range(10))


def test_reduce_ad():
    assert reduce_ad([7, 3, 0], 2) == (7, 3)
    with pytest.raises(InconsistentArrayLengthError):
        reduce_ad([7], 2)
