import math

import pytest

from quickjoint.aggregate import (
    AlleleCounter,
    decode_sb,
    fisher_strand,
    normalize_table,
    strand_odds_ratio,
    sum_strand_bias,
)
from quickjoint.errors import MalformedSiteError
from quickjoint.models import NO_CALL, GenotypeCall, SampleGenotype


def gc(name, a1, a2):
    return GenotypeCall(sample=name, alleles=(a1, a2))


def test_two_het_samples():
    counter = AlleleCounter(("A", "C"))
    counter.add_all([gc("S1", "A", "C"), gc("S2", "C", "A")])
    assert counter.alt_counts() == (2,)
    assert counter.an == 4
    assert counter.alt_frequencies() == (0.5,)


def test_no_calls_do_not_count():
    counter = AlleleCounter(("A", "C", "G"))
    counter.add_all([gc("S1", "C", "G"), gc("S2", NO_CALL, NO_CALL), gc("S3", "A", "A")])
    assert counter.an == 4
    assert counter.alt_counts() == (1, 1)
    af = counter.alt_frequencies()
    assert af == (0.25, 0.25)
    # ref frequency is the remainder
    assert math.isclose(1.0 - sum(af), 0.5)


def test_all_no_calls_have_no_af():
    counter = AlleleCounter(("A", "C"))
    counter.add(gc("S1", NO_CALL, NO_CALL))
    assert counter.an == 0
    assert counter.alt_counts() == (0,)
    assert counter.alt_frequencies() is None


def test_sum_strand_bias_skips_missing():
    samples = [
        SampleGenotype(name="S1", alleles=("A", "C"), sb=(5, 5, 6, 6)),
        SampleGenotype(name="S2", alleles=("A", "A")),
        SampleGenotype(name="S3", alleles=("A", "A"), sb=(10, 10, 0, 0)),
    ]
    assert sum_strand_bias(samples) == (15, 15, 6, 6)


def test_sum_strand_bias_rejects_bad_table():
    samples = [SampleGenotype(name="S1", alleles=("A", "C"), sb=(1, 2, 3))]
    with pytest.raises(MalformedSiteError) as exc:
        sum_strand_bias(samples)
    assert "S1" in str(exc.value)


def test_decode_and_normalize():
    assert decode_sb([1, 2, 3, 4]) == ((1, 2), (3, 4))
    assert normalize_table(((100, 100), (100, 100))) == ((100, 100), (100, 100))
    assert normalize_table(((400, 200), (100, 100))) == ((200, 100), (50, 50))


def test_balanced_strands():
    assert fisher_strand([10, 10, 10, 10]) == 0.0
    assert strand_odds_ratio([10, 10, 10, 10]) == round(math.log(2.0), 3)


def test_biased_strands():
    assert fisher_strand([20, 0, 0, 20]) > 60.0
    assert strand_odds_ratio([20, 0, 0, 20]) > strand_odds_ratio([10, 10, 10, 10])


def test_empty_table():
    assert fisher_strand([0, 0, 0, 0]) == 0.0
