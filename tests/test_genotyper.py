import logging

import pytest

from quickjoint.errors import MalformedSiteError, SiteError
from quickjoint.genotyper import SiteGenotyper, genotype_sites
from quickjoint.models import GenotypingConfig, Region, SampleGenotype, SiteRecord
from quickjoint.summarize import (
    RegionSet,
    finalize_mapping_quality,
    passes_quality_threshold,
    quality_by_depth,
)


def het(name: str) -> SampleGenotype:
    return SampleGenotype(
        name=name,
        alleles=("A", "C"),
        pl=(200, 0, 250, 230, 280, 500),
        ad=(10, 12, 0),
        sb=(5, 5, 6, 6),
    )


def make_site(pos: int = 100, qual=120.0, depth=60, alleles=("A", "C", "<NON_REF>"), samples=None) -> SiteRecord:
    return SiteRecord(
        contig="chr1",
        pos=pos,
        alleles=alleles,
        qual_approx=qual,
        depth=depth,
        samples=tuple(samples if samples is not None else [het("S1"), het("S2")]),
        info={"RAW_MQandDP": (216000.0, 60.0)},
    )


def test_quality_by_depth():
    assert quality_by_depth(120.0, 60) == 2.0


def test_zero_depth_is_malformed():
    with pytest.raises(MalformedSiteError) as exc:
        quality_by_depth(120.0, 0, contig="chr1", pos=7)
    assert "chr1:7" in str(exc.value)


def test_default_threshold_includes_heterozygosity_prior():
    config = GenotypingConfig()
    assert config.min_qual_approx == pytest.approx(60.0)
    assert passes_quality_threshold(60.5, config)
    assert not passes_quality_threshold(59.5, config)


def test_region_set():
    regions = RegionSet([Region("chr1", 50, 60), Region("chr1", 10, 20), Region("chr2", 1, 5)])
    assert len(regions) == 3
    assert regions.contains("chr1", 10)
    assert regions.contains("chr1", 60)
    assert not regions.contains("chr1", 30)
    assert not regions.contains("chr3", 10)
    assert regions.overlaps("chr1", 45, 52)
    assert not regions.overlaps("chr1", 21, 49)


def test_mapping_quality():
    assert finalize_mapping_quality({"RAW_MQandDP": (216000.0, 60.0)}) == 60.0
    assert finalize_mapping_quality({"RAW_MQ": 90000.0, "MQ_DP": 100}) == 30.0
    assert finalize_mapping_quality({"RAW_MQandDP": (0.0, 0.0)}) is None
    assert finalize_mapping_quality({}) is None


def test_emitted_site_summary():
    outcome = SiteGenotyper(GenotypingConfig()).genotype(make_site())
    assert outcome.status == "emitted"
    s = outcome.summary
    assert s.alleles == ("A", "C")
    assert s.ac == (2,)
    assert s.an == 4
    assert s.af == (0.5,)
    assert s.qd == 2.0
    assert s.sb_table == (10, 10, 12, 12)
    assert s.mq == 60.0
    assert [c.pl for c in outcome.calls] == [(200, 0, 250), (200, 0, 250)]


def test_placeholder_only_site_is_not_variant():
    outcome = SiteGenotyper(GenotypingConfig()).genotype(make_site(alleles=("A", "<NON_REF>")))
    assert outcome.status == "dropped_nonvariant"


def test_low_quality_site_is_dropped():
    outcome = SiteGenotyper(GenotypingConfig()).genotype(make_site(qual=20.0))
    assert outcome.status == "dropped_low_quality"
    assert outcome.summary is None


def test_missing_qual_warns_once(caplog):
    genotyper = SiteGenotyper(GenotypingConfig())
    with caplog.at_level(logging.WARNING):
        for pos in (1, 2, 3):
            assert genotyper.genotype(make_site(pos=pos, qual=None)).status == "dropped_low_quality"
    assert genotyper.missing_qual_warning.count == 3
    assert sum("QUALapprox" in r.getMessage() for r in caplog.records) == 1


def test_zero_depth_site_is_an_error():
    outcome = SiteGenotyper(GenotypingConfig()).genotype(make_site(depth=0))
    assert outcome.status == "error"
    assert isinstance(outcome.error, MalformedSiteError)
    assert outcome.error.locus == "chr1:100"


def test_region_gate_drops_site_without_error():
    config = GenotypingConfig(
        regions=(Region("chr1", 500, 600),),
        only_output_calls_starting_in_intervals=True,
    )
    outcome = SiteGenotyper(config).genotype(make_site(pos=100))
    assert outcome.status == "dropped_region"
    assert outcome.error is None
    assert outcome.summary is not None


def test_region_gate_keeps_site_starting_inside():
    config = GenotypingConfig(
        regions=(Region("chr1", 90, 110),),
        only_output_calls_starting_in_intervals=True,
    )
    assert SiteGenotyper(config).genotype(make_site(pos=100)).emitted


def test_error_policy_abort():
    sites = [make_site(pos=1), make_site(pos=2, depth=0), make_site(pos=3)]
    genotyper = SiteGenotyper(GenotypingConfig(on_error="abort"))
    with pytest.raises(SiteError):
        list(genotype_sites(sites, genotyper))


def test_error_policy_skip():
    sites = [make_site(pos=1), make_site(pos=2, depth=0), make_site(pos=3)]
    genotyper = SiteGenotyper(GenotypingConfig(on_error="skip"))
    statuses = [o.status for o in genotype_sites(sites, genotyper)]
    assert statuses == ["emitted", "error", "emitted"]


def test_unsupported_ploidy_is_reported_per_site():
    samples = [SampleGenotype(name="S1", alleles=("A", "C", "C"), pl=tuple(range(10)))]
    outcome = SiteGenotyper(GenotypingConfig()).genotype(make_site(samples=samples))
    assert outcome.status == "error"
    assert "S1" in str(outcome.error)


def test_sample_without_pl_does_not_count_toward_an():
    samples = [
        SampleGenotype(name="S1", alleles=("A", "C"), ad=(10, 12, 0)),
        SampleGenotype(name="S2", alleles=("A", "A"), pl=(0, 60, 900, 60, 900, 900)),
    ]
    outcome = SiteGenotyper(GenotypingConfig()).genotype(make_site(samples=samples))
    assert outcome.status == "emitted"
    assert outcome.calls[0].is_no_call
    assert outcome.summary.ac == (0,)
    assert outcome.summary.an == 2


@pytest.mark.parametrize("qual", [None, 5.0])
def test_zero_depth_is_an_error_even_below_threshold(qual):
    outcome = SiteGenotyper(GenotypingConfig()).genotype(make_site(qual=qual, depth=0))
    assert outcome.status == "error"
    assert isinstance(outcome.error, MalformedSiteError)
