import json
from pathlib import Path

import pysam
import pytest

from quickjoint.errors import MalformedSiteError
from quickjoint.genotyper import genotype_vcf
from quickjoint.models import GenotypingConfig, PLMode, Region
from quickjoint.toy_data import make_toy_data
from quickjoint.vcfio import DbsnpAnnotator, _passthrough_info, iter_sites


def _records(path: Path) -> list:
    with pysam.VariantFile(str(path)) as vcf:
        return list(vcf)


def test_toy_sites_are_read(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    with pysam.VariantFile(toy["merged_vcf"]) as vcf:
        sites = list(iter_sites(vcf))
    assert [s.pos for s in sites] == [50, 100, 150, 180]
    first = sites[0]
    assert first.alleles == ("A", "C", "<NON_REF>")
    assert first.qual_approx == 120.0
    assert first.depth == 60
    assert first.samples[2].ploidy == 1
    assert first.samples[2].attributes["MIN_DP"] == 15
    assert first.samples[0].pl == (200, 0, 250, 230, 280, 500)


def test_genotype_toy_vcf(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    out = tmp_path / "out"
    run = genotype_vcf(
        vcf_path=toy["merged_vcf"],
        outdir=out,
        config=GenotypingConfig(),
        sites_only_vcf=out / "sites.vcf.gz",
        progress=False,
    )

    counts = run["counts"]
    assert counts["sites_total"] == 4
    assert counts["sites_emitted"] == 2
    assert counts["sites_dropped_low_quality"] == 1
    assert counts["sites_dropped_nonvariant"] == 1
    assert run["genotype_counts"] == {"calls": 4, "no_calls": 2}
    assert (out / "summary.json").exists()
    assert json.loads((out / "summary.json").read_text())["min_qual_approx"] == pytest.approx(60.0)

    recs = _records(out / "genotyped.vcf.gz")
    assert [r.pos for r in recs] == [50, 150]
    snv, multi = recs

    assert snv.alleles == ("A", "C")
    assert snv.info["AC"] == (1,)
    assert snv.info["AN"] == 4
    assert snv.info["AF"][0] == pytest.approx(0.25)
    assert snv.info["QD"] == pytest.approx(2.0)
    assert snv.info["MQ"] == pytest.approx(60.0)
    assert "RAW_MQandDP" not in snv.info
    assert snv.samples["S1"]["GT"] == (0, 1)
    assert snv.samples["S1"]["GQ"] == 200
    assert snv.samples["S1"]["PL"] == (200, 0, 250)
    assert snv.samples["S1"]["AD"] == (10, 12)
    assert snv.samples["S3"]["GT"] == (None, None)
    assert "MIN_DP" not in snv.samples["S3"] or snv.samples["S3"]["MIN_DP"] is None

    assert multi.alleles == ("C", "G", "T")
    assert multi.info["AC"] == (3, 1)
    assert multi.samples["S1"]["GT"] == (1, 2)
    assert multi.samples["S2"]["GT"] == (1, 1)
    assert multi.samples["S3"]["GT"] == (None, None)

    with pysam.VariantFile(str(out / "genotyped.vcf.gz")) as vcf:
        assert "GVCFBlock" not in str(vcf.header)

    sites_only = _records(out / "sites.vcf.gz")
    assert [r.pos for r in sites_only] == [50, 150]
    assert sites_only[0].info["SB_TABLE"] == (15, 15, 6, 6)


def test_genotype_toy_vcf_within_regions(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    out = tmp_path / "out"
    config = GenotypingConfig(
        regions=(Region("chr1", 41, 60),),
        only_output_calls_starting_in_intervals=True,
    )
    run = genotype_vcf(vcf_path=toy["merged_vcf"], outdir=out, config=config, progress=False)
    assert run["counts"]["sites_outside_intervals"] == 3
    assert [r.pos for r in _records(out / "genotyped.vcf.gz")] == [50]


def test_summarized_pls(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    out = tmp_path / "out"
    genotype_vcf(
        vcf_path=toy["merged_vcf"],
        outdir=out,
        config=GenotypingConfig(pl_mode=PLMode.SUMMARIZE),
        progress=False,
    )
    snv = _records(out / "genotyped.vcf.gz")[0]
    assert snv.samples["S2"]["RGQ"] == 0
    assert snv.samples["S2"]["ALTGQ"] == 60
    assert snv.samples["S1"]["RGQ"] == 200


def test_dbsnp_ids(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")

    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.contigs.add("chr1", length=200)
    db_vcf = tmp_path / "dbsnp.vcf"
    with pysam.VariantFile(str(db_vcf), "w", header=header) as vcf:
        rec = vcf.new_record(contig="chr1", start=49, stop=50, alleles=("A", "C"), id="rs123")
        vcf.write(rec)
    db_gz = tmp_path / "dbsnp.vcf.gz"
    pysam.tabix_compress(str(db_vcf), str(db_gz), force=True)
    pysam.tabix_index(str(db_gz), preset="vcf", force=True)

    out = tmp_path / "out"
    genotype_vcf(
        vcf_path=toy["merged_vcf"],
        outdir=out,
        config=GenotypingConfig(),
        dbsnp_path=db_gz,
        progress=False,
    )
    snv, multi = _records(out / "genotyped.vcf.gz")
    assert snv.id == "rs123"
    assert snv.info["DB"] is True
    assert multi.id is None


def test_zero_depth_aborts_by_default(tmp_path: Path):
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.contigs.add("chr1", length=200)
    header.info.add("QUALapprox", 1, "Integer", "QUALapprox")
    header.info.add("VarDP", 1, "Integer", "VarDP")
    header.formats.add("GT", 1, "String", "Genotype")
    header.formats.add("PL", "G", "Integer", "PL")
    header.add_sample("S1")
    vcf_path = tmp_path / "bad.vcf"
    with pysam.VariantFile(str(vcf_path), "w", header=header) as vcf:
        rec = vcf.new_record(contig="chr1", start=9, stop=10, alleles=("A", "C", "<NON_REF>"))
        rec.info["QUALapprox"] = 200
        rec.info["VarDP"] = 0
        rec.samples["S1"]["GT"] = (0, 1)
        rec.samples["S1"]["PL"] = (100, 0, 100, 200, 200, 300)
        vcf.write(rec)

    with pytest.raises(MalformedSiteError):
        genotype_vcf(vcf_path=str(vcf_path), outdir=tmp_path / "out", config=GenotypingConfig(), progress=False)

    run = genotype_vcf(
        vcf_path=str(vcf_path),
        outdir=tmp_path / "out2",
        config=GenotypingConfig(on_error="skip"),
        progress=False,
    )
    assert run["counts"]["sites_error"] == 1
    assert run["counts"]["sites_emitted"] == 0
    assert "chr1:10" in run["site_errors"][0]


def _write_dbsnp(tmp_path: Path) -> Path:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.contigs.add("chr1", length=200)
    db_vcf = tmp_path / "dbsnp.vcf"
    with pysam.VariantFile(str(db_vcf), "w", header=header) as vcf:
        rec = vcf.new_record(contig="chr1", start=49, stop=50, alleles=("A", "C"), id="rs123")
        vcf.write(rec)
    return db_vcf


def test_unindexed_dbsnp_is_rejected(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    db_vcf = _write_dbsnp(tmp_path)
    with pytest.raises(ValueError) as exc:
        DbsnpAnnotator(db_vcf)
    assert "index" in str(exc.value)
    with pytest.raises(ValueError):
        genotype_vcf(
            vcf_path=toy["merged_vcf"],
            outdir=tmp_path / "out",
            config=GenotypingConfig(),
            dbsnp_path=db_vcf,
            progress=False,
        )


def test_dbsnp_lookup_on_unknown_contig(tmp_path: Path):
    db_vcf = _write_dbsnp(tmp_path)
    db_gz = tmp_path / "dbsnp.vcf.gz"
    pysam.tabix_compress(str(db_vcf), str(db_gz), force=True)
    pysam.tabix_index(str(db_gz), preset="vcf", force=True)
    annotator = DbsnpAnnotator(db_gz)
    try:
        assert annotator.lookup("chr1", 50, "A", ["C"]) == "rs123"
        assert annotator.lookup("chr1", 50, "A", ["G"]) is None
        assert annotator.lookup("chr7", 50, "A", ["C"]) is None
    finally:
        annotator.close()


def test_unsized_info_is_not_passed_through():
    header = pysam.VariantHeader()
    header.info.add("AS_RAW_MQ", ".", "String", "Allele-specific raw MQ")
    header.info.add("QUALapprox", 1, "Integer", "QUALapprox")
    header.info.add("AS_AD", "R", "Integer", "Allele-specific depth")
    info = {"AS_RAW_MQ": ("10|20|0",), "QUALapprox": 120, "AS_AD": (5, 6, 0)}
    assert _passthrough_info(header, info, 2) == {"QUALapprox": 120, "AS_AD": (5, 6)}
