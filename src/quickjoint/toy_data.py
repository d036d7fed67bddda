from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Tuple

import pysam

from .models import NON_REF
from .utils import ensure_outdir, write_json

_CONTIG = "chr1"
_CONTIG_LENGTH = 200
_SAMPLES = ["S1", "S2", "S3"]

# (pos, alleles, QUALapprox, VarDP, RAW_MQandDP, per-sample FORMAT values)
_ToySite = Tuple[int, Tuple[str, ...], int, int, Tuple[float, float], List[Dict[str, Any]]]

_TOY_SITES: List[_ToySite] = [
    # Biallelic SNV: S1 het, S2 hom-ref, S3 ploidy-1 reference shorthand.
    (
        50,
        ("A", "C", NON_REF),
        120,
        60,
        (216000.0, 60.0),
        [
            {"GT": (0, 1), "AD": (10, 12, 0), "DP": 22, "PL": (200, 0, 250, 230, 280, 500), "SB": (5, 5, 6, 6)},
            {"GT": (0, 0), "AD": (20, 0, 0), "DP": 20, "PL": (0, 60, 900, 60, 900, 900), "SB": (10, 10, 0, 0)},
            {"GT": (0,), "DP": 18, "MIN_DP": 15},
        ],
    ),
    # Below the default QUALapprox threshold.
    (
        100,
        ("G", "T", NON_REF),
        20,
        30,
        (54000.0, 30.0),
        [
            {"GT": (0, 1), "AD": (25, 3, 0), "DP": 28, "PL": (20, 0, 600, 100, 650, 700), "SB": (12, 13, 1, 2)},
            {"GT": (0,), "DP": 10, "MIN_DP": 9},
            {"GT": (0,), "DP": 12, "MIN_DP": 11},
        ],
    ),
    # Multiallelic: S1 het-alt G/T, S2 hom-alt G/G, S3 uninformative.
    (
        150,
        ("C", "G", "T", NON_REF),
        300,
        40,
        (144000.0, 40.0),
        [
            {
                "GT": (1, 2),
                "AD": (0, 9, 8, 0),
                "DP": 17,
                "PL": (400, 300, 200, 300, 0, 200, 500, 500, 500, 600),
                "SB": (0, 0, 9, 8),
            },
            {
                "GT": (1, 1),
                "AD": (0, 15, 0, 0),
                "DP": 15,
                "PL": (300, 100, 0, 300, 100, 300, 500, 500, 500, 600),
                "SB": (0, 0, 7, 8),
            },
            {"GT": (None, None), "DP": 0, "PL": (0, 0, 0, 0, 0, 0, 0, 0, 0, 0)},
        ],
    ),
    # Only the placeholder as alternate: not a variant site.
    (
        180,
        ("T", NON_REF),
        0,
        30,
        (54000.0, 30.0),
        [
            {"GT": (0, 0), "AD": (10, 0), "DP": 10, "PL": (0, 30, 450)},
            {"GT": (0, 0), "AD": (10, 0), "DP": 10, "PL": (0, 30, 450)},
            {"GT": (0, 0), "AD": (10, 0), "DP": 10, "PL": (0, 30, 450)},
        ],
    ),
]


def _toy_header() -> pysam.VariantHeader:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.add_meta("GVCFBlock0-20", "minGQ=0(inclusive),maxGQ=20(exclusive)")
    header.contigs.add(_CONTIG, length=_CONTIG_LENGTH)
    header.info.add("QUALapprox", 1, "Integer", "Sum of PL[0] values; used to approximate the QUAL score")
    header.info.add("VarDP", 1, "Integer", "(informative) depth over variant genotypes")
    header.info.add("DP", 1, "Integer", "Approximate read depth")
    header.info.add("RAW_MQandDP", 2, "Float", "Raw data (sum of squared MQ and total depth) for improved RMS Mapping Quality calculation")
    header.formats.add("GT", 1, "String", "Genotype")
    header.formats.add("AD", "R", "Integer", "Allelic depths for the ref and alt alleles in the order listed")
    header.formats.add("DP", 1, "Integer", "Approximate read depth")
    header.formats.add("GQ", 1, "Integer", "Genotype Quality")
    header.formats.add("PL", "G", "Integer", "Normalized, Phred-scaled likelihoods for genotypes")
    header.formats.add("SB", 4, "Integer", "Per-sample component statistics which comprise the Fisher's Exact Test to detect strand bias")
    header.formats.add("MIN_DP", 1, "Integer", "Minimum DP observed within the GVCF block")
    for s in _SAMPLES:
        header.add_sample(s)
    return header


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny merged multi-sample GVCF suitable for quick demos/tests.

    The outputs include:
    - merged.g.vcf.gz (+ .tbi): 3 samples, 4 sites covering a het SNV, a
      low-quality site, a multiallelic site and a placeholder-only site
    - regions.bed: one interval covering only the first site

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    vcf_path = outdir_p / "merged.g.vcf"
    header = _toy_header()
    with pysam.VariantFile(str(vcf_path), "w", header=header) as vcf:
        for pos, alleles, qual_approx, var_dp, raw_mq, sample_values in _TOY_SITES:
            rec = vcf.new_record(
                contig=_CONTIG,
                start=pos - 1,
                stop=pos - 1 + len(alleles[0]),
                alleles=alleles,
            )
            rec.info["QUALapprox"] = qual_approx
            rec.info["VarDP"] = var_dp
            rec.info["DP"] = var_dp + 2
            rec.info["RAW_MQandDP"] = raw_mq
            for i, values in enumerate(sample_values):
                s = rec.samples[_SAMPLES[i]]
                s["GT"] = values["GT"]  # GT first; PL/AD sizes depend on ploidy
                for key, value in values.items():
                    if key != "GT":
                        s[key] = value
            vcf.write(rec)

    vcf_gz = outdir_p / "merged.g.vcf.gz"
    pysam.tabix_compress(str(vcf_path), str(vcf_gz), force=True)
    pysam.tabix_index(str(vcf_gz), preset="vcf", force=True)

    bed_path = outdir_p / "regions.bed"
    bed_path.write_text(f"{_CONTIG}\t40\t60\n", encoding="utf-8")

    summary = {
        "merged_vcf": str(vcf_gz),
        "regions_bed": str(bed_path),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
