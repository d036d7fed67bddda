"""Reading merged GVCF sites and writing genotyped VCFs with pysam."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import pysam

from .models import NO_CALL, GenotypeCall, PLMode, SampleGenotype, SiteOutcome, SiteRecord, SiteSummary
from .summarize import RAW_MQ_AND_DP_KEY
from .utils import as_int_tuple, first_or_none

logger = logging.getLogger(__name__)

GVCF_BLOCK = "GVCFBlock"
QUAL_APPROX_KEY = "QUALapprox"
VARIANT_DEPTH_KEY = "VarDP"
DEPTH_KEY = "DP"
SB_TABLE_KEY = "SB_TABLE"

# FORMAT fields read into dedicated SampleGenotype slots or recomputed.
_STRUCTURED_FORMAT_KEYS = {"GT", "PL", "AD", "SB", "GQ"}

_INFO_LINES: List[Tuple[str, Any, str, str]] = [
    ("AC", "A", "Integer", "Allele count in genotypes, for each ALT allele, in the same order as listed"),
    ("AF", "A", "Float", "Allele Frequency, for each ALT allele, in the same order as listed"),
    ("AN", 1, "Integer", "Total number of alleles in called genotypes"),
    ("DP", 1, "Integer", "Approximate read depth; some reads may have been filtered"),
    ("FS", 1, "Float", "Phred-scaled p-value using Fisher's exact test to detect strand bias"),
    ("SOR", 1, "Float", "Symmetric Odds Ratio of 2x2 contingency table to detect strand bias"),
    ("QD", 1, "Float", "Variant Confidence/Quality by Depth"),
    ("MQ", 1, "Float", "RMS Mapping Quality"),
    (SB_TABLE_KEY, 4, "Integer", "Forward/reverse read counts for strand bias tests"),
]

_SITES_ONLY_INFO_KEYS = {"AC", "AF", "AN", SB_TABLE_KEY}

_FORMAT_LINES: List[Tuple[str, Any, str, str]] = [
    ("GT", 1, "String", "Genotype"),
    ("AD", "R", "Integer", "Allelic depths for the ref and alt alleles in the order listed"),
    ("GQ", 1, "Integer", "Genotype Quality"),
]
_PL_FORMAT_LINES: List[Tuple[str, Any, str, str]] = [
    ("PL", "G", "Integer", "Normalized, Phred-scaled likelihoods for genotypes"),
]
_PL_SUMMARY_FORMAT_LINES: List[Tuple[str, Any, str, str]] = [
    ("RGQ", 1, "Integer", "Unconditional reference genotype confidence, encoded as a phred quality -10*log10 p(genotype call is wrong)"),
    ("ABGQ", 1, "Integer", "Genotype quality of the allele-balance alternatives to the called genotype"),
    ("ALTGQ", 1, "Integer", "Genotype quality that no alternate allele is present"),
]
_DBSNP_INFO_LINE = ("DB", 0, "Flag", "dbSNP Membership")


# -----------------
# Reading
# -----------------


def _sample_value(sample: Any, key: str) -> Any:
    try:
        value = sample[key]
    except KeyError:
        return None
    if isinstance(value, tuple) and all(v is None for v in value):
        return None
    return value


def _number(header_defs: Any, key: str) -> Any:
    try:
        return header_defs[key].number
    except KeyError:
        return None


def record_to_site(rec: pysam.VariantRecord) -> SiteRecord:
    """Convert one merged GVCF record into a SiteRecord."""
    header = rec.header
    info: Dict[str, Any] = {k: v for k, v in rec.info.items()}

    qual = first_or_none(info.get(QUAL_APPROX_KEY))
    depth = first_or_none(info.get(VARIANT_DEPTH_KEY))
    if depth is None:
        depth = first_or_none(info.get(DEPTH_KEY))

    samples: List[SampleGenotype] = []
    for name in rec.samples:
        s = rec.samples[name]
        gt = tuple(s.alleles) if "GT" in s else ()
        if not gt:
            gt = (None, None)
        attrs: Dict[str, Any] = {}
        for key in s.keys():
            if key in _STRUCTURED_FORMAT_KEYS:
                continue
            if _number(header.formats, key) in ("A", "R", "G"):
                continue
            value = _sample_value(s, key)
            if value is not None:
                attrs[key] = value
        sb = _sample_value(s, "SB")
        samples.append(
            SampleGenotype(
                name=str(name),
                alleles=gt,
                pl=as_int_tuple(_sample_value(s, "PL")),
                ad=as_int_tuple(_sample_value(s, "AD")),
                sb=tuple(sb) if sb is not None else None,
                attributes=attrs,
            )
        )

    return SiteRecord(
        contig=str(rec.contig),
        pos=int(rec.pos),
        alleles=tuple(rec.alleles or ()),
        qual_approx=float(qual) if qual is not None else None,
        depth=int(depth) if depth is not None else None,
        samples=tuple(samples),
        record_id=rec.id,
        info=info,
    )


def iter_sites(vcf: pysam.VariantFile) -> Iterator[SiteRecord]:
    for rec in vcf:
        yield record_to_site(rec)


# -----------------
# Header
# -----------------


def build_output_header(
    in_header: pysam.VariantHeader,
    *,
    pl_mode: PLMode = PLMode.RETAIN,
    with_samples: bool = True,
    with_dbsnp: bool = False,
) -> pysam.VariantHeader:
    """Copy input metadata (minus GVCF blocks) and declare the annotations we add."""
    header = pysam.VariantHeader()
    for hrec in in_header.records:
        if hrec.key == "fileformat" or hrec.key.startswith(GVCF_BLOCK):
            continue
        header.add_record(hrec)

    info_lines = _INFO_LINES if with_samples else [
        line for line in _INFO_LINES if line[0] in _SITES_ONLY_INFO_KEYS
    ]
    if with_dbsnp:
        info_lines = info_lines + [_DBSNP_INFO_LINE]
    for key, number, typ, desc in info_lines:
        if key not in header.info:
            header.info.add(key, number, typ, desc)

    if with_samples:
        fmt_lines = list(_FORMAT_LINES)
        fmt_lines += _PL_FORMAT_LINES if pl_mode is PLMode.RETAIN else _PL_SUMMARY_FORMAT_LINES
        for key, number, typ, desc in fmt_lines:
            if key not in header.formats:
                header.formats.add(key, number, typ, desc)
        for sample in in_header.samples:
            header.add_sample(sample)
    return header


# -----------------
# dbSNP
# -----------------


class DbsnpAnnotator:
    """Look up rsIDs for a site in an indexed dbSNP VCF."""

    def __init__(self, path: str | Path) -> None:
        self.path = str(path)
        self._vcf = pysam.VariantFile(self.path)
        if self._vcf.index is None:
            self._vcf.close()
            raise ValueError(
                f"dbSNP VCF {self.path} has no index. Run: bgzip {self.path}; tabix -p vcf {self.path}.gz"
            )

    def lookup(self, contig: str, pos: int, ref: str, alts: Iterable[str]) -> Optional[str]:
        wanted = set(alts)
        if contig not in self._vcf.header.contigs:
            return None
        hits = self._vcf.fetch(contig, pos - 1, pos)
        ids: List[str] = []
        for rec in hits:
            if rec.pos != pos or rec.ref != ref or rec.id is None:
                continue
            if wanted.intersection(rec.alts or ()):
                ids.extend(i for i in rec.id.split(";") if i not in ids)
        return ";".join(ids) if ids else None

    def close(self) -> None:
        self._vcf.close()


def _merge_ids(existing: Optional[str], extra: Optional[str]) -> Optional[str]:
    if not extra:
        return existing
    if not existing:
        return extra
    ids = existing.split(";")
    ids.extend(i for i in extra.split(";") if i not in ids)
    return ";".join(ids)


# -----------------
# Writing
# -----------------


def _open_for_write(path: str | Path, header: pysam.VariantHeader) -> pysam.VariantFile:
    mode = "wz" if str(path).endswith(".gz") else "w"
    return pysam.VariantFile(str(path), mode, header=header)


def _passthrough_info(
    header: pysam.VariantHeader, info: Dict[str, Any], n_alleles: int
) -> Dict[str, Any]:
    """INFO values carried over from the input, resized to the finalized alleles."""
    out: Dict[str, Any] = {}
    for key, value in info.items():
        if key == RAW_MQ_AND_DP_KEY or key not in header.info or value is None:
            continue
        number = header.info[key].number
        if number == "A":
            value = tuple(value)[: n_alleles - 1]
        elif number == "R":
            value = tuple(value)[:n_alleles]
        elif number in ("G", "."):
            # cannot be resized without knowing the per-allele layout
            continue
        out[key] = value
    return out


def _gt_indices(call: GenotypeCall, alleles: Tuple[str, ...]) -> Tuple[Optional[int], ...]:
    index = {a: i for i, a in enumerate(alleles)}
    return tuple(None if a == NO_CALL else index[a] for a in call.alleles)


class GenotypedVcfWriter:
    """Writes genotyped sites, plus an optional sites-only VCF.

    The sites-only record is written for every genotyped site, including
    sites later dropped by the region gate.
    """

    def __init__(
        self,
        out_vcf: str | Path,
        in_header: pysam.VariantHeader,
        *,
        pl_mode: PLMode = PLMode.RETAIN,
        sites_only_vcf: Optional[str | Path] = None,
        dbsnp: Optional[DbsnpAnnotator] = None,
    ) -> None:
        self.out_vcf = str(out_vcf)
        self.sites_only_vcf = str(sites_only_vcf) if sites_only_vcf is not None else None
        self.pl_mode = pl_mode
        self.dbsnp = dbsnp
        self.header = build_output_header(in_header, pl_mode=pl_mode, with_dbsnp=dbsnp is not None)
        self._vcf = _open_for_write(self.out_vcf, self.header)
        self._sites: Optional[pysam.VariantFile] = None
        if self.sites_only_vcf is not None:
            sites_header = build_output_header(in_header, pl_mode=pl_mode, with_samples=False)
            self._sites = _open_for_write(self.sites_only_vcf, sites_header)
        self.records_written = 0
        self.sites_only_written = 0

    def __enter__(self) -> "GenotypedVcfWriter":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _new_record(
        self, vcf: pysam.VariantFile, summary: SiteSummary, record_id: Optional[str]
    ) -> pysam.VariantRecord:
        start0 = summary.pos - 1
        return vcf.new_record(
            contig=summary.contig,
            start=start0,
            stop=start0 + len(summary.alleles[0]),
            alleles=summary.alleles,
            id=record_id,
            qual=summary.qual,
        )

    def _set_allele_stats(self, rec: pysam.VariantRecord, summary: SiteSummary) -> None:
        rec.info["AC"] = summary.ac
        if summary.af is not None:
            rec.info["AF"] = summary.af
        rec.info["AN"] = summary.an

    def write_sites_only(self, summary: SiteSummary) -> None:
        if self._sites is None:
            return
        header = self._sites.header
        rec = self._new_record(self._sites, summary, summary.record_id)
        for key, value in _passthrough_info(header, dict(summary.info), len(summary.alleles)).items():
            rec.info[key] = value
        self._set_allele_stats(rec, summary)
        rec.info[SB_TABLE_KEY] = summary.sb_table
        self._sites.write(rec)
        self.sites_only_written += 1

    def write_genotyped(self, summary: SiteSummary, calls: Iterable[GenotypeCall]) -> None:
        record_id = summary.record_id
        if self.dbsnp is not None:
            rsid = self.dbsnp.lookup(summary.contig, summary.pos, summary.alleles[0], summary.alleles[1:])
            record_id = _merge_ids(record_id, rsid)

        rec = self._new_record(self._vcf, summary, record_id)
        for key, value in _passthrough_info(self.header, dict(summary.info), len(summary.alleles)).items():
            rec.info[key] = value
        self._set_allele_stats(rec, summary)
        rec.info["FS"] = summary.fs
        rec.info["SOR"] = summary.sor
        rec.info["QD"] = summary.qd
        if summary.mq is not None:
            rec.info["MQ"] = summary.mq
        if self.dbsnp is not None and record_id and record_id != summary.record_id:
            rec.info["DB"] = True

        for call in calls:
            s = rec.samples[call.sample]
            s["GT"] = _gt_indices(call, summary.alleles)
            if call.ad is not None:
                s["AD"] = call.ad
            if call.gq is not None:
                s["GQ"] = call.gq
            if call.pl is not None:
                s["PL"] = call.pl
            if call.pl_summary is not None:
                for key, value in call.pl_summary.items():
                    if value is not None:
                        s[key] = value
            for key, value in call.attributes.items():
                if key in self.header.formats and value is not None:
                    s[key] = value

        self._vcf.write(rec)
        self.records_written += 1

    def write(self, outcome: SiteOutcome) -> None:
        """Route a site outcome to the enabled outputs."""
        if outcome.summary is None:
            return
        if outcome.status in ("emitted", "dropped_region"):
            self.write_sites_only(outcome.summary)
        if outcome.emitted:
            self.write_genotyped(outcome.summary, outcome.calls)

    def close(self) -> None:
        self._vcf.close()
        if self._sites is not None:
            self._sites.close()
        for path in (self.out_vcf, self.sites_only_vcf):
            if path is not None and path.endswith(".gz"):
                pysam.tabix_index(path, preset="vcf", force=True)
