from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .models import Region
from .utils import open_textmaybe_gzip
from .validation import detect_contig_style, remap_contig

logger = logging.getLogger(__name__)

_REGION_RE = re.compile(r"^(?P<contig>[^:\s]+)(?::(?P<start>[\d,]+)(?:-(?P<end>[\d,]+))?)?$")

# Whole-contig regions extend to this position.
_CONTIG_END = 2**31 - 1


def parse_region(text: str) -> Region:
    """Parse ``ctg``, ``ctg:pos`` or ``ctg:start-end`` (1-based, closed)."""
    m = _REGION_RE.match(text.strip())
    if m is None:
        raise ValueError(f"Cannot parse region {text!r}; expected ctg:start-end")
    contig = m.group("contig")
    start_s, end_s = m.group("start"), m.group("end")
    if start_s is None:
        return Region(contig=contig, start=1, end=_CONTIG_END)
    start = int(start_s.replace(",", ""))
    end = int(end_s.replace(",", "")) if end_s is not None else start
    if start < 1 or end < start:
        raise ValueError(f"Invalid region {text!r}: need 1 <= start <= end")
    return Region(contig=contig, start=start, end=end)


def read_bed(path: str | Path) -> List[Region]:
    """Read BED intervals (0-based half-open) as 1-based closed regions."""
    p = str(path)
    regions: List[Region] = []
    with open_textmaybe_gzip(p, "rt") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip() or line.startswith(("#", "track", "browser")):
                continue
            fields = line.rstrip("\n").split("\t")
            if len(fields) < 3:
                raise ValueError(f"{p}:{lineno}: BED lines need at least 3 columns")
            start0, end0 = int(fields[1]), int(fields[2])
            if end0 <= start0:
                logger.warning("%s:%d: skipping empty BED interval", p, lineno)
                continue
            regions.append(Region(contig=fields[0], start=start0 + 1, end=end0))
    return regions


def load_regions(
    region_strings: Optional[Sequence[str]] = None,
    bed_path: Optional[str | Path] = None,
    *,
    target_contigs: Optional[Iterable[str]] = None,
) -> List[Region]:
    """Collect regions from strings and/or a BED file.

    If ``target_contigs`` (e.g. the input VCF contigs) is given and the
    naming styles differ (``chr1`` vs ``1``), regions are remapped to the
    target style.
    """
    regions: List[Region] = [parse_region(s) for s in (region_strings or [])]
    if bed_path is not None:
        regions.extend(read_bed(bed_path))

    if target_contigs is not None and regions:
        target = list(target_contigs)
        target_style = detect_contig_style(target)
        region_style = detect_contig_style(r.contig for r in regions)
        if target_style != "unknown" and region_style != target_style:
            logger.warning(
                "Contig style mismatch (regions=%s, VCF=%s). Remapping regions to %s style.",
                region_style,
                target_style,
                target_style,
            )
            regions = [
                Region(contig=remap_contig(r.contig, target_style), start=r.start, end=r.end)
                for r in regions
            ]
        known = set(target)
        missing = sorted({r.contig for r in regions} - known)
        if missing:
            logger.warning("Regions reference contigs absent from the VCF: %s", ", ".join(missing))

    logger.info("Loaded %d region(s)", len(regions))
    return regions
