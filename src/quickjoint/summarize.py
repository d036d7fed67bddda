from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, Mapping, Optional

from .errors import MalformedSiteError
from .models import GenotypingConfig, Region

logger = logging.getLogger(__name__)

RAW_MQ_AND_DP_KEY = "RAW_MQandDP"
RAW_MQ_KEY = "RAW_MQ"
MQ_DP_KEY = "MQ_DP"


def quality_by_depth(
    qual_approx: float,
    depth: Optional[int],
    *,
    contig: Optional[str] = None,
    pos: Optional[int] = None,
) -> float:
    """QD: the site's QUALapprox divided by its raw variant depth."""
    if not depth:
        raise MalformedSiteError(
            "Site has no variant depth (VarDP/DP missing or zero); cannot compute QD",
            contig=contig,
            pos=pos,
        )
    return float(qual_approx) / float(depth)


def passes_quality_threshold(qual_approx: float, config: GenotypingConfig) -> bool:
    """QUALapprox carries no prior, so the heterozygosity prior is applied here."""
    return float(qual_approx) >= config.min_qual_approx


class RegionSet:
    """Intervals used to restrict emitted sites by their start position."""

    def __init__(self, regions: Iterable[Region] = ()) -> None:
        self._by_contig: Dict[str, list[Region]] = {}
        for r in regions:
            self._by_contig.setdefault(r.contig, []).append(r)
        for lst in self._by_contig.values():
            lst.sort(key=lambda r: (r.start, r.end))

    def __len__(self) -> int:
        return sum(len(v) for v in self._by_contig.values())

    def contains(self, contig: str, pos: int) -> bool:
        for r in self._by_contig.get(contig, ()):
            if r.start > pos:
                break
            if r.contains(contig, pos):
                return True
        return False

    def overlaps(self, contig: str, start: int, end: int) -> bool:
        for r in self._by_contig.get(contig, ()):
            if r.start > end:
                break
            if r.end >= start:
                return True
        return False


def finalize_mapping_quality(info: Mapping[str, Any]) -> Optional[float]:
    """RMS mapping quality from the raw sum-of-squares annotations.

    Understands ``RAW_MQandDP=<sum of squared MQ>,<depth>`` and the older
    ``RAW_MQ`` + ``MQ_DP`` pair. Returns ``None`` if neither is present or
    the depth is zero.
    """
    sum_sq: Optional[float] = None
    depth: Optional[float] = None
    if info.get(RAW_MQ_AND_DP_KEY) is not None:
        raw = info[RAW_MQ_AND_DP_KEY]
        if isinstance(raw, (list, tuple)) and len(raw) >= 2:
            sum_sq, depth = float(raw[0]), float(raw[1])
    elif info.get(RAW_MQ_KEY) is not None and info.get(MQ_DP_KEY) is not None:
        raw_mq = info[RAW_MQ_KEY]
        if isinstance(raw_mq, (list, tuple)):
            raw_mq = raw_mq[0]
        sum_sq, depth = float(raw_mq), float(info[MQ_DP_KEY])

    if sum_sq is None or not depth:
        return None
    return round(math.sqrt(sum_sq / depth), 2)
