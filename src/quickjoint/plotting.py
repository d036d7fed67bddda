from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


def _plot_binned(
    *,
    bin_edges: List[float],
    counts: List[int],
    out_png: str | Path,
    xlabel: str,
    title: str,
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    if len(bin_edges) != len(counts) + 1:
        raise ValueError("bin_edges must have length len(counts)+1")
    widths = [bin_edges[i + 1] - bin_edges[i] for i in range(len(counts))]
    centers = [bin_edges[i] + widths[i] / 2.0 for i in range(len(counts))]

    plt.figure()
    plt.bar(centers, counts, width=widths, align="center")
    plt.xlabel(xlabel)
    plt.ylabel("Site count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_qd_hist(
    *,
    bin_edges: List[float],
    counts: List[int],
    out_png: str | Path,
    title: str = "Quality by depth (QD) of emitted sites",
) -> None:
    """QD histogram; values above the last edge are folded into the last bin."""
    _plot_binned(bin_edges=bin_edges, counts=counts, out_png=out_png, xlabel="QD", title=title)


def plot_af_hist(
    *,
    bin_edges: List[float],
    counts: List[int],
    out_png: str | Path,
    title: str = "Alternate allele frequency spectrum",
) -> None:
    _plot_binned(
        bin_edges=bin_edges,
        counts=counts,
        out_png=out_png,
        xlabel="AF (per alternate allele)",
        title=title,
    )


def plot_site_outcomes(
    *,
    counts: Dict[str, int],
    out_png: str | Path,
    title: str = "Site outcomes",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = ["Emitted", "Non-variant", "Low QUAL", "Outside region", "Error"]
    keys = [
        "sites_emitted",
        "sites_dropped_nonvariant",
        "sites_dropped_low_quality",
        "sites_dropped_region",
        "sites_error",
    ]
    values = [int(counts.get(k, 0)) for k in keys]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Site count")
    plt.title(title)
    plt.xticks(rotation=15, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
