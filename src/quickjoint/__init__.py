"""QuickJoint: quick joint genotyping of merged multi-sample GVCF sites.

Public API is intentionally small; most users should use the CLI:

    quickjoint genotype --vcf merged.g.vcf.gz --outdir ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
