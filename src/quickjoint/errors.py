"""Error taxonomy for per-site genotyping.

All errors raised while processing a single site derive from ``SiteError`` so
the driver can decide, per run, whether to abort or to skip the site.
Messages always carry the ``contig:pos`` locus and, where one is involved,
the sample name.
"""

from __future__ import annotations

from typing import Optional


class SiteError(RuntimeError):
    """Raised when a site cannot be genotyped."""

    def __init__(
        self,
        message: str,
        *,
        contig: Optional[str] = None,
        pos: Optional[int] = None,
        sample: Optional[str] = None,
    ) -> None:
        self.contig = contig
        self.pos = pos
        self.sample = sample
        self.detail = message
        super().__init__(self._format())

    @property
    def locus(self) -> Optional[str]:
        if self.contig is None or self.pos is None:
            return None
        return f"{self.contig}:{self.pos}"

    def _format(self) -> str:
        context = []
        if self.sample is not None:
            context.append(f"sample {self.sample}")
        if self.locus is not None:
            context.append(f"position {self.locus}")
        if not context:
            return self.detail
        return f"{self.detail} ({', '.join(context)})"

    def at(self, contig: str, pos: int, sample: Optional[str] = None) -> "SiteError":
        """Return a copy of this error bound to a locus (and sample, if given)."""
        return type(self)(
            self.detail,
            contig=contig,
            pos=pos,
            sample=sample if sample is not None else self.sample,
        )


class MalformedSiteError(SiteError):
    """A site violates a structural invariant (placeholder not last, zero depth)."""


class InconsistentArrayLengthError(SiteError):
    """A reduced PL/AD array was requested that is longer than the raw array."""


class UnsupportedPloidyError(SiteError):
    """A sample genotype is neither diploid nor the ploidy-1 reference shorthand."""
