from __future__ import annotations

from typing import Sequence, Tuple

from .errors import MalformedSiteError
from .models import NON_REF

SPANNING_DELETION = "*"


def is_symbolic(allele: str) -> bool:
    return allele.startswith("<") and allele.endswith(">")


def is_properly_polymorphic(alleles: Sequence[str]) -> bool:
    """True if the site has at least one concrete alternate allele.

    A lone symbolic alternate (e.g. only ``<NON_REF>``) or a lone spanning
    deletion does not make a site variant.
    """
    alts = list(alleles[1:])
    if not alts:
        return False
    if len(alts) == 1:
        alt = alts[0]
        return not (alt == SPANNING_DELETION or is_symbolic(alt))
    return True


def resolve_alleles(
    alleles: Sequence[str], placeholder: str = NON_REF
) -> Tuple[Tuple[str, ...], bool]:
    """Strip a trailing placeholder allele.

    Returns ``(finalized_alleles, placeholder_was_present)``. Raises
    ``MalformedSiteError`` if the placeholder appears anywhere but last.
    """
    alleles = tuple(alleles)
    if not alleles:
        raise MalformedSiteError("Site has no alleles")
    if placeholder in alleles[:-1]:
        raise MalformedSiteError(
            f"The {placeholder} allele must be listed last, as in HaplotypeCaller GVCF output"
        )
    if alleles[-1] == placeholder:
        return alleles[:-1], True
    return alleles, False
