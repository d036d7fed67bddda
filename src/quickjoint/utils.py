from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, TextIO, Tuple

logger = logging.getLogger(__name__)


class OneShotWarning:
    """Log a warning the first time it fires and stay quiet afterwards."""

    def __init__(self, message: str, *, log: Optional[logging.Logger] = None) -> None:
        self.message = message
        self.log = log or logger
        self.fired = False
        self.count = 0

    def warn(self, *args: Any) -> None:
        self.count += 1
        if self.fired:
            return
        self.fired = True
        self.log.warning(self.message, *args)


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def first_or_none(value: Any) -> Any:
    """Unwrap a pysam INFO/FORMAT value that may arrive as a 1-tuple."""
    if isinstance(value, (list, tuple)):
        return value[0] if len(value) else None
    return value


def as_int_tuple(values: Optional[Iterable[Any]]) -> Optional[Tuple[Optional[int], ...]]:
    if values is None:
        return None
    return tuple(None if v is None else int(v) for v in values)
