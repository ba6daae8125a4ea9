"""Route fingerprints: digests over the distinct cells a ride touched."""

from __future__ import annotations

from hashlib import sha256
from typing import Iterable

CELL_SEPARATOR = ","


def route_fingerprint(cells: Iterable[str]) -> str:
    """Return the SHA-256 lowercase hex digest of a ride's visited cells.

    Cells are de-duplicated and sorted before joining, so the fingerprint
    depends only on the set of cells: riding a loop in either direction, or
    GPS noise changing which of two cells was touched first, gives the same
    value.
    """

    canonical = CELL_SEPARATOR.join(sorted(set(cells)))
    return sha256(canonical.encode("utf-8")).hexdigest()


__all__ = ["CELL_SEPARATOR", "route_fingerprint"]
