"""
Spatial lookup of quantum dots for capture tests.

QDs never move once placed, so the index is filled once during population
and frozen. Buckets slice the sample along x only: a QD is registered in
every bucket its disk spans, which over-approximates membership. `nearby`
applies the exact disk-intersection test before handing dots to `capture`.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Set

from .quantum_dot import QuantumDot

logger = logging.getLogger(__name__)

DEFAULT_BUCKET_WIDTH = 1e-9  # 1 nm
DEFAULT_FULL_SCAN_THRESHOLD = 32


def _sorted(qds: Iterable[QuantumDot]) -> List[QuantumDot]:
    return sorted(qds, key=lambda qd: qd.index)


def _intersecting(qds: Iterable[QuantumDot], x: float, y: float, span: float) -> List[QuantumDot]:
    return [qd for qd in qds if qd.distance(x, y) < qd.radius + span]


class SpatialIndex:
    """Map of x bucket -> set of QDs whose disk covers that bucket."""

    def __init__(self, bucket_width: float = DEFAULT_BUCKET_WIDTH) -> None:
        if not bucket_width > 0.0:
            raise ValueError(f"bucket_width must be positive, got {bucket_width}")
        self.bucket_width = bucket_width
        self._buckets: Dict[int, Set[QuantumDot]] = {}
        self._frozen = False
        self._size = 0

    def bucket_of(self, x: float) -> int:
        return int(math.floor(x / self.bucket_width))

    def add(self, qd: QuantumDot) -> None:
        if self._frozen:
            raise RuntimeError("SpatialIndex is frozen; QDs cannot be added after population")
        start = self.bucket_of(qd.x - qd.radius)
        end = self.bucket_of(qd.x + qd.radius)
        for index in range(start, end + 1):
            self._buckets.setdefault(index, set()).add(qd)
        self._size += 1

    def build(self, qds: Iterable[QuantumDot]) -> "SpatialIndex":
        for qd in qds:
            self.add(qd)
        self.freeze()
        return self

    def freeze(self) -> None:
        self._frozen = True
        logger.debug("SpatialIndex frozen with %d QDs over %d buckets", self._size, len(self._buckets))

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def size(self) -> int:
        return self._size

    def bucket(self, index: int) -> Set[QuantumDot]:
        return set(self._buckets.get(index, ()))

    def candidates(self, x: float, span: float) -> List[QuantumDot]:
        """QDs registered in any bucket overlapping [x - span, x + span], by index."""
        start = self.bucket_of(x - span)
        end = self.bucket_of(x + span)
        found: Set[QuantumDot] = set()
        if end - start + 1 > len(self._buckets):
            for index, members in self._buckets.items():
                if start <= index <= end:
                    found.update(members)
        else:
            for index in range(start, end + 1):
                members = self._buckets.get(index)
                if members:
                    found.update(members)
        return _sorted(found)

    def nearby(self, x: float, y: float, span: float) -> List[QuantumDot]:
        """Candidates whose disk intersects the disk of radius span around (x, y)."""
        return _intersecting(self.candidates(x, span), x, y, span)

    def __len__(self) -> int:
        return len(self._buckets)


class FullScan:
    """Same queries as SpatialIndex, answered by scanning every QD."""

    def __init__(self, qds: Iterable[QuantumDot]) -> None:
        self._qds = _sorted(qds)

    @property
    def size(self) -> int:
        return len(self._qds)

    def candidates(self, x: float, span: float) -> List[QuantumDot]:
        return list(self._qds)

    def nearby(self, x: float, y: float, span: float) -> List[QuantumDot]:
        return _intersecting(self._qds, x, y, span)


def build_qd_lookup(
    qds: List[QuantumDot],
    bucket_width: float = DEFAULT_BUCKET_WIDTH,
    full_scan_threshold: int = DEFAULT_FULL_SCAN_THRESHOLD,
):
    """Full scan for small populations, a frozen SpatialIndex otherwise."""
    if len(qds) < full_scan_threshold:
        logger.info("Using full scan over %d QDs", len(qds))
        return FullScan(qds)
    index = SpatialIndex(bucket_width).build(qds)
    logger.info("Built spatial index: %d QDs in %d buckets", index.size, len(index))
    return index


__all__ = [
    "SpatialIndex",
    "FullScan",
    "build_qd_lookup",
    "DEFAULT_BUCKET_WIDTH",
    "DEFAULT_FULL_SCAN_THRESHOLD",
]
