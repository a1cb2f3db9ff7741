"""
Output sinks fed by the GeneratorManager, and drawable records for renderers.

The manager calls the sink once after population and once per completed
step; everything about presentation stays on the sink side.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class OutputSink:
    """Base sink; every hook is a no-op."""

    def log_qds(self, qds) -> None:
        pass

    def log_electrons(self, electrons) -> None:
        pass

    def log_time(self, elapsed: float) -> None:
        pass

    def reset(self) -> None:
        pass


class FrameRecorder(OutputSink):
    """
    Keep numpy snapshots of every frame in memory.

    QD geometry never changes so only the latest QD snapshot is kept, together
    with the recombined flags of every frame.
    """

    def __init__(self, max_frames: Optional[int] = None) -> None:
        self.max_frames = max_frames
        self._lock = threading.Lock()
        self._clear()

    def _clear(self) -> None:
        self.times: List[float] = []
        self.electron_frames: List[np.ndarray] = []
        self.recombined_frames: List[np.ndarray] = []
        self.qd_frame: Optional[np.ndarray] = None
        self._truncated = False

    def reset(self) -> None:
        with self._lock:
            self._clear()

    def _room(self, frames: list) -> bool:
        if self.max_frames is None or len(frames) < self.max_frames:
            return True
        if not self._truncated:
            logger.warning("FrameRecorder reached %d frames; dropping later frames", self.max_frames)
            self._truncated = True
        return False

    def log_qds(self, qds) -> None:
        with self._lock:
            self.qd_frame = np.array(
                [(qd.x, qd.y, qd.radius, qd.energy) for qd in qds], dtype=np.float64
            ).reshape(-1, 4)
            if self._room(self.recombined_frames):
                self.recombined_frames.append(np.array([qd.recombined for qd in qds], dtype=bool))

    def log_electrons(self, electrons) -> None:
        with self._lock:
            if self._room(self.electron_frames):
                self.electron_frames.append(
                    np.array([(e.x, e.y) for e in electrons], dtype=np.float64).reshape(-1, 2)
                )

    def log_time(self, elapsed: float) -> None:
        with self._lock:
            if self._room(self.times):
                self.times.append(float(elapsed))

    @property
    def n_frames(self) -> int:
        return len(self.electron_frames)

    def electron_counts(self) -> np.ndarray:
        return np.array([len(frame) for frame in self.electron_frames], dtype=np.int64)


@dataclass(frozen=True)
class DrawableObject:
    """Position (m), display color (RGBA) and display radius (m) of one object."""

    x: float
    y: float
    color: Tuple[float, float, float, float]
    radius: float


def energy_colors(energies, cmap: str = "viridis") -> List[Tuple[float, float, float, float]]:
    """RGBA colors spreading the given energies over a matplotlib colormap."""
    from matplotlib import colormaps

    colormap = colormaps[cmap]
    energies = np.asarray(energies, dtype=np.float64)
    if energies.size == 0:
        return []
    e_min, e_max = energies.min(), energies.max()
    span = e_max - e_min if e_max > e_min else 1.0
    return [tuple(float(c) for c in colormap((e - e_min) / span)) for e in energies]


def to_drawables(
    qds: Sequence,
    electrons: Sequence = (),
    cmap: str = "viridis",
    electron_radius: Optional[float] = None,
    electron_color: Tuple[float, float, float, float] = (0.85, 0.1, 0.1, 1.0),
) -> List[DrawableObject]:
    """
    Map QDs to colormap colors by transition energy and electrons to dots.

    Electrons default to a fifth of the smallest QD radius so they stay
    visible next to the dots.
    """
    colors = energy_colors([qd.energy for qd in qds], cmap)
    drawables = [DrawableObject(qd.x, qd.y, color, qd.radius) for qd, color in zip(qds, colors)]

    if electron_radius is None:
        electron_radius = min((qd.radius for qd in qds), default=1e-9) / 5.0
    for electron in electrons:
        drawables.append(DrawableObject(electron.x, electron.y, electron_color, electron_radius))
    return drawables


__all__ = ["OutputSink", "FrameRecorder", "DrawableObject", "energy_colors", "to_drawables"]
