from __future__ import annotations

import enum
import logging
import math
from typing import Optional, TYPE_CHECKING

from . import utils
from .random_source import RandomSource

if TYPE_CHECKING:  # pragma: no cover
    from .quantum_dot import QuantumDot

logger = logging.getLogger(__name__)


class ElectronState(enum.Enum):
    FREE = "free"
    CAPTURED = "captured"
    RECOMBINED = "recombined"
    ESCAPED = "escaped"


class Electron:
    """Free carrier in the sample plane. Positions in m, velocities in m/s."""

    __slots__ = ("index", "x", "y", "vx", "vy", "state", "trap")

    def __init__(self, x: float, y: float, vx: float, vy: float, index: int = 0) -> None:
        self.index = index
        self.x = x
        self.y = y
        self.vx = vx
        self.vy = vy
        self.state = ElectronState.FREE
        self.trap: Optional["QuantumDot"] = None

    @property
    def speed(self) -> float:
        return math.hypot(self.vx, self.vy)

    @property
    def resolved(self) -> bool:
        return self.state in (ElectronState.RECOMBINED, ElectronState.ESCAPED)

    def span(self, dt: float) -> float:
        """Radius of the disk the electron can reach within dt."""
        return self.speed * dt

    def move(self, dt: float) -> None:
        self.x = utils.normalize(self.x + self.vx * dt)
        self.y = utils.normalize(self.y + self.vy * dt)

    def resample_velocity(self, rng: RandomSource, vth: float) -> None:
        self.vx = utils.normalize(rng.gaussian() * vth)
        self.vy = utils.normalize(rng.gaussian() * vth)

    def confine(self, width: float, height: float) -> None:
        """
        Reflect off the sample edges.

        A single reflection brings back any excursion shorter than the sample
        extent; anything further is clamped onto the edge.
        """
        self.x, self.vx = _reflect(self.x, self.vx, width, self.index, "x")
        self.y, self.vy = _reflect(self.y, self.vy, height, self.index, "y")

    def capture_by(self, qd: "QuantumDot") -> None:
        self.state = ElectronState.CAPTURED
        self.trap = qd

    def release(self) -> None:
        self.state = ElectronState.FREE
        self.trap = None

    def as_tuple(self):
        return (self.x, self.y, self.vx, self.vy)

    def __repr__(self) -> str:
        return (
            f"Electron(index={self.index}, x={self.x:.6g}, y={self.y:.6g}, "
            f"vx={self.vx:.6g}, vy={self.vy:.6g}, state={self.state.value})"
        )


def _reflect(position: float, velocity: float, extent: float, index: int, axis: str):
    if 0.0 <= position <= extent:
        return position, velocity
    if position < 0.0:
        reflected = -position
    else:
        reflected = 2.0 * extent - position
    velocity = -velocity
    if not 0.0 <= reflected <= extent:
        logger.warning(
            "Electron %d left the sample along %s (%.6g m outside [0, %.6g]); clamping",
            index, axis, position, extent,
        )
        reflected = min(max(position, 0.0), extent)
    return utils.normalize(reflected), velocity


__all__ = ["Electron", "ElectronState"]
