"""
Per-chunk worker advancing a partition of electrons by one time step.

An ElectronMover lives for the whole run and owns its electrons exclusively.
The manager starts a fresh thread on `run` every step and joins it before
reading `electron_list`, `trapped` and `emissions`.
"""

from __future__ import annotations

import enum
import logging
from typing import List, Optional

from .electron import Electron, ElectronState
from .random_source import RandomSource

logger = logging.getLogger(__name__)


class VelocityPolicy(enum.Enum):
    BALLISTIC = "ballistic"  # velocity drawn once at creation
    RESCATTER = "rescatter"  # thermal velocity redrawn every step


class ElectronMover:
    """
    Advance one chunk of electrons and resolve capture, recombination and escape.

    Args:
        sample_x, sample_y: Sample extent (m)
        time_step: Duration of one step (s)
        vth: Thermal velocity used when redrawing velocities (m/s)
        electrons: Electrons assigned to this chunk, in chunk order
        qd_lookup: SpatialIndex or FullScan over the QD population
        rng: Random stream owned by this worker
        escape_probability: Per-step loss probability of a free electron
        velocity_policy: Ballistic or rescattering motion
    """

    def __init__(
        self,
        sample_x: float,
        sample_y: float,
        time_step: float,
        vth: float,
        electrons: List[Electron],
        qd_lookup,
        rng: RandomSource,
        escape_probability: float = 0.01,
        velocity_policy: VelocityPolicy = VelocityPolicy.BALLISTIC,
        chunk_index: int = 0,
    ) -> None:
        self.sample_x = sample_x
        self.sample_y = sample_y
        self.time_step = time_step
        self.vth = vth
        self.qd_lookup = qd_lookup
        self.rng = rng
        self.escape_probability = escape_probability
        self.velocity_policy = VelocityPolicy(velocity_policy)
        self.chunk_index = chunk_index

        self._free: List[Electron] = [e for e in electrons if e.state is ElectronState.FREE]
        self._trapped: List[Electron] = [e for e in electrons if e.state is ElectronState.CAPTURED]
        self.emissions: List[float] = []
        self.n_recombined = 0
        self.n_escaped = 0
        self.n_captured = 0
        self.error: Optional[BaseException] = None

    @property
    def electron_list(self) -> List[Electron]:
        """Free electrons still propagating, in chunk order."""
        return list(self._free)

    @property
    def trapped(self) -> List[Electron]:
        return list(self._trapped)

    def all_recombined(self) -> bool:
        """True once every electron of the chunk has recombined or escaped."""
        return not self._free and not self._trapped

    def run(self) -> None:
        """Thread target: one step, with any failure kept for the manager."""
        try:
            self.step()
        except Exception as exc:
            logger.error("Mover %d failed during step", self.chunk_index, exc_info=True)
            self.error = exc

    def step(self) -> None:
        self.emissions = []
        self.error = None
        released = self._resolve_trapped()
        self._propagate_free()
        # released electrons start moving again next step
        self._free.extend(released)

    def _resolve_trapped(self) -> List[Electron]:
        still_trapped: List[Electron] = []
        released: List[Electron] = []
        for electron in self._trapped:
            qd = electron.trap
            if qd.recombine(self.rng):
                electron.state = ElectronState.RECOMBINED
                self.emissions.append(qd.energy)
                self.n_recombined += 1
            elif qd.escape(self.rng):
                electron.release()
                electron.x, electron.y = qd.x, qd.y
                electron.resample_velocity(self.rng, self.vth)
                released.append(electron)
            else:
                still_trapped.append(electron)
        self._trapped = still_trapped
        return released

    def _propagate_free(self) -> None:
        residual: List[Electron] = []
        dt = self.time_step
        for electron in self._free:
            if self.velocity_policy is VelocityPolicy.RESCATTER:
                electron.resample_velocity(self.rng, self.vth)
            electron.move(dt)
            electron.confine(self.sample_x, self.sample_y)

            span = electron.span(dt)
            captured_by = None
            for qd in self.qd_lookup.nearby(electron.x, electron.y, span):
                if qd.capture(self.rng, qd.distance(electron.x, electron.y), span):
                    captured_by = qd
                    break

            if captured_by is not None:
                electron.capture_by(captured_by)
                self._trapped.append(electron)
                self.n_captured += 1
            elif self.rng.uniform() < self.escape_probability:
                electron.state = ElectronState.ESCAPED
                self.n_escaped += 1
            else:
                residual.append(electron)
        self._free = residual


__all__ = ["ElectronMover", "VelocityPolicy"]
