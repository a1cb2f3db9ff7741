"""
Time-stepped luminescence simulation.

GeneratorManager places non-overlapping quantum dots and thermal electrons in
a rectangular sample, splits the electrons round-robin into one chunk per
worker, then advances every chunk by one time step in its own thread. After
all threads join, the step's free electrons and emissions are merged in chunk
order, the sink receives the frame and every QD's recombined flag is reset.
The loop ends once every electron has recombined or escaped.
"""

from __future__ import annotations

import enum
import logging
import math
import os
import threading
import time
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, List, Optional

import numpy as np

from . import utils
from .electron import Electron
from .electron_mover import ElectronMover, VelocityPolicy
from .materials import band_offsets, thermal_velocity
from .output import OutputSink
from .quantum_dot import ENERGY_MODELS, QuantumDot
from .random_source import RandomSource
from .spatial_index import DEFAULT_BUCKET_WIDTH, DEFAULT_FULL_SCAN_THRESHOLD, build_qd_lookup

logger = logging.getLogger(__name__)

###############################################################################
# Configuration
###############################################################################


@dataclass
class LuminescenceParams:
    n_electrons: int = 100
    n_qds: int = 50
    temperature: float = 300.0  # K
    sample_x: float = 1e-6  # m
    sample_y: float = 1e-6  # m
    time_step: float = 1e-12  # s
    qd_radius_mean: float = 10e-9
    qd_radius_std: float = 3e-9
    qd_height_mean: float = 5e-9
    qd_height_std: float = 1e-9
    qd_material: str = "InAs"
    host_material: str = "GaAs"
    energy_model: str = "harmonic"
    qd_escape_probability: float = 0.01
    recombine_probability: float = 0.01
    escape_probability: float = 0.01
    velocity_policy: str = "ballistic"
    bucket_width: float = DEFAULT_BUCKET_WIDTH
    full_scan_threshold: int = DEFAULT_FULL_SCAN_THRESHOLD
    n_workers: Optional[int] = None
    max_placement_attempts: int = 10_000
    max_steps: int = 1_000_000
    max_wall_time: Optional[float] = None  # s
    seed: Optional[int] = None
    verbose: bool = False

    def validate(self) -> None:
        """Raise ConfigurationError for any parameter that cannot describe a run."""
        if self.n_electrons < 1:
            raise utils.ConfigurationError(f"n_electrons must be >= 1, got {self.n_electrons}")
        if self.n_qds < 0:
            raise utils.ConfigurationError(f"n_qds must be >= 0, got {self.n_qds}")
        for name in ("temperature", "sample_x", "sample_y", "time_step", "qd_radius_mean", "qd_height_mean"):
            value = getattr(self, name)
            if not (value > 0.0 and math.isfinite(value)):
                raise utils.ConfigurationError(f"{name} must be positive and finite, got {value}")
        for name in ("qd_radius_std", "qd_height_std"):
            if getattr(self, name) < 0.0:
                raise utils.ConfigurationError(f"{name} must be >= 0, got {getattr(self, name)}")
        for name in ("qd_escape_probability", "recombine_probability", "escape_probability"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise utils.ConfigurationError(f"{name} must be in [0, 1], got {value}")
        band_offsets(self.qd_material, self.host_material)
        if self.energy_model not in ENERGY_MODELS:
            raise utils.ConfigurationError(
                f"energy_model must be one of {sorted(ENERGY_MODELS)}, got {self.energy_model!r}"
            )
        try:
            VelocityPolicy(self.velocity_policy)
        except ValueError:
            raise utils.ConfigurationError(
                f"velocity_policy must be one of {[p.value for p in VelocityPolicy]}, "
                f"got {self.velocity_policy!r}"
            ) from None
        if self.n_workers is not None and self.n_workers < 1:
            raise utils.ConfigurationError(f"n_workers must be >= 1, got {self.n_workers}")
        if self.max_placement_attempts < 1 or self.max_steps < 1:
            raise utils.ConfigurationError("max_placement_attempts and max_steps must be >= 1")
        if not self.bucket_width > 0.0:
            raise utils.ConfigurationError(f"bucket_width must be positive, got {self.bucket_width}")

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "LuminescenceParams":
        known = {f.name for f in fields(cls)}
        unknown = set(config) - known
        if unknown:
            raise utils.ConfigurationError(f"Unknown parameters: {sorted(unknown)}")
        return cls(**config)

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> "LuminescenceParams":
        return cls.from_dict(utils.load_params(path))


class SimulationState(enum.Enum):
    INITIALIZING = "initializing"
    POPULATING = "populating"
    STEPPING = "stepping"
    FINISHED = "finished"


###############################################################################
# Manager
###############################################################################


class GeneratorManager:
    """
    Populate the sample and drive the fork-join step loop.

    Configuration is validated in the constructor, so a bad parameter set
    never leaves a partially populated manager behind.
    """

    def __init__(self, params: LuminescenceParams, output: Optional[OutputSink] = None) -> None:
        self._state = SimulationState.INITIALIZING
        params.validate()
        self.params = params
        self.output = output if output is not None else OutputSink()
        self.vth = utils.normalize(thermal_velocity(params.temperature))
        self.time_step = params.time_step
        self.velocity_policy = VelocityPolicy(params.velocity_policy)

        self.rng = RandomSource(params.seed)
        self.qds: List[QuantumDot] = []
        self.electrons: List[Electron] = []
        self.lookup = None
        self.movers: List[ElectronMover] = []
        self.emissions: List[float] = []
        self.elapsed = 0.0
        self.steps = 0

    @property
    def state(self) -> SimulationState:
        return self._state

    # -- population -------------------------------------------------------

    def _uniform_position(self):
        x = utils.normalize(self.rng.uniform() * self.params.sample_x)
        y = utils.normalize(self.rng.uniform() * self.params.sample_y)
        return x, y

    def _positive_gaussian(self, mean: float, std: float) -> float:
        value = 0.0
        while value <= 0.0:
            value = utils.normalize(self.rng.gaussian() * std + mean)
        return value

    def _valid_position(self, candidate: QuantumDot) -> bool:
        # disks may touch, never overlap
        return not any(candidate.overlaps(qd) for qd in self.qds)

    def generate_qd(self) -> QuantumDot:
        """Rejection-sample one QD that overlaps none of those already placed."""
        p = self.params
        for _ in range(p.max_placement_attempts):
            x, y = self._uniform_position()
            radius = self._positive_gaussian(p.qd_radius_mean, p.qd_radius_std)
            height = self._positive_gaussian(p.qd_height_mean, p.qd_height_std)
            candidate = QuantumDot(
                x,
                y,
                radius,
                height,
                index=len(self.qds),
                qd_material=p.qd_material,
                host_material=p.host_material,
                energy_model=p.energy_model,
                escape_probability=p.qd_escape_probability,
                recombine_probability=p.recombine_probability,
            )
            if self._valid_position(candidate):
                return candidate
        raise utils.ConfigurationError(
            f"Could not place QD {len(self.qds) + 1}/{p.n_qds} without overlap after "
            f"{p.max_placement_attempts} attempts; the sample is too dense"
        )

    def generate_qds(self) -> List[QuantumDot]:
        self.qds = []
        for _ in range(self.params.n_qds):
            self.qds.append(self.generate_qd())
        self.lookup = build_qd_lookup(
            self.qds, self.params.bucket_width, self.params.full_scan_threshold
        )
        return self.qds

    def generate_electrons(self) -> List[Electron]:
        self.electrons = []
        for i in range(self.params.n_electrons):
            x, y = self._uniform_position()
            vx = utils.normalize(self.rng.gaussian() * self.vth)
            vy = utils.normalize(self.rng.gaussian() * self.vth)
            self.electrons.append(Electron(x, y, vx, vy, index=i))
        return self.electrons

    def populate(self) -> None:
        self._state = SimulationState.POPULATING
        t_start = time.perf_counter()
        self.generate_qds()
        self.generate_electrons()
        logger.info(
            "Populated %d QDs and %d electrons in %.2fs (vth=%.4g m/s)",
            len(self.qds), len(self.electrons), time.perf_counter() - t_start, self.vth,
        )

    # -- partitioning -----------------------------------------------------

    def n_chunks(self, n_electrons: int) -> int:
        workers = self.params.n_workers or os.cpu_count() or 1
        return max(1, min(workers, n_electrons))

    def partition(self, electrons: List[Electron]) -> List[List[Electron]]:
        """Round-robin split preserving the original order inside each chunk."""
        n = self.n_chunks(len(electrons))
        chunks: List[List[Electron]] = [[] for _ in range(n)]
        for i, electron in enumerate(electrons):
            chunks[i % n].append(electron)
        return chunks

    def _build_movers(self) -> None:
        chunks = self.partition(self.electrons)
        streams = self.rng.spawn(len(chunks))
        self.movers = [
            ElectronMover(
                self.params.sample_x,
                self.params.sample_y,
                self.time_step,
                self.vth,
                chunk,
                self.lookup,
                stream,
                escape_probability=self.params.escape_probability,
                velocity_policy=self.velocity_policy,
                chunk_index=i,
            )
            for i, (chunk, stream) in enumerate(zip(chunks, streams))
        ]

    # -- stepping ---------------------------------------------------------

    def step(self) -> bool:
        """
        Run one fork-join step.

        Returns True when every chunk is fully resolved.
        """
        workers = [
            threading.Thread(target=mover.run, name=f"electron-mover-{i}")
            for i, mover in enumerate(self.movers)
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        failed = [mover for mover in self.movers if mover.error is not None]
        if failed:
            logger.error("%d of %d movers failed at step %d", len(failed), len(self.movers), self.steps + 1)
            raise utils.SimulationError(
                f"Mover {failed[0].chunk_index} failed at step {self.steps + 1}; step is inconsistent"
            ) from failed[0].error

        current: List[Electron] = []
        all_finished = True
        for mover in self.movers:
            current.extend(mover.electron_list)
            self.emissions.extend(mover.emissions)
            all_finished &= mover.all_recombined()

        self.steps += 1
        self.elapsed = utils.normalize(self.elapsed + self.time_step)
        self.output.log_electrons(current)
        self.output.log_time(self.elapsed)
        self.output.log_qds(self.qds)
        for qd in self.qds:
            qd.reset_recombine()

        logger.debug(
            "Step %d: %d free electrons, %d emissions so far", self.steps, len(current), len(self.emissions)
        )
        return all_finished

    def run(self) -> utils.SimulationResult:
        if self._state is not SimulationState.INITIALIZING:
            raise RuntimeError(f"GeneratorManager already ran (state={self._state.value})")
        p = self.params

        t_start = time.perf_counter()
        converged = False
        report_every = max(1, p.max_steps // 10)
        try:
            self.populate()
            self.output.reset()
            self.output.log_qds(self.qds)
            self.output.log_electrons(self.electrons)
            self.output.log_time(self.elapsed)

            self._build_movers()
            logger.info("Stepping with %d chunks, dt=%.3g s", len(self.movers), self.time_step)

            self._state = SimulationState.STEPPING
            t_start = time.perf_counter()
            while True:
                if self.step():
                    converged = True
                    break
                if self.steps >= p.max_steps:
                    logger.warning("Stopping after max_steps=%d with unresolved electrons", p.max_steps)
                    break
                wall = time.perf_counter() - t_start
                if p.max_wall_time is not None and wall >= p.max_wall_time:
                    logger.warning("Stopping after %.1fs wall time with unresolved electrons", wall)
                    break
                if p.verbose and self.steps % report_every == 0:
                    print(f"[lum] step {self.steps}, t={self.elapsed:.3e}s, "
                          f"{self.remaining()} electrons unresolved, {len(self.emissions)} photons")
        finally:
            self._state = SimulationState.FINISHED

        wall = time.perf_counter() - t_start
        logger.info(
            "Simulation finished: %d steps, %d photons, %d escaped in %.2fs",
            self.steps, len(self.emissions), self.n_escaped(), wall,
        )
        if p.verbose:
            print(f"Simulation completed: {self.steps} steps, {len(self.emissions)} photons in {wall:.2f}s")
        return self.result(converged)

    # -- results ----------------------------------------------------------

    def remaining(self) -> int:
        return sum(not e.resolved for e in self.electrons)

    def n_escaped(self) -> int:
        return sum(m.n_escaped for m in self.movers)

    def result(self, converged: bool = True) -> utils.SimulationResult:
        qd_positions = np.array([(qd.x, qd.y) for qd in self.qds], dtype=np.float64).reshape(-1, 2)
        meta = {
            "model": "luminescence",
            "seed": self.params.seed,
            "vth": float(self.vth),
            "n_chunks": len(self.movers),
            "params": asdict(self.params),
        }
        return utils.SimulationResult(
            emissions=np.asarray(self.emissions, dtype=np.float64),
            qd_positions=qd_positions,
            qd_radii=np.array([qd.radius for qd in self.qds], dtype=np.float64),
            qd_energies=np.array([qd.energy for qd in self.qds], dtype=np.float64),
            n_recombined=len(self.emissions),
            n_escaped=self.n_escaped(),
            n_remaining=self.remaining(),
            steps=self.steps,
            elapsed=float(self.elapsed),
            converged=converged,
            meta=meta,
        )


def run_model(
    params: LuminescenceParams | dict | None = None,
    output: Optional[OutputSink] = None,
) -> utils.SimulationResult:
    """
    Run the luminescence model and return a SimulationResult.
    """
    if params is None:
        params = LuminescenceParams()
    elif isinstance(params, dict):
        params = LuminescenceParams.from_dict(params)
    return GeneratorManager(params, output).run()


__all__ = [
    "LuminescenceParams",
    "SimulationState",
    "GeneratorManager",
    "run_model",
]
