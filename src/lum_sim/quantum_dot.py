"""
Quantum dot energy and capture model.

Combines:
- Harmonic-oscillator confinement energy per axis (canonical model)
- Finite square well confinement solved by Newton iteration (historical model)
- Two-circle overlap capture probability between the QD disk and the disk an
  electron can reach during one time step

A QuantumDot is immutable apart from its `recombined` flag. Several worker
threads test the same dot within one step, so every probability-gated test
holds the dot's lock.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Tuple

from numba import njit

from . import utils
from .materials import HBAR, band_offsets, get_material
from .random_source import RandomSource

logger = logging.getLogger(__name__)

###############################################################################
# Constants
###############################################################################

DEFAULT_ESCAPE_PROBABILITY = 0.01
DEFAULT_RECOMBINE_PROBABILITY = 0.01

NEWTON_MAX_ITERATIONS = 50
NEWTON_TOLERANCE = 1e-10

###############################################################################
# Confinement energy kernels
###############################################################################


@njit(cache=True)
def harmonic_confinement_energy(dimension: float, band_offset: float, effective_mass: float) -> float:
    """
    Zero-point energy hbar*omega/2 of one axis of a harmonic well.

    omega = sqrt(8 * dE / (m * L^2)) is the oscillator whose classical
    turning points at the band offset sit at +-L/2.
    """
    omega = math.sqrt(8.0 * band_offset / (effective_mass * dimension * dimension))
    return HBAR * omega / 2.0


@njit(cache=True)
def solve_finite_well(u0_sq: float) -> float:
    """
    Solve v^2 (1 + tan^2 v) = u0^2 for v in (0, pi/2).

    Newton's method, falling back to bisection whenever a step leaves the
    current bracket. The left-hand side is monotonic on (0, pi/2) so the
    root is unique.
    """
    half_pi = math.pi / 2.0
    if u0_sq <= 0.0:
        return 0.0

    u0 = math.sqrt(u0_sq)
    lo = 0.0
    hi = half_pi
    v = half_pi * u0 / (1.0 + u0)

    for _ in range(NEWTON_MAX_ITERATIONS):
        tan_v = math.tan(v)
        sec2 = 1.0 + tan_v * tan_v
        f = v * v * sec2 - u0_sq
        if f > 0.0:
            hi = v
        else:
            lo = v
        df = 2.0 * v * sec2 * (1.0 + v * tan_v)

        if df > 0.0:
            v_new = v - f / df
        else:
            v_new = 0.5 * (lo + hi)
        if v_new <= lo or v_new >= hi:
            v_new = 0.5 * (lo + hi)

        if abs(v_new - v) < NEWTON_TOLERANCE:
            return v_new
        v = v_new

    return v


@njit(cache=True)
def finite_well_confinement_energy(dimension: float, band_offset: float, effective_mass: float) -> float:
    """Ground level of a finite square well of width `dimension`."""
    u0_sq = effective_mass * dimension * dimension * band_offset / (2.0 * HBAR * HBAR)
    v = solve_finite_well(u0_sq)
    return 2.0 * HBAR * HBAR * v * v / (effective_mass * dimension * dimension)


# name -> (axis energy, number of in-plane axes counted)
ENERGY_MODELS = {
    "harmonic": (harmonic_confinement_energy, 1),
    "finite_well": (finite_well_confinement_energy, 2),
}


def carrier_confinement_energy(
    plane_length: float,
    height: float,
    band_offset: float,
    effective_mass: float,
    model: str = "harmonic",
) -> float:
    """Confinement energy of one carrier, in-plane plus height contributions."""
    try:
        axis_energy, plane_axes = ENERGY_MODELS[model]
    except KeyError:
        raise utils.ConfigurationError(
            f"Unknown energy model {model!r}; expected one of {sorted(ENERGY_MODELS)}"
        ) from None
    return (
        plane_axes * axis_energy(plane_length, band_offset, effective_mass)
        + axis_energy(height, band_offset, effective_mass)
    )


###############################################################################
# Capture overlap
###############################################################################


@njit(cache=True)
def _clip_unit(value: float) -> float:
    if value > 1.0:
        return 1.0
    if value < -1.0:
        return -1.0
    return value


@njit(cache=True)
def overlap_probability(distance: float, span: float, radius: float) -> float:
    """
    Fraction of the electron's reachable disk covered by the QD disk.

    See https://www.xarg.org/2016/07/calculate-the-intersection-area-of-two-circles/
    The lens area is split into four cases:
    - electron disk inside the QD (distance + span <= radius)
    - QD inside the electron disk (distance + radius <= span)
    - QD center beyond the chord, distance >= sqrt(|radius^2 - span^2|)
    - QD center before the chord, distance < sqrt(|radius^2 - span^2|)
    """
    if span <= 0.0:
        return 1.0 if distance <= radius else 0.0
    if distance + span <= radius:
        return 1.0
    if distance + radius <= span:
        return (radius * radius) / (span * span)
    if distance >= radius + span:
        return 0.0

    r2 = radius * radius
    s2 = span * span
    d2 = distance * distance
    radius_diff = math.sqrt(abs(r2 - s2))

    if distance >= radius_diff:
        triangle_base = (s2 + d2 - r2) / (2.0 * distance)
        electron_slice = s2 * math.acos(_clip_unit(triangle_base / span))
        qd_slice = r2 * math.acos(_clip_unit((distance - triangle_base) / radius))
        triangle = distance * math.sqrt(max(s2 - triangle_base * triangle_base, 0.0))
    else:
        triangle_base = (s2 - d2 - r2) / (2.0 * distance)
        electron_slice = s2 * math.acos(_clip_unit((triangle_base + distance) / span))
        qd_slice = r2 * (math.pi - math.acos(_clip_unit(triangle_base / radius)))
        triangle = distance * math.sqrt(max(r2 - triangle_base * triangle_base, 0.0))

    return (electron_slice + qd_slice - triangle) / (math.pi * s2)


def checked_probability(proba: float, context: str = "") -> float:
    """Clamp into [0, 1], logging anything outside as a model defect."""
    if math.isnan(proba):
        logger.error("Probability is NaN%s; using 0", context)
        return 0.0
    if proba < 0.0 or proba > 1.0:
        logger.error("Probability %.17g outside [0, 1]%s; clamping", proba, context)
        return min(max(proba, 0.0), 1.0)
    return proba


###############################################################################
# QuantumDot
###############################################################################


class QuantumDot:
    """
    A disk-shaped InAs-like dot of given radius and height.

    Energy (J) is the bandgap of the dot material plus the electron and hole
    confinement energies, computed once with the chosen energy model.
    """

    def __init__(
        self,
        x: float,
        y: float,
        radius: float,
        height: float,
        *,
        index: int = 0,
        qd_material: str = "InAs",
        host_material: str = "GaAs",
        energy_model: str = "harmonic",
        escape_probability: float = DEFAULT_ESCAPE_PROBABILITY,
        recombine_probability: float = DEFAULT_RECOMBINE_PROBABILITY,
    ) -> None:
        if not radius > 0.0:
            raise utils.ConfigurationError(f"QD radius must be positive, got {radius}")
        if not height > 0.0:
            raise utils.ConfigurationError(f"QD height must be positive, got {height}")
        for name, proba in (("escape", escape_probability), ("recombine", recombine_probability)):
            if not 0.0 <= proba <= 1.0:
                raise utils.ConfigurationError(f"{name} probability must be in [0, 1], got {proba}")

        self._index = int(index)
        self._x = utils.normalize(float(x))
        self._y = utils.normalize(float(y))
        self._radius = utils.normalize(float(radius))
        self._height = utils.normalize(float(height))
        self._energy_model = energy_model
        self._escape_probability = float(escape_probability)
        self._recombine_probability = float(recombine_probability)

        material = get_material(qd_material)
        conduction_offset, valence_offset = band_offsets(material, host_material)
        plane_length = self._radius * math.sqrt(math.pi)

        self._electron_energy = utils.normalize(
            carrier_confinement_energy(
                plane_length, self._height, conduction_offset, material.electron_mass, energy_model
            )
        )
        self._hole_energy = utils.normalize(
            carrier_confinement_energy(
                plane_length, self._height, valence_offset, material.hole_mass, energy_model
            )
        )
        self._energy = utils.normalize(material.bandgap + self._electron_energy + self._hole_energy)
        # capture needs a bound electron level below the conduction band edge
        self._capture_allowed = self._electron_energy < conduction_offset

        self._lock = threading.Lock()
        self._recombined = False

    # -- geometry ---------------------------------------------------------

    @property
    def index(self) -> int:
        return self._index

    @property
    def x(self) -> float:
        return self._x

    @property
    def y(self) -> float:
        return self._y

    @property
    def radius(self) -> float:
        return self._radius

    @property
    def height(self) -> float:
        return self._height

    def distance(self, x: float, y: float) -> float:
        return math.hypot(x - self._x, y - self._y)

    def overlaps(self, other: "QuantumDot") -> bool:
        return self.distance(other.x, other.y) < self._radius + other.radius

    # -- energy -----------------------------------------------------------

    @property
    def energy(self) -> float:
        return self._energy

    @property
    def electron_energy(self) -> float:
        return self._electron_energy

    @property
    def hole_energy(self) -> float:
        return self._hole_energy

    @property
    def energy_model(self) -> str:
        return self._energy_model

    @property
    def capture_allowed(self) -> bool:
        return self._capture_allowed

    # -- transitions ------------------------------------------------------

    @property
    def recombined(self) -> bool:
        with self._lock:
            return self._recombined

    def capture_probability(self, electron_distance: float, electron_span: float) -> float:
        proba = overlap_probability(float(electron_distance), float(electron_span), self._radius)
        proba = checked_probability(
            proba,
            f" for QD {self._index} (distance={electron_distance:.6g}, span={electron_span:.6g})",
        )
        return proba if self._capture_allowed else 0.0

    def capture(self, rng: RandomSource, electron_distance: float, electron_span: float) -> bool:
        """Draw whether an electron at `electron_distance` is captured this step."""
        with self._lock:
            proba = self.capture_probability(electron_distance, electron_span)
            return rng.uniform() < proba

    def escape(self, rng: RandomSource) -> bool:
        # TODO: derive from the LO phonon occupation at the sample temperature
        with self._lock:
            return rng.uniform() < self._escape_probability

    def recombine(self, rng: RandomSource) -> bool:
        """Sticky until reset_recombine: once True, later calls return True without a draw."""
        with self._lock:
            if not self._recombined:
                self._recombined = rng.uniform() < self._recombine_probability
            return self._recombined

    def reset_recombine(self) -> None:
        with self._lock:
            self._recombined = False

    def __repr__(self) -> str:
        return (
            f"QuantumDot(index={self._index}, x={self._x:.6g}, y={self._y:.6g}, "
            f"radius={self._radius:.6g}, height={self._height:.6g})"
        )


__all__ = [
    "QuantumDot",
    "ENERGY_MODELS",
    "harmonic_confinement_energy",
    "finite_well_confinement_energy",
    "solve_finite_well",
    "carrier_confinement_energy",
    "overlap_probability",
    "checked_probability",
]
