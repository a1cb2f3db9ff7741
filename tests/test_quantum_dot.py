"""
Unit tests for the quantum dot energy and capture model.
"""

import logging
import math
import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from lum_sim import quantum_dot
from lum_sim.materials import EV, HBAR, MATERIALS, band_offsets
from lum_sim.quantum_dot import (
    QuantumDot,
    carrier_confinement_energy,
    finite_well_confinement_energy,
    harmonic_confinement_energy,
    overlap_probability,
    solve_finite_well,
)
from lum_sim.random_source import RandomSource
from lum_sim.utils import ConfigurationError

NM = 1e-9


class ScriptedRandom:
    """Returns the given uniform values in order and counts the draws."""

    def __init__(self, *values):
        self.values = list(values)
        self.draws = 0

    def uniform(self):
        self.draws += 1
        return self.values.pop(0)

    def gaussian(self):
        raise AssertionError("gaussian draw not expected")


def make_qd(**kwargs):
    params = dict(x=50 * NM, y=50 * NM, radius=10 * NM, height=5 * NM)
    params.update(kwargs)
    return QuantumDot(**params)


def _lens_area(d, r, s):
    """Reference two-circle intersection area (standard closed form)."""
    if d >= r + s:
        return 0.0
    if d <= abs(r - s):
        return math.pi * min(r, s) ** 2
    a1 = r * r * math.acos((d * d + r * r - s * s) / (2 * d * r))
    a2 = s * s * math.acos((d * d + s * s - r * r) / (2 * d * s))
    k = 0.5 * math.sqrt((-d + r + s) * (d + r - s) * (d - r + s) * (d + r + s))
    return a1 + a2 - k


def test_overlap_electron_inside_qd():
    """Electron disk entirely inside the QD gives probability 1."""
    assert overlap_probability(2.0, 3.0, 10.0) == 1.0
    assert overlap_probability(7.0, 3.0, 10.0) == 1.0


def test_overlap_qd_inside_electron_disk():
    """QD entirely inside the reachable disk gives radius^2 / span^2."""
    assert overlap_probability(0.0, 20.0, 10.0) == pytest.approx(0.25)
    assert overlap_probability(5.0, 20.0, 10.0) == pytest.approx(0.25)


@pytest.mark.parametrize(
    "d, r, s",
    [
        (12.0, 10.0, 5.0),   # QD center beyond the chord
        (8.0, 10.0, 5.0),
        (0.2, 2.0, 1.9),     # QD center before the chord
        (1.0, 3.0, 3.5),
        (15.0, 10.0, 10.0),
    ],
)
def test_overlap_partial_matches_lens_area(d, r, s):
    """Both partial-overlap branches agree with the standard lens area."""
    expected = _lens_area(d, r, s) / (math.pi * s * s)
    assert overlap_probability(d, s, r) == pytest.approx(expected, rel=1e-9)
    assert 0.0 <= overlap_probability(d, s, r) <= 1.0


def test_overlap_disjoint_and_degenerate_span():
    assert overlap_probability(30.0, 5.0, 10.0) == 0.0
    assert overlap_probability(3.0, 0.0, 10.0) == 1.0
    assert overlap_probability(11.0, 0.0, 10.0) == 0.0


def test_capture_case_one_is_certain():
    """distance + span <= radius must capture on every draw below 1."""
    qd = make_qd()
    assert qd.capture_allowed
    rng = ScriptedRandom(0.0, 0.5, 0.999999999)
    for _ in range(3):
        assert qd.capture(rng, 1 * NM, 5 * NM)


def test_capture_frequency_at_center():
    """At distance 0 with span >= radius, P(capture) -> radius^2 / span^2."""
    qd = make_qd()
    rng = RandomSource(1234)
    trials = 20_000
    span = 20 * NM
    hits = sum(qd.capture(rng, 0.0, span) for _ in range(trials))
    expected = min(1.0, (qd.radius / span) ** 2)
    assert abs(hits / trials - expected) < 0.02


def test_capture_forbidden_when_level_unbound():
    """A very flat dot has no bound electron level and never captures."""
    qd = make_qd(height=1 * NM)
    conduction, _ = band_offsets("InAs", "GaAs")
    assert qd.electron_energy >= conduction
    assert not qd.capture_allowed
    assert not qd.capture(ScriptedRandom(0.0), 0.0, 1 * NM)


def test_capture_probability_defect_is_clamped(monkeypatch, caplog):
    """Probabilities outside [0, 1] are logged as errors and clamped."""
    monkeypatch.setattr(quantum_dot, "overlap_probability", lambda d, s, r: 1.5)
    qd = make_qd()
    with caplog.at_level(logging.ERROR, logger="lum_sim.quantum_dot"):
        proba = qd.capture_probability(1 * NM, 1 * NM)
    assert proba == 1.0
    assert any("outside [0, 1]" in record.message for record in caplog.records)

    monkeypatch.setattr(quantum_dot, "overlap_probability", lambda d, s, r: float("nan"))
    assert qd.capture_probability(1 * NM, 1 * NM) == 0.0


def test_recombine_is_sticky_until_reset():
    qd = make_qd(recombine_probability=0.5)
    rng = ScriptedRandom(0.1)
    assert not qd.recombined
    assert qd.recombine(rng)
    assert qd.recombined

    # second call in the same generation: no draw, still True
    assert qd.recombine(rng)
    assert rng.draws == 1

    qd.reset_recombine()
    assert not qd.recombined
    rng = ScriptedRandom(0.9)
    assert not qd.recombine(rng)
    assert rng.draws == 1


def test_escape_uses_fixed_probability():
    qd = make_qd(escape_probability=0.3)
    assert qd.escape(ScriptedRandom(0.29))
    assert not qd.escape(ScriptedRandom(0.31))


def test_concurrent_recombine_stays_set():
    """Threads racing on one dot all observe the recombined flag."""
    import threading

    qd = make_qd(recombine_probability=1.0)
    results = []

    def worker():
        results.append(qd.recombine(RandomSource(None)))

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert all(results)
    assert qd.recombined


def test_harmonic_confinement_closed_form():
    dimension = 10 * NM
    offset = 0.5 * EV
    mass = 0.023 * 9.1093837015e-31
    expected = HBAR * math.sqrt(8.0 * offset / (mass * dimension**2)) / 2.0
    assert harmonic_confinement_energy(dimension, offset, mass) == pytest.approx(expected, rel=1e-12)


@pytest.mark.parametrize("u0_sq", [0.01, 0.5, 2.0, 28.3, 355.0, 1e4])
def test_solve_finite_well_root(u0_sq):
    v = solve_finite_well(u0_sq)
    assert 0.0 < v < math.pi / 2
    lhs = v * v * (1.0 + math.tan(v) ** 2)
    assert lhs == pytest.approx(u0_sq, rel=1e-6)


def test_finite_well_energy_below_offset():
    """The ground level of a finite well always lies inside the well."""
    offset = 0.75 * EV
    mass = MATERIALS["InAs"].electron_mass
    for size in (3 * NM, 5 * NM, 20 * NM):
        energy = finite_well_confinement_energy(size, offset, mass)
        assert 0.0 < energy < offset


def test_energy_models_are_distinct_and_physical():
    harmonic = make_qd(energy_model="harmonic")
    finite = make_qd(energy_model="finite_well")
    assert harmonic.energy_model == "harmonic"
    assert finite.energy_model == "finite_well"
    for qd in (harmonic, finite):
        assert MATERIALS["InAs"].bandgap < qd.energy < MATERIALS["GaAs"].bandgap
        assert qd.energy == pytest.approx(
            MATERIALS["InAs"].bandgap + qd.electron_energy + qd.hole_energy
        )
    assert harmonic.energy != finite.energy


def test_larger_dots_emit_lower_energy():
    small = make_qd(radius=5 * NM)
    large = make_qd(radius=15 * NM)
    assert large.energy < small.energy


def test_carrier_energy_unknown_model():
    with pytest.raises(ConfigurationError):
        carrier_confinement_energy(10 * NM, 5 * NM, 0.5 * EV, 1e-31, model="bogus")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"radius": 0.0},
        {"radius": -1 * NM},
        {"height": 0.0},
        {"qd_material": "Unobtainium"},
        {"energy_model": "bogus"},
        {"recombine_probability": 1.5},
    ],
)
def test_invalid_quantum_dot(kwargs):
    with pytest.raises(ConfigurationError):
        make_qd(**kwargs)


def test_geometry_is_normalized_and_fixed():
    qd = make_qd(x=0.1 * NM + 0.2 * NM)
    assert qd.x == pytest.approx(0.3 * NM)
    with pytest.raises(AttributeError):
        qd.x = 0.0
    assert qd.distance(qd.x + 3 * NM, qd.y + 4 * NM) == pytest.approx(5 * NM)
    assert np.isfinite(qd.energy)


def test_overlaps_uses_sum_of_radii():
    a = make_qd(x=50 * NM, radius=10 * NM)
    apart = make_qd(x=76 * NM, radius=15 * NM)
    overlapping = make_qd(x=74 * NM, radius=15 * NM)
    assert not a.overlaps(apart)
    assert a.overlaps(overlapping)
    assert overlapping.overlaps(a)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
