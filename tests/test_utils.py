"""
Tests for result persistence, parameter files and numeric helpers.
"""

import json
import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from lum_sim import utils
from lum_sim.generator import LuminescenceParams
from lum_sim.materials import EV, band_offsets, get_material, thermal_velocity
from lum_sim.random_source import RandomSource


def test_normalize_rounds_binary_noise():
    assert utils.normalize(0.1 + 0.2) == 0.3
    assert utils.normalize(0.0) == 0.0
    assert utils.normalize(-1.5e-9) == -1.5e-9
    assert np.isinf(utils.normalize(float("inf")))


def test_save_and_load_result(tmp_path):
    result = utils.SimulationResult(
        emissions=np.array([1.6e-19, 1.7e-19]),
        qd_positions=np.array([[1e-8, 2e-8]]),
        qd_radii=np.array([1e-8]),
        qd_energies=np.array([1.6e-19]),
        n_recombined=2,
        n_escaped=3,
        n_remaining=0,
        steps=17,
        elapsed=1.7e-12,
        converged=True,
        meta={"seed": 5, "params": {"n_electrons": 5}, "frame_times": np.arange(3.0)},
    )
    path = tmp_path / "nested" / "run.npz"
    utils.save_result(path, result)
    loaded = utils.load_result(path)

    np.testing.assert_array_equal(loaded.emissions, result.emissions)
    np.testing.assert_array_equal(loaded.qd_positions, result.qd_positions)
    assert (loaded.n_recombined, loaded.n_escaped, loaded.n_remaining, loaded.steps) == (2, 3, 0, 17)
    assert loaded.elapsed == pytest.approx(1.7e-12)
    assert loaded.converged is True
    assert loaded.meta["seed"] == 5
    assert loaded.meta["params"] == {"n_electrons": 5}
    np.testing.assert_array_equal(loaded.meta["frame_times"], np.arange(3.0))

    with pytest.raises(FileExistsError):
        utils.save_result(path, result, overwrite=False)


def test_load_params_json(tmp_path):
    path = tmp_path / "params.json"
    path.write_text(json.dumps({"n_electrons": 12, "temperature": 77.0}))
    params = LuminescenceParams.from_file(path)
    assert params.n_electrons == 12
    assert params.temperature == 77.0


def test_load_params_toml(tmp_path):
    pytest.importorskip("tomllib")
    path = tmp_path / "params.toml"
    path.write_text('n_qds = 4\nenergy_model = "finite_well"\n')
    config = utils.load_params(path)
    assert config == {"n_qds": 4, "energy_model": "finite_well"}


def test_load_params_toml_without_tomllib(tmp_path, monkeypatch):
    """Without tomllib, TOML files fail loudly while JSON keeps working."""
    monkeypatch.setattr(utils, "tomllib", None)
    toml_path = tmp_path / "params.toml"
    toml_path.write_text("n_qds = 4\n")
    with pytest.raises(RuntimeError, match="tomllib"):
        utils.load_params(toml_path)

    json_path = tmp_path / "params.json"
    json_path.write_text(json.dumps({"n_qds": 4}))
    assert utils.load_params(json_path) == {"n_qds": 4}


def test_load_params_unknown_format(tmp_path):
    path = tmp_path / "params.yaml"
    path.write_text("n_qds: 4\n")
    with pytest.raises(ValueError):
        utils.load_params(path)


def test_band_offsets_split():
    conduction, valence = band_offsets("InAs", "GaAs")
    assert (conduction + valence) / EV == pytest.approx(1.424 - 0.354)
    assert conduction / (conduction + valence) == pytest.approx(0.7)
    with pytest.raises(utils.ConfigurationError):
        band_offsets("GaAs", "InAs")
    with pytest.raises(utils.ConfigurationError):
        get_material("Si")


def test_thermal_velocity():
    assert thermal_velocity(300.0) == pytest.approx(6.74e4, rel=1e-2)
    assert thermal_velocity(1200.0) == pytest.approx(2 * thermal_velocity(300.0))
    with pytest.raises(utils.ConfigurationError):
        thermal_velocity(0.0)


def test_random_source_streams():
    a = RandomSource(99)
    b = RandomSource(99)
    assert [a.uniform() for _ in range(5)] == [b.uniform() for _ in range(5)]
    children = RandomSource(99).spawn(3)
    draws = [child.uniform() for child in children]
    assert len(set(draws)) == 3
    assert all(0.0 <= d < 1.0 for d in draws)
    assert RandomSource(99).entropy == 99


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
