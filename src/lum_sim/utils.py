# src/lum_sim/utils.py
from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    tomllib = None  # type: ignore

SIGNIFICANT_DIGITS = 15


class ConfigurationError(ValueError):
    """Raised when simulation parameters cannot describe a valid run."""


class SimulationError(RuntimeError):
    """Raised when a time step cannot be completed consistently."""


@dataclass
class SimulationResult:
    """Common container for luminescence simulation outputs."""

    emissions: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.float64))
    qd_positions: Optional[np.ndarray] = None
    qd_radii: Optional[np.ndarray] = None
    qd_energies: Optional[np.ndarray] = None
    n_recombined: int = 0
    n_escaped: int = 0
    n_remaining: int = 0
    steps: int = 0
    elapsed: float = 0.0
    converged: bool = True
    meta: Optional[Dict[str, Any]] = None

    def ensure_meta(self) -> Dict[str, Any]:
        if self.meta is None:
            self.meta = {}
        return self.meta

    def spectrum(self, bins: int | np.ndarray = 50):
        """Histogram of the emitted photon energies in eV."""
        from .materials import EV

        energies_ev = np.asarray(self.emissions, dtype=np.float64) / EV
        return np.histogram(energies_ev, bins=bins)


def normalize(value: float) -> float:
    """Round to SIGNIFICANT_DIGITS so regenerated values compare equal."""
    if value == 0.0 or not np.isfinite(value):
        return float(value)
    return float(f"{value:.{SIGNIFICANT_DIGITS}g}")


def now_str() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


def save_result(
    path: str | os.PathLike[str], result: SimulationResult, *, overwrite: bool = True
) -> None:
    """Serialize a SimulationResult to a compressed .npz file."""
    out_dir = Path(path).parent
    out_dir.mkdir(parents=True, exist_ok=True)
    out: Dict[str, Any] = {
        "emissions": np.asarray(result.emissions, dtype=np.float64),
        "counts": np.array(
            [result.n_recombined, result.n_escaped, result.n_remaining, result.steps],
            dtype=np.int64,
        ),
        "elapsed": np.float64(result.elapsed),
        "converged": np.bool_(result.converged),
    }
    for key in ("qd_positions", "qd_radii", "qd_energies"):
        value = getattr(result, key)
        if value is not None:
            out[key] = np.asarray(value, dtype=np.float64)

    # numpy arrays in meta go to the top level, the rest is pickled as a dict
    meta = result.meta or {}
    meta_clean = {}
    for key, value in meta.items():
        if isinstance(value, np.ndarray):
            out[key] = value
        else:
            meta_clean[key] = value
    out["meta"] = meta_clean

    if not overwrite and Path(path).exists():
        raise FileExistsError(f"{path} already exists")
    np.savez_compressed(path, **out)


def load_result(path: str | os.PathLike[str]) -> SimulationResult:
    """
    Load a result .npz written by save_result.
    """
    data = np.load(path, allow_pickle=True)
    counts = data["counts"] if "counts" in data else np.zeros(4, dtype=np.int64)
    meta = {}
    if "meta" in data:
        meta_raw = data["meta"]
        try:
            meta = meta_raw.item()
        except ValueError:
            meta = {}
    reserved = {
        "emissions", "counts", "elapsed", "converged", "meta",
        "qd_positions", "qd_radii", "qd_energies",
    }
    for key in data.files:
        if key not in reserved and key not in meta:
            meta[key] = data[key]

    return SimulationResult(
        emissions=data["emissions"].astype(np.float64),
        qd_positions=data["qd_positions"] if "qd_positions" in data else None,
        qd_radii=data["qd_radii"] if "qd_radii" in data else None,
        qd_energies=data["qd_energies"] if "qd_energies" in data else None,
        n_recombined=int(counts[0]),
        n_escaped=int(counts[1]),
        n_remaining=int(counts[2]),
        steps=int(counts[3]),
        elapsed=float(data["elapsed"]) if "elapsed" in data else 0.0,
        converged=bool(data["converged"]) if "converged" in data else True,
        meta=meta,
    )


def load_params(path: str | os.PathLike[str]) -> Dict[str, Any]:
    """
    Load simulation parameters from JSON or TOML.

    TOML needs the standard-library `tomllib` (Python 3.11+); on older
    interpreters a .toml file raises RuntimeError and JSON still works.
    """
    path = str(path)
    with open(path, "rb") as fh:
        data = fh.read()
    suffix = Path(path).suffix.lower()
    if suffix in {".json", ""}:
        return json.loads(data.decode("utf-8"))
    if suffix in {".toml", ".tml"}:
        if tomllib is None:
            raise RuntimeError("tomllib is unavailable; cannot parse TOML files")
        return tomllib.loads(data.decode("utf-8"))
    raise ValueError(f"Unsupported parameter file format: {suffix}")
