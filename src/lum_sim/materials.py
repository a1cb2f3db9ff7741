"""
Physical constants and the III-V material table.

Values are SI. Effective masses are stored as absolute masses (kg) so the
energy kernels never have to know about the electron rest mass.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Tuple

from scipy import constants

from .utils import ConfigurationError

KB = constants.k
ME = constants.m_e
HBAR = constants.hbar
EV = constants.e

# Share of the host/QD bandgap difference that lies in the conduction band
CONDUCTION_BAND_OFFSET_RATIO = 0.7


@dataclass(frozen=True)
class Material:
    name: str
    bandgap: float
    electron_mass: float
    hole_mass: float


MATERIALS: Dict[str, Material] = {
    "InAs": Material("InAs", 0.354 * EV, 0.023 * ME, 0.41 * ME),
    "GaAs": Material("GaAs", 1.424 * EV, 0.067 * ME, 0.45 * ME),
}


def get_material(name: str | Material) -> Material:
    if isinstance(name, Material):
        return name
    try:
        return MATERIALS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown material {name!r}; expected one of {sorted(MATERIALS)}"
        ) from None


def band_offsets(qd_material: str | Material, host_material: str | Material) -> Tuple[float, float]:
    """
    Conduction and valence band offsets (J) of a QD embedded in a host.

    The host must have the larger gap, otherwise there is no confining well.
    """
    qd = get_material(qd_material)
    host = get_material(host_material)
    gap_difference = host.bandgap - qd.bandgap
    if gap_difference <= 0.0:
        raise ConfigurationError(
            f"{host.name} does not confine carriers in {qd.name} (gap difference {gap_difference / EV:.3f} eV)"
        )
    conduction = CONDUCTION_BAND_OFFSET_RATIO * gap_difference
    return conduction, gap_difference - conduction


def thermal_velocity(temperature: float) -> float:
    """vth = sqrt(kB T / me)."""
    if temperature <= 0.0:
        raise ConfigurationError(f"temperature must be positive, got {temperature}")
    return math.sqrt(KB * temperature / ME)


__all__ = [
    "KB",
    "ME",
    "HBAR",
    "EV",
    "CONDUCTION_BAND_OFFSET_RATIO",
    "Material",
    "MATERIALS",
    "get_material",
    "band_offsets",
    "thermal_velocity",
]
