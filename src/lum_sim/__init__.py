"""
QD Luminescence Simulation Library - Core Models

This package provides the time-stepped electron capture simulator:
- GeneratorManager: QD/electron population and the fork-join step loop
- ElectronMover: per-chunk worker advancing electrons by one time step
- QuantumDot: confinement energy and capture/escape/recombination model
- SpatialIndex: x-bucket lookup of QDs near an electron
"""

from .generator import GeneratorManager, LuminescenceParams, SimulationState, run_model
from .electron import Electron, ElectronState
from .electron_mover import ElectronMover, VelocityPolicy
from .quantum_dot import QuantumDot
from .spatial_index import FullScan, SpatialIndex, build_qd_lookup
from .random_source import RandomSource
from .output import DrawableObject, FrameRecorder, OutputSink, energy_colors, to_drawables
from . import materials, utils

__all__ = [
    # Simulation
    "GeneratorManager",
    "ElectronMover",
    "run_model",
    # Configuration classes
    "LuminescenceParams",
    "SimulationState",
    "VelocityPolicy",
    # Model objects
    "QuantumDot",
    "Electron",
    "ElectronState",
    "SpatialIndex",
    "FullScan",
    "build_qd_lookup",
    "RandomSource",
    # Output
    "OutputSink",
    "FrameRecorder",
    "DrawableObject",
    "energy_colors",
    "to_drawables",
    # Utilities
    "materials",
    "utils",
]
