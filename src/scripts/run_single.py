#!/usr/bin/env python3
"""
Single Luminescence Simulation Runner

Populates a sample with quantum dots and electrons, steps the simulation
until every electron has recombined or escaped, and saves the emissions.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

import numpy as np

# Add package source to path
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from lum_sim import FrameRecorder, GeneratorManager, LuminescenceParams, utils
from lum_sim.materials import EV


def build_params(args) -> LuminescenceParams:
    if args.config:
        config = utils.load_params(args.config)
    else:
        config = {}
    overrides = {
        "n_electrons": args.electrons,
        "n_qds": args.qds,
        "temperature": args.temperature,
        "sample_x": None if args.size is None else args.size * 1e-9,
        "sample_y": None if args.size is None else args.size * 1e-9,
        "energy_model": args.energy_model,
        "velocity_policy": args.velocity_policy,
        "n_workers": args.workers,
        "max_steps": args.max_steps,
        "seed": args.seed,
    }
    config.update({k: v for k, v in overrides.items() if v is not None})
    config["verbose"] = True
    return LuminescenceParams.from_dict(config)


def main():
    parser = argparse.ArgumentParser(
        description="Run a single QD luminescence simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, default=None, help="JSON or TOML parameter file")
    parser.add_argument("--electrons", type=int, default=None, help="Number of electrons")
    parser.add_argument("--qds", type=int, default=None, help="Number of quantum dots")
    parser.add_argument("--temperature", type=float, default=None, help="Temperature in K")
    parser.add_argument("--size", type=float, default=None, help="Square sample side in nm")
    parser.add_argument(
        "--energy-model",
        choices=["harmonic", "finite_well"],
        default=None,
        help="Confinement energy model (default: harmonic)",
    )
    parser.add_argument(
        "--velocity-policy",
        choices=["ballistic", "rescatter"],
        default=None,
        help="Keep velocities for the whole run or redraw them every step",
    )
    parser.add_argument("--workers", type=int, default=None, help="Worker threads per step")
    parser.add_argument("--max-steps", type=int, default=None, help="Step cap")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument("--frames", action="store_true", help="Store per-step electron frames")
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="Output .npz file path (auto-generated if not provided)",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    try:
        params = build_params(args)
    except utils.ConfigurationError as exc:
        print(f"Invalid configuration: {exc}")
        return 2

    recorder = FrameRecorder() if args.frames else None
    print(
        f"Running luminescence simulation: {params.n_electrons} electrons, "
        f"{params.n_qds} QDs, T={params.temperature} K, seed={params.seed}"
    )
    start_time = time.time()
    result = GeneratorManager(params, recorder).run()
    elapsed_time = time.time() - start_time

    if recorder is not None:
        meta = result.ensure_meta()
        meta["frame_times"] = np.asarray(recorder.times)
        meta["electron_counts"] = recorder.electron_counts()

    if args.out is None:
        timestamp = utils.now_str()
        output_dir = Path("results")
        output_dir.mkdir(exist_ok=True)
        args.out = str(
            output_dir / f"lum_E{params.n_electrons}_Q{params.n_qds}_S{params.seed}_{timestamp}.npz"
        )
    utils.save_result(args.out, result)

    print(f"\nSimulation completed{'' if result.converged else ' (step cap reached)'}")
    print(f"   Time elapsed: {elapsed_time:.2f} seconds")
    print(f"   Steps: {result.steps} ({result.elapsed:.3e} s simulated)")
    print(f"   Photons: {result.n_recombined}, escaped: {result.n_escaped}")
    if result.n_recombined:
        print(f"   Mean emission energy: {result.emissions.mean() / EV:.4f} eV")
    print(f"   Output saved to: {args.out}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
