#!/usr/bin/env python3
"""
Batch Luminescence Simulation Runner

Runs the same sample configuration over a range of seeds (and optionally
temperatures) in parallel processes, saving one result per run plus a
manifest.
"""

import argparse
import json
import sys
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict

# Add package source to path
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from lum_sim import GeneratorManager, LuminescenceParams, utils


def run_single_simulation(config: Dict[str, Any], output_path: str) -> Dict[str, Any]:
    """
    Run a single simulation and save it.

    Called in worker processes by ProcessPoolExecutor, so it must stay at
    module level for pickling.
    """
    params = LuminescenceParams.from_dict(config)
    result = GeneratorManager(params).run()
    utils.save_result(output_path, result)

    return {
        "output_path": output_path,
        "seed": params.seed,
        "temperature": params.temperature,
        "photons": int(result.n_recombined),
        "escaped": int(result.n_escaped),
        "steps": int(result.steps),
        "converged": bool(result.converged),
        "success": True,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Generate a batch of luminescence simulations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, default=None, help="JSON or TOML parameter file")
    parser.add_argument("--count", type=int, required=True, help="Number of seeds per temperature")
    parser.add_argument(
        "--temperatures",
        type=float,
        nargs="+",
        default=None,
        help="Temperatures in K to sweep (default: the configured one)",
    )
    parser.add_argument("--jobs", type=int, default=1, help="Number of parallel processes (default: 1)")
    parser.add_argument("--name", type=str, default="batch", help="Batch name for output folder")
    parser.add_argument(
        "--base-seed",
        type=int,
        default=42,
        help="Base seed (each simulation gets base_seed + index) (default: 42)",
    )

    args = parser.parse_args()

    base_config = utils.load_params(args.config) if args.config else {}
    # each process runs its steps on a single worker thread
    base_config.setdefault("n_workers", 1)
    try:
        base_params = LuminescenceParams.from_dict(base_config)
        base_params.validate()
    except utils.ConfigurationError as exc:
        print(f"Invalid configuration: {exc}")
        return 2
    temperatures = args.temperatures or [base_params.temperature]

    timestamp = utils.now_str()
    batch_dir = Path("results") / "batches" / f"{args.name}_E{base_params.n_electrons}_Q{base_params.n_qds}_{timestamp}"
    batch_dir.mkdir(parents=True, exist_ok=True)

    manifest = {
        "config": base_config,
        "temperatures": temperatures,
        "count": args.count,
        "base_seed": args.base_seed,
        "jobs": args.jobs,
        "timestamp": timestamp,
        "batch_name": args.name,
    }
    manifest_path = batch_dir / "manifest.json"
    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)

    print(f"Batch generation started:")
    print(f"  Electrons / QDs: {base_params.n_electrons} / {base_params.n_qds}")
    print(f"  Temperatures: {temperatures}")
    print(f"  Seeds per temperature: {args.count}")
    print(f"  Parallel jobs: {args.jobs}")
    print(f"  Output directory: {batch_dir}")
    print()

    tasks = []
    for temperature in temperatures:
        for i in range(args.count):
            seed = args.base_seed + i
            config = dict(base_config, temperature=temperature, seed=seed)
            output_path = str(batch_dir / f"T{temperature:g}_S{seed}.npz")
            tasks.append((config, output_path))

    start_time = time.time()
    results = []
    failed = []

    with ProcessPoolExecutor(max_workers=args.jobs) as executor:
        future_to_task = {executor.submit(run_single_simulation, *task): task for task in tasks}

        completed = 0
        for future in as_completed(future_to_task):
            completed += 1
            task = future_to_task[future]
            try:
                result = future.result()
                results.append(result)
                print(
                    f"  [{completed}/{len(tasks)}] Completed: T={result['temperature']:g} K, "
                    f"seed={result['seed']}, photons={result['photons']}"
                )
            except Exception as e:
                failed.append({"task": task[1], "error": str(e)})
                print(f"  [{completed}/{len(tasks)}] FAILED: {task[1]} - {e}")

    elapsed_time = time.time() - start_time

    manifest["results"] = {
        "total": len(tasks),
        "successful": len(results),
        "failed": len(failed),
        "elapsed_seconds": elapsed_time,
    }
    manifest["simulations"] = results
    if failed:
        manifest["failures"] = failed

    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)

    print()
    print("=" * 60)
    print("Batch generation completed!")
    print(f"  Successful: {len(results)}/{len(tasks)}")
    print(f"  Failed: {len(failed)}/{len(tasks)}")
    print(f"  Total time: {elapsed_time:.2f} seconds")
    print(f"  Output directory: {batch_dir}")
    print(f"  Manifest: {manifest_path}")
    print("=" * 60)

    return 0 if len(failed) == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
