# src/scripts/plot_spectrum.py
import argparse
import os
import sys
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.patches import Circle

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from lum_sim import DrawableObject, energy_colors, utils  # type: ignore[import]
from lum_sim.materials import EV


def format_title(meta, n_photons=None):
    """
    Format a title string with important statistics from metadata.
    """
    if not meta:
        return None
    params = meta.get("params", {}) or {}
    seed = meta.get("seed")
    parts = [
        f"T={params.get('temperature', '?')} K",
        f"QDs={params.get('n_qds', '?')}",
        f"e-={params.get('n_electrons', '?')}",
        f"seed={seed if seed is not None else '?'}",
    ]
    if n_photons is not None:
        parts.append(f"photons={n_photons}")
    model = params.get("energy_model")
    if model:
        parts.append(model)
    return " | ".join(parts)


def qd_drawables(result, cmap="viridis"):
    """Rebuild drawable records for the saved QD layout, colored by energy."""
    if result.qd_positions is None or len(result.qd_positions) == 0:
        return []
    colors = energy_colors(result.qd_energies, cmap)
    return [
        DrawableObject(float(x), float(y), color, float(r))
        for (x, y), r, color in zip(result.qd_positions, result.qd_radii, colors)
    ]


def render(result, title=None, output=None, bins=60, cmap="viridis", dpi=200):
    """
    Plot the emission spectrum next to the QD layout.
    """
    fig, (ax_spec, ax_map) = plt.subplots(1, 2, figsize=(11, 5))

    energies_ev = np.asarray(result.emissions, dtype=np.float64) / EV
    if energies_ev.size:
        counts, edges = result.spectrum(bins)
        ax_spec.stairs(counts, edges, fill=True, alpha=0.7)
    else:
        ax_spec.text(0.5, 0.5, "no photons", ha="center", va="center", transform=ax_spec.transAxes)
    ax_spec.set_xlabel("Photon energy (eV)")
    ax_spec.set_ylabel("Counts")

    drawables = qd_drawables(result, cmap=cmap)
    for obj in drawables:
        ax_map.add_patch(Circle((obj.x * 1e9, obj.y * 1e9), obj.radius * 1e9, color=obj.color))
    params = (result.meta or {}).get("params", {}) or {}
    ax_map.set_xlim(0, params.get("sample_x", 1e-6) * 1e9)
    ax_map.set_ylim(0, params.get("sample_y", 1e-6) * 1e9)
    ax_map.set_aspect("equal")
    ax_map.set_xlabel("x (nm)")
    ax_map.set_ylabel("y (nm)")

    if title:
        fig.suptitle(title)
    fig.tight_layout()

    if output:
        os.makedirs(os.path.dirname(output) if os.path.dirname(output) else ".", exist_ok=True)
        plt.savefig(output, dpi=dpi, bbox_inches="tight")
        print(f"Saved figure to {output}")

    plt.close(fig)


def main():
    parser = argparse.ArgumentParser(description="Plot the emission spectrum of a saved result")
    parser.add_argument("file", help="Path to result .npz file")
    parser.add_argument("--out", default=None, help="Output image path (PNG, auto-generated if not provided)")
    parser.add_argument("--bins", type=int, default=60, help="Number of spectrum bins (default: 60)")
    parser.add_argument("--cmap", default="viridis", help="Matplotlib colormap for QD energies")
    parser.add_argument("--dpi", type=int, default=200, help="DPI for output file (default: 200)")
    args = parser.parse_args()

    if not os.path.exists(args.file):
        print(f"Error: file not found: {args.file}")
        return 1

    if args.out is None:
        input_path = Path(args.file)
        args.out = str(input_path.parent / f"{input_path.stem}_spectrum.png")

    result = utils.load_result(args.file)
    title = format_title(result.meta, n_photons=result.n_recombined)
    render(result, title=title, output=args.out, bins=args.bins, cmap=args.cmap, dpi=args.dpi)
    return 0


if __name__ == "__main__":
    sys.exit(main())
