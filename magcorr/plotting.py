import numpy as np
import matplotlib
import matplotlib.pyplot as plt
from matplotlib.colors import LogNorm
import logging
import os
from typing import Optional, List

logger = logging.getLogger(__name__)

# Energy grid step for the broadened map (meV)
ENERGY_STEP = 0.05


def _path_length(q_vectors: np.ndarray) -> np.ndarray:
    if len(q_vectors) > 1:
        dists = np.linalg.norm(np.diff(q_vectors, axis=0), axis=1)
        return np.concatenate(([0], np.cumsum(dists)))
    return np.arange(len(q_vectors), dtype=float)


def _finish(save_filename: Optional[str], show_plot: bool, what: str):
    if save_filename:
        os.makedirs(os.path.dirname(os.path.abspath(save_filename)), exist_ok=True)
        plt.savefig(save_filename, dpi=150)
        logger.info(f"{what} plot saved to {save_filename}")
    if show_plot and matplotlib.get_backend().lower() != "agg":
        plt.show()
    plt.close()


def broadened_intensity_map(
    energies: np.ndarray,
    intensities: np.ndarray,
    y_grid: np.ndarray,
    broadening_width: float = 0.2,
) -> np.ndarray:
    """
    Sum Lorentzian lines of full width `broadening_width` on an energy grid.

    NaN modes (failed Q-points) are skipped. Returns (len(y_grid), nq).
    """
    energies = np.asarray(energies, dtype=float)
    intensities = np.asarray(intensities, dtype=float)
    intensity_matrix = np.zeros((len(y_grid), energies.shape[0]))
    half = broadening_width / 2

    for i_q in range(energies.shape[0]):
        ens = energies[i_q]
        ints = intensities[i_q]
        valid = ~np.isnan(ens) & ~np.isnan(ints)
        for en_val, w_val in zip(ens[valid], ints[valid]):
            lor = (1.0 / np.pi) * half / ((y_grid - en_val) ** 2 + half**2)
            intensity_matrix[:, i_q] += w_val * lor
    return intensity_matrix


def plot_sqw_map(
    q_vectors: np.ndarray,
    energies: np.ndarray,
    intensities: np.ndarray,
    save_filename: Optional[str],
    title: str = "S(Q,w)",
    ylim: Optional[List[float]] = None,
    broadening_width: float = 0.2,
    cmap: str = 'PuBu_r',
    show_plot: bool = False
):
    """
    Plots the S(Q,w) intensity map with Lorentzian broadening.
    """
    try:
        x_vals = _path_length(np.asarray(q_vectors, dtype=float))
        energies = np.asarray(energies, dtype=float)

        if ylim is None:
            finite = energies[np.isfinite(energies)]
            y_max = finite.max() * 1.1 if finite.size and finite.max() > 0 else 20.0
            y_min = min(0.0, finite.min() * 1.1) if finite.size else 0.0
            ylim = [y_min, y_max]

        y_min, y_max = ylim
        y_grid = np.arange(y_min, y_max + ENERGY_STEP, ENERGY_STEP)
        intensity_matrix = broadened_intensity_map(energies, intensities, y_grid, broadening_width)

        plt.figure(figsize=(10, 6))

        pos_vals = intensity_matrix[intensity_matrix > 1e-6]
        if len(pos_vals) > 0:
            vmin, vmax = np.min(pos_vals), np.max(pos_vals)
        else:
            vmin, vmax = 1e-3, 1.0

        pcm = plt.pcolormesh(x_vals, y_grid, np.clip(intensity_matrix, vmin, None),
                             norm=LogNorm(vmin=vmin, vmax=vmax),
                             cmap=cmap,
                             shading='nearest')

        plt.colorbar(pcm, label="Intensity (arb. units)")
        plt.title(title)
        plt.xlabel("Q Path Length (r.l.u.)")
        plt.ylabel("Energy (meV)")
        plt.ylim(ylim)
        if len(x_vals) > 1:
            plt.xlim(min(x_vals), max(x_vals))
        plt.tight_layout()

        _finish(save_filename, show_plot, "S(Q,w)")

    except Exception as e:
        logger.error(f"Failed to plot S(Q,w): {e}")
        raise e


def plot_mode_weights(
    q_vectors: np.ndarray,
    energies: np.ndarray,
    intensities: np.ndarray,
    save_filename: Optional[str],
    title: str = "Mode weights",
    ylim: Optional[List[float]] = None,
    show_plot: bool = False
):
    """
    Scatter plot of the mode energies along the path, marker size and colour
    scaled by the neutron weight of each mode.
    """
    try:
        x_vals = _path_length(np.asarray(q_vectors, dtype=float))
        energies = np.asarray(energies, dtype=float)
        intensities = np.asarray(intensities, dtype=float)

        xs = np.repeat(x_vals, energies.shape[1])
        ens = energies.ravel()
        ws = intensities.ravel()
        valid = np.isfinite(ens) & np.isfinite(ws)
        xs, ens, ws = xs[valid], ens[valid], ws[valid]

        w_max = ws.max() if ws.size and ws.max() > 0 else 1.0
        sizes = 4.0 + 40.0 * ws / w_max

        plt.figure(figsize=(8, 6))
        sc = plt.scatter(xs, ens, s=sizes, c=ws, cmap='viridis', alpha=0.8)
        plt.colorbar(sc, label="Weight")
        plt.title(title)
        plt.xlabel("Q Path Length (r.l.u.)")
        plt.ylabel("Energy (meV)")
        if ylim:
            plt.ylim(ylim)
        plt.grid(True, alpha=0.3)
        plt.tight_layout()

        _finish(save_filename, show_plot, "Mode weight")

    except Exception as e:
        logger.error(f"Failed to plot mode weights: {e}")
        raise e
