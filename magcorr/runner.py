import os
import logging
from typing import Dict, Optional

import numpy as np

from magcorr.bundle import load_bundle
from magcorr.config_loader import load_config
from magcorr.core import CorrelationCalculator, SqwResult
from magcorr.lattice import generate_q_path, lattice_vectors, reciprocal_basis
from magcorr.plotting import plot_mode_weights, plot_sqw_map
from magcorr.schema import MagCorrConfig
from magcorr.sites import sites_from_config

logger = logging.getLogger(__name__)


def _resolve(path: str, config_dir: str) -> str:
    return path if os.path.isabs(path) else os.path.join(config_dir, path)


def unit_cell_from_config(config: MagCorrConfig) -> np.ndarray:
    """Unit-cell vectors (rows) from either lattice parameters or raw vectors."""
    cs = config.crystal_structure
    if cs.lattice_vectors is not None:
        return np.array(cs.lattice_vectors, dtype=float)
    lp = cs.lattice_parameters
    return lattice_vectors(lp.a, lp.b, lp.c, lp.alpha, lp.beta, lp.gamma)


def q_path_from_config(config: MagCorrConfig) -> np.ndarray:
    """Generates the Q-path (r.l.u.) of the `q_path` section."""
    if config.q_path is None:
        return np.empty((0, 3))
    q_conf = config.q_path
    return generate_q_path(q_conf.path, q_conf.points_per_segment, q_conf.high_symmetry_points())


def export_sqw_csv(filename: str, result: SqwResult):
    """Writes one row per Q-point and mode."""
    header = "qh,qk,ql,mode,energy,weight,weight_full"
    with open(filename, 'w') as f:
        f.write(header + "\n")
        for i, q in enumerate(result.q_vectors):
            for m in range(result.energies.shape[1]):
                f.write(
                    f"{q[0]:.6f},{q[1]:.6f},{q[2]:.6f},{m},"
                    f"{result.energies[i, m]:.6f},{result.intensities[i, m]:.6f},"
                    f"{result.intensities_full[i, m]:.6f}\n"
                )
    logger.info(f"S(Q,w) exported to CSV: {filename}")


def run_calculation(config_file: str) -> Optional[Dict[str, np.ndarray]]:
    """
    Main execution logic for running a MagCorr calculation.

    Returns the arrays of the S(Q,w) sweep, or None when the sweep task is off.
    """
    config = load_config(config_file)
    config_dir = os.path.dirname(os.path.abspath(config_file))

    sites = sites_from_config(config.crystal_structure.sites)
    if not sites:
        logger.warning("No magnetic sites defined; all results will be empty.")

    B_matrix = reciprocal_basis(unit_cell_from_config(config))
    calculator = CorrelationCalculator(sites, config.correlation, B_matrix=B_matrix)

    tasks = config.tasks
    if not tasks.run_sqw:
        logger.info("Task 'run_sqw' disabled; nothing to do.")
        return None

    bundle = load_bundle(_resolve(config.input.bundle_file, config_dir))

    logger.info("Calculating S(Q,w)...")
    sqw_res = calculator.calculate_sqw(
        bundle,
        n_workers=config.calculation.n_workers,
        progress=config.calculation.show_progress,
    )
    for msg in sqw_res.warnings:
        logger.debug(msg)

    out = config.output
    if out.save_data:
        sqw_file = _resolve(out.sqw_data_filename, config_dir)
        os.makedirs(os.path.dirname(sqw_file), exist_ok=True)
        calculator.save_results(sqw_file, sqw_res.as_dict())

    if tasks.export_csv:
        export_sqw_csv(_resolve(out.sqw_csv_filename, config_dir), sqw_res)

    plot_config = config.plotting
    if tasks.plot_sqw and plot_config.save_plot:
        plot_sqw_map(
            q_vectors=sqw_res.q_vectors,
            energies=sqw_res.energies,
            intensities=sqw_res.intensities,
            save_filename=_resolve(plot_config.sqw_plot_filename, config_dir),
            title=plot_config.sqw_title,
            ylim=plot_config.energy_limits_sqw,
            broadening_width=plot_config.broadening_width,
            cmap=plot_config.cmap,
            show_plot=plot_config.show_plot,
        )

    if tasks.plot_weights and plot_config.save_plot:
        plot_mode_weights(
            q_vectors=sqw_res.q_vectors,
            energies=sqw_res.energies,
            intensities=sqw_res.intensities,
            save_filename=_resolve(plot_config.weights_plot_filename, config_dir),
            ylim=plot_config.energy_limits_sqw,
            show_plot=plot_config.show_plot,
        )

    return sqw_res.as_dict()
