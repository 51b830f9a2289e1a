#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Dynamical Structure Factor Calculator Module.

This module provides the `CorrelationCalculator` class, which turns the
Hamiltonian data of a magnon system at a list of Q-points into per-mode
spin-correlation tensors and neutron-scattering weights:

1.  Bogoliubov transformation and correlation tensors (`correlations`).
2.  Bose factor, magnetic form factor and Q-perpendicular projection
    (`intensities`).

Q-points are independent, so sweeps are distributed over a process pool.
"""
import logging
import timeit
from dataclasses import dataclass, field
from multiprocessing import Pool
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt
from tqdm import tqdm

from .bundle import HamiltonianBundle
from .correlations import CorrelationResult, compute_correlations
from .form_factors import FormFactor
from .intensities import apply_weights
from .linalg import sign_matrix
from .schema import CorrelationSettings
from .sites import MagneticSite

logger = logging.getLogger(__name__)


@dataclass
class SqwResult:
    """Result of a dynamical structure factor sweep."""
    q_vectors: npt.NDArray[np.float64]
    energies: npt.NDArray[np.float64]
    intensities: npt.NDArray[np.float64]
    intensities_full: npt.NDArray[np.float64]
    warnings: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "q_vectors": self.q_vectors,
            "energies": self.energies,
            "intensities": self.intensities,
            "intensities_full": self.intensities_full,
        }


# --- Global variable for worker processes ---
_worker_calculator = None


def _init_worker(calculator):
    """Initializer for pool workers; keeps one calculator per process."""
    global _worker_calculator
    _worker_calculator = calculator


def process_q_point(
    args: Tuple[
        npt.NDArray[np.float64],
        npt.NDArray[np.complex128],
        npt.NDArray[np.complex128],
        npt.NDArray[np.float64],
        npt.NDArray[np.complex128],
        npt.NDArray[np.float64],
    ],
) -> Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64], npt.NDArray[np.float64], List[str]]:
    """
    Worker function for one Q-point of a sweep.

    Returns energies, weights, full weights and warnings. A Q-point whose
    calculation raises yields NaN arrays so that the sweep carries on.
    """
    q_vector, H_mat, chol_mat, g_sign, eigenvectors, energies = args
    if _worker_calculator is None:
        raise RuntimeError("Worker not initialized with a calculator")

    nmodes = H_mat.shape[0]
    try:
        result = _worker_calculator.calculate(
            q_vector, H_mat, chol_mat, eigenvectors, energies, g_sign=g_sign
        )
    except Exception:
        logger.exception(f"Error during correlation calculation for Q = {q_vector}.")
        nan = np.full((nmodes,), np.nan)
        return nan, nan.copy(), nan.copy(), [f"Calculation failed at Q = {q_vector}."]

    full = np.array([m.weight_full for m in result.modes], dtype=float)
    return result.energies, result.weights, full, result.warnings


class CorrelationCalculator:
    """
    Spin-correlation and intensity calculator for a fixed magnetic structure.

    Args:
        sites (Sequence[MagneticSite]): Magnetic sites of the unit cell.
        settings (Optional[CorrelationSettings]): Sign convention, temperature,
            Bose cutoff and form factor. Defaults are used when None.
        B_matrix (Optional[npt.NDArray[np.float64]]): Reciprocal basis for
            converting Q to 1/A in the form factor.
    """

    def __init__(
        self,
        sites: Sequence[MagneticSite],
        settings: Optional[CorrelationSettings] = None,
        B_matrix: Optional[npt.NDArray[np.float64]] = None,
    ):
        self.sites: List[MagneticSite] = list(sites)
        self.settings = settings if settings is not None else CorrelationSettings()
        self.B_matrix = None if B_matrix is None else np.asarray(B_matrix, dtype=float)

        if self.settings.form_factor_ion:
            self.form_factor = FormFactor.for_ion(self.settings.form_factor_ion)
        else:
            self.form_factor = FormFactor(self.settings.form_factor)

        if self.form_factor.enabled and self.B_matrix is None:
            logger.warning("No reciprocal basis given; |Q| for the form factor is taken in r.l.u.")

    @property
    def nspins(self) -> int:
        return len(self.sites)

    def calculate(
        self,
        q_vector: Union[Sequence[float], npt.NDArray[np.float64]],
        H_mat: npt.NDArray[np.complex128],
        chol_mat: npt.NDArray[np.complex128],
        eigenvectors: Union[npt.NDArray[np.complex128], Sequence[npt.NDArray[np.complex128]]],
        energies: Sequence[float],
        g_sign: Optional[npt.NDArray[np.float64]] = None,
    ) -> CorrelationResult:
        """
        Correlation tensors and weights of all modes at one Q-point.

        Args:
            q_vector: Momentum transfer in r.l.u.
            H_mat: Hamiltonian matrix (2N x 2N).
            chol_mat: Cholesky factor of the Hamiltonian (2N x 2N).
            eigenvectors: External eigenvectors (columns or sequence).
            energies: External energy estimates, used for the mode order.
            g_sign: Sign matrix; built from the site count when None.

        Returns:
            CorrelationResult: Fully post-processed modes plus warnings.
        """
        if g_sign is None:
            g_sign = sign_matrix(self.nspins)

        result = compute_correlations(
            H_mat,
            chol_mat,
            g_sign,
            q_vector,
            eigenvectors,
            energies,
            self.sites,
            phase_sign=self.settings.phase_sign,
        )
        apply_weights(q_vector, result.modes, self.settings, self.form_factor, self.B_matrix)
        return result

    def calculate_sqw(
        self,
        bundle: HamiltonianBundle,
        n_workers: int = 1,
        progress: bool = False,
    ) -> SqwResult:
        """
        Calculate energies and weights over all Q-points of a bundle.

        Args:
            bundle (HamiltonianBundle): Per-Q Hamiltonian data.
            n_workers (int): Number of worker processes; 1 runs in-process.
            progress (bool): Show a tqdm progress bar.

        Returns:
            SqwResult: Arrays of shape (nq, 2N); failed Q-points hold NaN.

        Raises:
            ValueError: If the bundle does not match the number of sites.
        """
        if bundle.nspins != self.nspins:
            raise ValueError(
                f"Bundle describes {bundle.nspins} sites but the calculator has {self.nspins}."
            )

        logger.info(f"Running correlation calculation for {len(bundle)} Q-points...")
        start_time: float = timeit.default_timer()

        pool_args = [
            (
                bundle.q_points[i],
                bundle.hamiltonians[i],
                bundle.cholesky[i],
                bundle.g_sign,
                bundle.eigenvectors[i],
                bundle.energies[i],
            )
            for i in range(len(bundle))
        ]

        if n_workers > 1:
            with Pool(processes=n_workers, initializer=_init_worker, initargs=(self,)) as pool:
                iterator = pool.imap(process_q_point, pool_args)
                if progress:
                    iterator = tqdm(iterator, total=len(pool_args), desc="S(Q,w)")
                results = list(iterator)
        else:
            _init_worker(self)
            iterator = pool_args if not progress else tqdm(pool_args, desc="S(Q,w)")
            results = [process_q_point(a) for a in iterator]

        energies_out, weights_out, full_out, warnings_out = zip(*results) if results else ([], [], [], [])
        warnings: List[str] = [w for ws in warnings_out for w in ws]

        num_failures = sum(np.isnan(en).any() for en in energies_out)
        if num_failures > 0:
            logger.warning(
                f"Calculation failed for {num_failures} out of {len(bundle)} Q-points. Check logs for details."
            )
        if warnings:
            logger.info(f"{len(warnings)} diagnostics raised during the sweep.")

        end_time: float = timeit.default_timer()
        logger.info(
            f"Run-time for correlation calculation: {np.round((end_time - start_time) / 60, 2)} min."
        )

        nmodes = 2 * self.nspins
        return SqwResult(
            q_vectors=np.array(bundle.q_points),
            energies=np.array(energies_out, dtype=float).reshape(len(bundle), nmodes),
            intensities=np.array(weights_out, dtype=float).reshape(len(bundle), nmodes),
            intensities_full=np.array(full_out, dtype=float).reshape(len(bundle), nmodes),
            warnings=warnings,
        )

    def save_results(self, filename: str, results_dict: Dict[str, Any]):
        """
        Save calculation results to a compressed NumPy (.npz) file.

        Args:
            filename (str): The name of the file to save the results to.
            results_dict (Dict[str, Any]): Arrays to save, keyed by name.

        Raises:
            TypeError: If results_dict is not a dictionary.
            ValueError: If filename is empty.
            IOError: If there is an error writing the file.
        """
        if not isinstance(results_dict, dict):
            raise TypeError("results_dict must be a dictionary.")
        if not filename:
            raise ValueError("filename cannot be empty.")

        logger.info(f"Saving results to '{filename}'...")
        try:
            np.savez_compressed(filename, **results_dict)
            logger.info(f"Results successfully saved to '{filename}'.")
        except (IOError, OSError) as e:
            logger.error(f"Failed to save results to '{filename}': {e}")
            raise IOError(f"File saving failed: {e}") from e
