import logging
from typing import List, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt
from scipy import linalg as la

logger = logging.getLogger(__name__)

# --- Numerical Constants ---
DIAGONAL_RESIDUE_TOLERANCE: float = 1e-6
NEGATIVE_ENERGY_CLAMP_THRESHOLD: float = 1e-10


def sign_matrix(nspins: int) -> npt.NDArray[np.float64]:
    """Pseudo-metric g = diag(1, ..., 1, -1, ..., -1) for nspins sites."""
    return np.diag(np.concatenate([np.ones(nspins), -np.ones(nspins)]))


def _sort_modes(energies: Sequence[float]) -> npt.NDArray[np.int_]:
    """
    Permutation that orders modes by descending energy.

    The sort is stable, so degenerate modes keep their original relative
    order and repeated calls on identical input give identical output.

    Args:
        energies (Sequence[float]): Per-mode energy estimates.

    Returns:
        npt.NDArray[np.int_]: Indices of the modes in sorted order.
    """
    energies_real = np.real(np.asarray(energies, dtype=complex))
    return np.argsort(-energies_real, kind="stable")


def _eigenvector_matrix(
    eigenvectors: Union[npt.NDArray[np.complex128], Sequence[npt.NDArray[np.complex128]]],
    sorting: npt.NDArray[np.int_],
) -> npt.NDArray[np.complex128]:
    """Stack eigenvectors as columns in the given order."""
    if isinstance(eigenvectors, np.ndarray) and eigenvectors.ndim == 2:
        evec_mat = np.asarray(eigenvectors, dtype=np.complex128)
    else:
        evec_mat = np.column_stack(
            [np.asarray(v, dtype=np.complex128) for v in eigenvectors]
        )
    return evec_mat[:, sorting]


def _invert_cholesky(
    chol_mat: npt.NDArray[np.complex128], q_vector_label: str
) -> Tuple[npt.NDArray[np.complex128], bool]:
    """
    Invert the Cholesky factor of the Hamiltonian.

    A singular factor does not abort the calculation: the Moore-Penrose
    pseudo-inverse is returned instead and the caller is told through the
    flag, so a Q scan can carry on over isolated singular points.

    Args:
        chol_mat (npt.NDArray[np.complex128]): Cholesky factor L (2N x 2N).
        q_vector_label (str): A string label identifying the q-vector (for logging).

    Returns:
        Tuple[npt.NDArray[np.complex128], bool]: The (possibly degraded) inverse
        and whether the regular inversion succeeded.
    """
    try:
        chol_inv = la.inv(chol_mat)
        if np.all(np.isfinite(chol_inv)):
            return chol_inv, True
        logger.debug(f"Non-finite entries in Cholesky inverse at {q_vector_label}.")
    except (np.linalg.LinAlgError, ValueError) as e:
        logger.debug(f"Cholesky inversion raised at {q_vector_label}: {e}")

    logger.warning(f"Inversion failed at {q_vector_label}. Using pseudo-inverse.")
    try:
        chol_inv = la.pinv(chol_mat)
    except (np.linalg.LinAlgError, ValueError):
        logger.exception(f"Pseudo-inverse failed as well at {q_vector_label}.")
        chol_inv = np.full_like(chol_mat, np.nan, dtype=np.complex128)
    return chol_inv, False


def _sqrt_energy_matrix(
    g_sign: npt.NDArray[np.float64],
    energy_mat: npt.NDArray[np.complex128],
    q_vector_label: str,
) -> Tuple[npt.NDArray[np.complex128], List[str]]:
    """
    Build the square-root energy matrix E_sqrt = g * energy_mat.

    Only the diagonal is replaced by its principal square root; the
    off-diagonal entries are kept as they are and are expected to be close
    to zero for eigenvectors that diagonalize the Hamiltonian.

    Negative diagonal entries smaller in magnitude than
    NEGATIVE_ENERGY_CLAMP_THRESHOLD are treated as rounding noise and clamped
    to zero. Larger negative entries keep the complex principal root and are
    reported.

    Args:
        g_sign (npt.NDArray[np.float64]): Pseudo-metric sign matrix (2N x 2N).
        energy_mat (npt.NDArray[np.complex128]): V^dagger H V.
        q_vector_label (str): A string label identifying the q-vector (for logging).

    Returns:
        Tuple[npt.NDArray[np.complex128], List[str]]: E_sqrt and any diagnostics.
    """
    diagnostics: List[str] = []
    E_sqrt = (g_sign @ energy_mat).astype(np.complex128)

    diag = np.diag(E_sqrt).copy()
    off_diag = E_sqrt - np.diag(diag)
    scale = max(np.max(np.abs(diag)) if diag.size else 0.0, 1.0)
    residue = np.max(np.abs(off_diag)) if off_diag.size else 0.0
    if residue > DIAGONAL_RESIDUE_TOLERANCE * scale:
        msg = (
            f"Eigenvectors do not diagonalize H at {q_vector_label}: "
            f"max off-diagonal residue {residue:.2e}."
        )
        logger.debug(msg)
        diagnostics.append(msg)

    noise = (np.real(diag) < 0) & (np.abs(diag) < NEGATIVE_ENERGY_CLAMP_THRESHOLD)
    diag[noise] = 0.0
    negative = np.real(diag) < 0
    if np.any(negative):
        msg = (
            f"Negative square-root argument for modes {np.flatnonzero(negative).tolist()} "
            f"at {q_vector_label}. Energies become complex."
        )
        logger.warning(msg)
        diagnostics.append(msg)

    np.fill_diagonal(E_sqrt, np.sqrt(diag))
    return E_sqrt, diagnostics


def bogoliubov_transform(
    H_mat: npt.NDArray[np.complex128],
    chol_mat: npt.NDArray[np.complex128],
    g_sign: npt.NDArray[np.float64],
    eigenvectors: Union[npt.NDArray[np.complex128], Sequence[npt.NDArray[np.complex128]]],
    energies: Sequence[float],
    q_vector_label: str,
) -> Tuple[
    npt.NDArray[np.float64], npt.NDArray[np.complex128], List[str]
]:
    """
    Calculate mode energies and the transformation T into the normal-mode basis.

    Implements equations (32) and (34) of Toth and Lake,
    J. Phys.: Condens. Matter 27, 166002 (2015):

        energy_mat = V^dagger H V
        E_sqrt     = sqrt(g energy_mat)   (diagonal only)
        T          = L^-1 V E_sqrt

    The energies returned are the real diagonal of energy_mat in the sorted
    mode order, not the supplied estimates, so they are consistent with T.

    Args:
        H_mat (npt.NDArray[np.complex128]): Hamiltonian matrix (2N x 2N).
        chol_mat (npt.NDArray[np.complex128]): Cholesky factor L (2N x 2N).
        g_sign (npt.NDArray[np.float64]): Pseudo-metric sign matrix (2N x 2N).
        eigenvectors: Eigenvectors as matrix columns or as a sequence of vectors.
        energies (Sequence[float]): Energy estimates used only for the sorting.
        q_vector_label (str): A string label identifying the q-vector (for logging).

    Returns:
        Tuple[npt.NDArray[np.float64], npt.NDArray[np.complex128], List[str]]:
            - Mode energies in sorted order.
            - The transformation matrix T (2N x 2N).
            - Diagnostics collected along the way (empty if none).
    """
    sorting = _sort_modes(energies)
    evec_mat = _eigenvector_matrix(eigenvectors, sorting)
    evec_mat_herm = np.conj(evec_mat.T)

    energy_mat = evec_mat_herm @ H_mat @ evec_mat
    mode_energies = np.real(np.diag(energy_mat)).copy()

    E_sqrt, diagnostics = _sqrt_energy_matrix(g_sign, energy_mat, q_vector_label)

    chol_inv, inv_ok = _invert_cholesky(chol_mat, q_vector_label)
    if not inv_ok:
        diagnostics.append(f"Inversion failed at {q_vector_label}.")

    trafo = chol_inv @ evec_mat @ E_sqrt
    return mode_energies, trafo, diagnostics
