"""
Spin-spin correlation tensors per magnon mode.

Builds the pair-correlation block matrices of Toth and Lake (2015),
equations (44) and (47), and projects them into the normal-mode basis
given by the Bogoliubov transformation.

References:
    S. Toth and B. Lake, J. Phys.: Condens. Matter 27, 166002 (2015)
"""
from dataclasses import dataclass, field
from typing import List, Sequence, Union

import numpy as np
import numpy.typing as npt

from .linalg import bogoliubov_transform
from .sites import MagneticSite


def _zero_tensor() -> npt.NDArray[np.complex128]:
    return np.zeros((3, 3), dtype=np.complex128)


@dataclass
class EnergyAndWeight:
    """Energy, correlation tensors and scalar weights of one mode."""
    E: float
    S: npt.NDArray[np.complex128] = field(default_factory=_zero_tensor)
    S_perp: npt.NDArray[np.complex128] = field(default_factory=_zero_tensor)
    S_sum: complex = 0j
    S_perp_sum: complex = 0j
    weight_full: float = 0.0
    weight: float = 0.0


@dataclass
class CorrelationResult:
    """Modes of one Q-point plus any diagnostics raised while computing them."""
    modes: List[EnergyAndWeight] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings

    @property
    def energies(self) -> npt.NDArray[np.float64]:
        return np.array([m.E for m in self.modes], dtype=float)

    @property
    def weights(self) -> npt.NDArray[np.float64]:
        return np.array([m.weight for m in self.modes], dtype=float)


def _phase_factors(
    positions: npt.NDArray[np.float64],
    q_vector: npt.NDArray[np.float64],
    phase_sign: float,
) -> npt.NDArray[np.complex128]:
    """
    Pair phase factors exp(-sigma * i * 2pi * <pos_j - pos_i, Q>).

    Args:
        positions (npt.NDArray[np.float64]): Site positions (N x 3).
        q_vector (npt.NDArray[np.float64]): Momentum transfer, same basis as positions.
        phase_sign (float): Global sign convention sigma.

    Returns:
        npt.NDArray[np.complex128]: N x N matrix indexed [i, j].
    """
    proj = positions @ q_vector
    delta = proj[np.newaxis, :] - proj[:, np.newaxis]
    return np.exp(-phase_sign * 1j * 2.0 * np.pi * delta)


def _spin_prefactors(spins: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Geometric mean sqrt(S_i S_j) for every site pair."""
    return np.sqrt(np.outer(spins, spins))


def correlation_block_matrix(
    sites: Sequence[MagneticSite],
    q_vector: npt.NDArray[np.float64],
    x_idx: int,
    y_idx: int,
    phase_sign: float,
) -> npt.NDArray[np.complex128]:
    """
    Assemble the 2N x 2N matrix M for the spin components (x_idx, y_idx).

    Block layout, each entry scaled by phase_ij * sqrt(S_i S_j):

        [[ u_i[x]  u*_j[y],  u_i[x]  u_j[y] ],
         [ u*_i[x] u*_j[y],  u*_i[x] u_j[y] ]]
    """
    nspins = len(sites)
    positions = np.array([s.pos for s in sites], dtype=float).reshape(nspins, 3)
    spins = np.array([s.spin_mag for s in sites], dtype=float)
    u = np.array([s.u for s in sites], dtype=np.complex128).reshape(nspins, 3)
    uc = np.array([s.u_conj for s in sites], dtype=np.complex128).reshape(nspins, 3)

    prefactor = _phase_factors(positions, np.asarray(q_vector, dtype=float), phase_sign)
    prefactor = prefactor * _spin_prefactors(spins)

    M = np.empty((2 * nspins, 2 * nspins), dtype=np.complex128)
    M[:nspins, :nspins] = prefactor * np.outer(u[:, x_idx], uc[:, y_idx])
    M[:nspins, nspins:] = prefactor * np.outer(u[:, x_idx], u[:, y_idx])
    M[nspins:, :nspins] = prefactor * np.outer(uc[:, x_idx], uc[:, y_idx])
    M[nspins:, nspins:] = prefactor * np.outer(uc[:, x_idx], u[:, y_idx])
    return M


def _check_shapes(
    nspins: int,
    H_mat: npt.NDArray[np.complex128],
    chol_mat: npt.NDArray[np.complex128],
    g_sign: npt.NDArray[np.float64],
    n_eigenvectors: int,
    n_energies: int,
):
    expected = (2 * nspins, 2 * nspins)
    for name, mat in (("H", H_mat), ("L", chol_mat), ("g", g_sign)):
        if mat.shape != expected:
            raise ValueError(f"{name} must have shape {expected}, got {mat.shape}.")
    if n_eigenvectors != 2 * nspins:
        raise ValueError(f"Expected {2 * nspins} eigenvectors, got {n_eigenvectors}.")
    if n_energies != n_eigenvectors:
        raise ValueError(
            f"Number of energies ({n_energies}) does not match number of eigenvectors ({n_eigenvectors})."
        )


def compute_correlations(
    H_mat: npt.NDArray[np.complex128],
    chol_mat: npt.NDArray[np.complex128],
    g_sign: npt.NDArray[np.float64],
    q_vector: Union[Sequence[float], npt.NDArray[np.float64]],
    eigenvectors: Union[npt.NDArray[np.complex128], Sequence[npt.NDArray[np.complex128]]],
    energies: Sequence[float],
    sites: Sequence[MagneticSite],
    phase_sign: float = -1.0,
) -> CorrelationResult:
    """
    Get the dynamical spin-correlation tensor of every mode at one Q-point.

    Args:
        H_mat: Hamiltonian matrix (2N x 2N).
        chol_mat: Cholesky factor L of the Hamiltonian (2N x 2N).
        g_sign: Pseudo-metric sign matrix (2N x 2N).
        q_vector: Momentum transfer in r.l.u.
        eigenvectors: 2N eigenvectors from the external eigensolver, as matrix
            columns or a sequence of vectors, in any order.
        energies: 2N energy estimates matching `eigenvectors`; used for sorting only.
        sites: The N magnetic sites.
        phase_sign: Sign convention of the Fourier phase.

    Returns:
        CorrelationResult: Modes in descending energy order, with S filled in
        and S_perp left at zero. Warnings are attached rather than raised.

    Raises:
        ValueError: If the matrix shapes do not match the number of sites.
    """
    nspins = len(sites)
    if nspins == 0:
        return CorrelationResult()

    q_vector = np.asarray(q_vector, dtype=float)
    q_label = f"Q = {q_vector}"
    H_mat = np.asarray(H_mat, dtype=np.complex128)
    chol_mat = np.asarray(chol_mat, dtype=np.complex128)
    g_sign = np.asarray(g_sign)
    n_evecs = (
        eigenvectors.shape[1]
        if isinstance(eigenvectors, np.ndarray) and eigenvectors.ndim == 2
        else len(eigenvectors)
    )
    _check_shapes(nspins, H_mat, chol_mat, g_sign, n_evecs, len(energies))

    mode_energies, trafo, diagnostics = bogoliubov_transform(
        H_mat, chol_mat, g_sign, eigenvectors, energies, q_label
    )
    trafo_herm = np.conj(trafo.T)

    modes = [EnergyAndWeight(E=float(E)) for E in mode_energies]
    norm = float(2 * nspins)

    for x_idx in range(3):
        for y_idx in range(3):
            M = correlation_block_matrix(sites, q_vector, x_idx, y_idx, phase_sign)
            M_trafo_diag = np.diag(trafo_herm @ M @ trafo)
            for i, mode in enumerate(modes):
                mode.S[x_idx, y_idx] += M_trafo_diag[i] / norm

    return CorrelationResult(modes=modes, warnings=diagnostics)
