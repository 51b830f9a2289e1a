"""
Exchange format for the per-Q Hamiltonian data.

Hamiltonian assembly, Cholesky factorisation and the eigensolver live
outside this package. Their results for a list of Q-points are handed over
as a NumPy archive with the keys listed in REQUIRED_KEYS.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

import numpy as np
import numpy.typing as npt

from .linalg import sign_matrix

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("q_points", "hamiltonians", "cholesky", "eigenvectors", "energies")


@dataclass
class HamiltonianBundle:
    q_points: npt.NDArray[np.float64]          # (nq, 3), r.l.u.
    hamiltonians: npt.NDArray[np.complex128]   # (nq, 2N, 2N)
    cholesky: npt.NDArray[np.complex128]       # (nq, 2N, 2N)
    eigenvectors: npt.NDArray[np.complex128]   # (nq, 2N, 2N), columns
    energies: npt.NDArray[np.float64]          # (nq, 2N)
    g_sign: Optional[npt.NDArray[np.float64]] = None

    def __post_init__(self):
        self.q_points = np.atleast_2d(np.asarray(self.q_points, dtype=float))
        self.hamiltonians = np.asarray(self.hamiltonians, dtype=np.complex128)
        self.cholesky = np.asarray(self.cholesky, dtype=np.complex128)
        self.eigenvectors = np.asarray(self.eigenvectors, dtype=np.complex128)
        self.energies = np.real(np.asarray(self.energies)).astype(float)
        self._validate()
        if self.g_sign is None:
            self.g_sign = sign_matrix(self.nspins)
        else:
            self.g_sign = np.asarray(self.g_sign, dtype=float)
            if self.g_sign.shape != (2 * self.nspins, 2 * self.nspins):
                raise ValueError(f"sign_matrix has shape {self.g_sign.shape}.")

    def _validate(self):
        nq = self.q_points.shape[0]
        if self.q_points.shape[1] != 3:
            raise ValueError("q_points must have shape (nq, 3).")
        for name in ("hamiltonians", "cholesky", "eigenvectors"):
            arr = getattr(self, name)
            if arr.ndim != 3 or arr.shape[0] != nq or arr.shape[1] != arr.shape[2]:
                raise ValueError(f"{name} must have shape (nq, 2N, 2N), got {arr.shape}.")
            if arr.shape[1] != self.hamiltonians.shape[1]:
                raise ValueError(f"{name} dimension does not match hamiltonians.")
        if self.hamiltonians.shape[1] % 2 != 0:
            raise ValueError("Hamiltonian dimension must be even (2N).")
        if self.energies.shape != (nq, self.hamiltonians.shape[1]):
            raise ValueError(
                f"energies must have shape {(nq, self.hamiltonians.shape[1])}, got {self.energies.shape}."
            )

    @property
    def nspins(self) -> int:
        return self.hamiltonians.shape[1] // 2

    def __len__(self) -> int:
        return self.q_points.shape[0]


def load_bundle(filepath: str) -> HamiltonianBundle:
    """
    Load a Hamiltonian bundle from a .npz archive.

    Raises:
        FileNotFoundError: If the archive does not exist.
        ValueError: If keys are missing or the arrays are inconsistent.
    """
    if not os.path.exists(filepath):
        logger.error(f"Bundle file not found: {filepath}")
        raise FileNotFoundError(f"Bundle file not found: {filepath}")

    with np.load(filepath, allow_pickle=False) as data:
        missing = [k for k in REQUIRED_KEYS if k not in data.files]
        if missing:
            raise ValueError(f"Bundle {filepath} is missing keys: {missing}")
        arrays = {k: data[k] for k in REQUIRED_KEYS}
        g_sign = data["sign_matrix"] if "sign_matrix" in data.files else None

    bundle = HamiltonianBundle(g_sign=g_sign, **arrays)
    logger.info(f"Loaded bundle with {len(bundle)} Q-points and {bundle.nspins} sites from {filepath}")
    return bundle


def save_bundle(filepath: str, bundle: HamiltonianBundle):
    """Write a bundle in the format read by `load_bundle`."""
    np.savez_compressed(
        filepath,
        q_points=bundle.q_points,
        hamiltonians=bundle.hamiltonians,
        cholesky=bundle.cholesky,
        eigenvectors=bundle.eigenvectors,
        energies=bundle.energies,
        sign_matrix=bundle.g_sign,
    )
    logger.info(f"Bundle saved to {filepath}")
