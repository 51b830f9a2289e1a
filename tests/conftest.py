# conftest.py
import os
import sys

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest
from scipy.linalg import cholesky

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from magcorr.bundle import HamiltonianBundle
from magcorr.linalg import sign_matrix
from magcorr.sites import MagneticSite

SQRT2 = np.sqrt(2.0)


def prepare_hamiltonian(h):
    """
    Colpa preparation of a positive-definite bosonic Hamiltonian h.

    Returns (H, L, g, V, energies) with h = L^dagger L, H = L g L^dagger and
    V, energies the eigen-pairs of H, in eigh's ascending order.
    """
    h = np.asarray(h, dtype=np.complex128)
    nspins = h.shape[0] // 2
    g = sign_matrix(nspins)
    L = cholesky(h, lower=False)
    H = L @ g @ L.conj().T
    energies, V = np.linalg.eigh(H)
    return H, L, g, V, energies


def ferromagnet_site(label="Fe1", pos=(0.0, 0.0, 0.0), spin=1.0):
    u = np.array([1.0, 1.0j, 0.0]) / SQRT2
    return MagneticSite(label=label, pos=np.array(pos, dtype=float), spin_mag=spin,
                        u=u, u_conj=np.conj(u))


def make_bundle(h, q_points):
    """Bundle repeating the same prepared Hamiltonian at every Q-point."""
    H, L, g, V, energies = prepare_hamiltonian(h)
    nq = len(q_points)
    return HamiltonianBundle(
        q_points=np.asarray(q_points, dtype=float),
        hamiltonians=np.repeat(H[np.newaxis], nq, axis=0),
        cholesky=np.repeat(L[np.newaxis], nq, axis=0),
        eigenvectors=np.repeat(V[np.newaxis], nq, axis=0),
        energies=np.repeat(energies[np.newaxis], nq, axis=0),
        g_sign=g,
    )


@pytest.fixture
def single_site():
    return [ferromagnet_site()]


@pytest.fixture
def two_site_h():
    """Two coupled sites with anomalous terms; positive definite."""
    A = np.array([[3.0, 0.5], [0.5, 2.0]])
    B = np.array([[0.4, 0.2], [0.2, 0.3]])
    return np.block([[A, B], [B, A]])


@pytest.fixture
def ferro_bundle():
    q_points = [[0.0, 0.0, 0.0], [0.25, 0.0, 0.0], [0.5, 0.0, 0.0]]
    return make_bundle(np.eye(2), q_points)
