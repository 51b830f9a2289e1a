# test_linalg.py
import logging

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from conftest import prepare_hamiltonian
from magcorr.linalg import (
    _sort_modes,
    _eigenvector_matrix,
    _invert_cholesky,
    _sqrt_energy_matrix,
    bogoliubov_transform,
    sign_matrix,
)


def test_sign_matrix():
    assert_array_equal(np.diag(sign_matrix(2)), [1.0, 1.0, -1.0, -1.0])


# --- Mode ordering ---
def test_sort_modes_descending():
    assert_array_equal(_sort_modes([0.1, 3.0, -2.0, 1.5]), [1, 3, 0, 2])


def test_sort_modes_stable_for_degenerate_modes():
    assert_array_equal(_sort_modes([0.5, 2.0, 0.5, 2.0]), [1, 3, 0, 2])
    assert_array_equal(_sort_modes([1.0, 1.0, -1.0, -1.0]), [0, 1, 2, 3])


def test_sort_modes_repeatable():
    energies = np.array([1.0, 1.0, 1.0, -1.0, -1.0, -1.0])
    assert_array_equal(_sort_modes(energies), _sort_modes(energies.copy()))


def test_eigenvector_matrix_accepts_list_of_vectors():
    vecs = [np.array([1.0, 0.0]), np.array([0.0, 1.0j])]
    mat = _eigenvector_matrix(vecs, np.array([1, 0]))
    assert_allclose(mat, np.array([[0.0, 1.0], [1.0j, 0.0]]))


# --- Cholesky inversion ---
def test_invert_cholesky_regular():
    L = np.array([[2.0, 1.0], [0.0, 1.0]], dtype=np.complex128)
    inv, ok = _invert_cholesky(L, "Q = test")
    assert ok
    assert_allclose(inv @ L, np.eye(2), atol=1e-14)


def test_invert_cholesky_singular_falls_back(caplog):
    L = np.array([[1.0, 0.0], [0.0, 0.0]], dtype=np.complex128)
    with caplog.at_level(logging.WARNING):
        inv, ok = _invert_cholesky(L, "Q = [0. 0. 0.]")
    assert not ok
    assert_allclose(inv, np.linalg.pinv(L), atol=1e-14)
    assert "Inversion failed at Q = [0. 0. 0.]" in caplog.text


# --- Square-root energy matrix ---
def test_sqrt_energy_matrix_diagonal_only():
    g = sign_matrix(1)
    energy_mat = np.array([[4.0, 1e-3], [0.0, -9.0]], dtype=np.complex128)
    E_sqrt, diagnostics = _sqrt_energy_matrix(g, energy_mat, "Q = test")
    assert_allclose(np.diag(E_sqrt), [2.0, 3.0])
    # off-diagonal entries are kept, and reported
    assert_allclose(E_sqrt[0, 1], 1e-3)
    assert any("do not diagonalize" in d for d in diagnostics)


def test_sqrt_energy_matrix_clamps_noise():
    g = sign_matrix(1)
    energy_mat = np.diag([-1e-14, 1e-14]).astype(np.complex128)
    E_sqrt, diagnostics = _sqrt_energy_matrix(g, energy_mat, "Q = test")
    assert_allclose(np.diag(E_sqrt), [0.0, 0.0])
    assert diagnostics == []


def test_sqrt_energy_matrix_negative_argument(caplog):
    g = sign_matrix(1)
    energy_mat = np.diag([-4.0, -1.0]).astype(np.complex128)
    with caplog.at_level(logging.WARNING):
        E_sqrt, diagnostics = _sqrt_energy_matrix(g, energy_mat, "Q = test")
    assert_allclose(E_sqrt[0, 0], 2.0j)
    assert_allclose(E_sqrt[1, 1], 1.0)
    assert len(diagnostics) == 1
    assert "Negative square-root argument" in caplog.text


# --- Bogoliubov transformation ---
def test_bogoliubov_single_mode():
    A, B = 2.0, 1.0
    h = np.array([[A, B], [B, A]])
    H, L, g, V, energies = prepare_hamiltonian(h)
    mode_energies, T, diagnostics = bogoliubov_transform(H, L, g, V, energies, "Q = test")

    omega = np.sqrt(A**2 - B**2)
    assert_allclose(mode_energies, [omega, -omega], atol=1e-12)
    assert diagnostics == []
    # T is paraunitary and diagonalizes h
    assert_allclose(T.conj().T @ g @ T, g, atol=1e-12)
    assert_allclose(T.conj().T @ h @ T, np.diag([omega, omega]), atol=1e-12)


def test_bogoliubov_two_sites(two_site_h):
    H, L, g, V, energies = prepare_hamiltonian(two_site_h)
    mode_energies, T, diagnostics = bogoliubov_transform(H, L, g, V, energies, "Q = test")

    assert diagnostics == []
    assert_allclose(mode_energies, np.sort(energies)[::-1], atol=1e-12)
    assert_allclose(mode_energies[:2], -mode_energies[:1:-1], atol=1e-12)
    assert_allclose(T.conj().T @ g @ T, g, atol=1e-10)
    assert_allclose(T.conj().T @ two_site_h @ T, np.diag(np.abs(mode_energies)), atol=1e-10)


def test_bogoliubov_energies_come_from_eigenvectors(two_site_h):
    H, L, g, V, energies = prepare_hamiltonian(two_site_h)
    # estimates in the same order but with the wrong values
    estimates = 10.0 * energies + 3.0
    mode_energies, _, _ = bogoliubov_transform(H, L, g, V, estimates, "Q = test")

    sorting = np.argsort(-estimates, kind="stable")
    V_sorted = V[:, sorting]
    expected = np.real(np.diag(V_sorted.conj().T @ H @ V_sorted))
    assert_allclose(mode_energies, expected, atol=1e-12)


def test_bogoliubov_wrong_order_reports_negative_root(caplog):
    h = np.array([[2.0, 1.0], [1.0, 2.0]])
    H, L, g, V, energies = prepare_hamiltonian(h)
    with caplog.at_level(logging.WARNING):
        _, T, diagnostics = bogoliubov_transform(H, L, g, V, -energies, "Q = test")
    assert diagnostics
    assert np.iscomplexobj(T)


def test_bogoliubov_singular_cholesky_continues(caplog):
    h = np.array([[2.0, 1.0], [1.0, 2.0]])
    H, _, g, V, energies = prepare_hamiltonian(h)
    L_singular = np.zeros((2, 2), dtype=np.complex128)
    with caplog.at_level(logging.WARNING):
        mode_energies, T, diagnostics = bogoliubov_transform(
            H, L_singular, g, V, energies, "Q = [0.5 0.  0. ]"
        )
    assert T.shape == (2, 2)
    assert len(mode_energies) == 2
    assert "Inversion failed at Q = [0.5 0.  0. ]." in diagnostics
    assert "Using pseudo-inverse" in caplog.text
