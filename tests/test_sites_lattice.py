# test_sites_lattice.py
import numpy as np
import pytest
from numpy.testing import assert_allclose

from magcorr.lattice import (
    generate_q_path,
    lattice_vectors,
    q_to_inverse_angstrom,
    reciprocal_basis,
)
from magcorr.schema import SiteConfig
from magcorr.sites import (
    parse_complex_vector,
    rotation_to_direction,
    site_from_moment,
    sites_from_config,
)


# --- Sites ---
def test_rotation_along_z_is_identity():
    assert_allclose(rotation_to_direction([0, 0, 2.0]), np.eye(3))


def test_rotation_antiparallel():
    R = rotation_to_direction([0, 0, -1])
    assert_allclose(R @ [0, 0, 1], [0, 0, -1])
    assert_allclose(R @ R.T, np.eye(3), atol=1e-14)


@pytest.mark.parametrize("direction", [[1, 0, 0], [1, 1, 1], [0.2, -0.5, -0.9]])
def test_rotation_maps_z_onto_direction(direction):
    R = rotation_to_direction(direction)
    n = np.asarray(direction, dtype=float) / np.linalg.norm(direction)
    assert_allclose(R @ [0, 0, 1], n, atol=1e-14)
    assert_allclose(R @ R.T, np.eye(3), atol=1e-14)
    assert_allclose(np.linalg.det(R), 1.0, atol=1e-14)


def test_rotation_zero_vector():
    with pytest.raises(ValueError):
        rotation_to_direction([0, 0, 0])


def test_site_from_moment_along_z():
    site = site_from_moment("Fe1", [0, 0, 0], 2.5, [0, 0, 1])
    assert_allclose(site.u, [1.0, 1.0j, 0.0])
    assert_allclose(site.u_conj, [1.0, -1.0j, 0.0])
    assert site.spin_mag == 2.5


def test_site_u_perpendicular_to_moment():
    direction = np.array([1.0, 2.0, -0.5])
    site = site_from_moment("Fe1", [0, 0, 0], 1.0, direction)
    assert_allclose(np.dot(site.u, direction), 0.0, atol=1e-12)


def test_parse_complex_vector():
    vec = parse_complex_vector(["1/sqrt(2)", "I/sqrt(2)", 0])
    assert_allclose(vec, np.array([1.0, 1.0j, 0.0]) / np.sqrt(2))
    with pytest.raises(ValueError):
        parse_complex_vector(["1", "2"])
    with pytest.raises(ValueError):
        parse_complex_vector(["1", "I*y", "0"])
    with pytest.raises(ValueError):
        parse_complex_vector(["open('x')", 0, 0])
    with pytest.raises(ValueError):
        parse_complex_vector(["chr(-1)", 0, 0])


def test_sites_from_config_explicit_u_takes_precedence():
    cfgs = [
        SiteConfig(label="A", pos=[0, 0, 0], spin_S=1.0, magmom_classical=[1, 0, 0],
                   u=["1/sqrt(2)", "I/sqrt(2)", 0]),
        SiteConfig(label="B", pos=[0.5, 0, 0], spin_S=0.5),
    ]
    site_a, site_b = sites_from_config(cfgs)
    assert_allclose(site_a.u, np.array([1.0, 1.0j, 0.0]) / np.sqrt(2))
    assert_allclose(site_a.u_conj, np.conj(site_a.u))
    assert_allclose(site_b.u, [1.0, 1.0j, 0.0])
    assert_allclose(site_b.pos, [0.5, 0, 0])


# --- Lattice ---
def test_cubic_reciprocal_basis():
    uc = lattice_vectors(5.0, 5.0, 5.0)
    B = reciprocal_basis(uc)
    assert_allclose(B, 2 * np.pi / 5.0 * np.eye(3), atol=1e-14)
    assert_allclose(q_to_inverse_angstrom(B, [1, 0, 0]), [2 * np.pi / 5.0, 0, 0], atol=1e-14)


def test_hexagonal_reciprocal_basis():
    uc = lattice_vectors(3.0, 3.0, 6.0, 90, 90, 120)
    B = reciprocal_basis(uc)
    assert_allclose(uc @ B, 2 * np.pi * np.eye(3), atol=1e-12)
    assert_allclose(np.linalg.norm(uc[1]), 3.0)


def test_degenerate_cell():
    with pytest.raises(ValueError):
        reciprocal_basis(np.array([[1.0, 0, 0], [2.0, 0, 0], [0, 0, 1.0]]))


def test_generate_q_path():
    points = {"G": [0, 0, 0], "X": [0.5, 0, 0], "M": [0.5, 0.5, 0]}
    q = generate_q_path(["G", "X", "M"], 10, points)
    assert q.shape == (20, 3)
    assert_allclose(q[0], [0, 0, 0])
    assert_allclose(q[10], [0.5, 0, 0])
    assert_allclose(q[-1], [0.5, 0.5, 0])


def test_generate_q_path_errors():
    points = {"G": [0, 0, 0], "X": [0.5, 0, 0]}
    with pytest.raises(ValueError):
        generate_q_path(["G"], 10, points)
    with pytest.raises(ValueError):
        generate_q_path(["G", "Y"], 10, points)
    with pytest.raises(ValueError):
        generate_q_path(["G", "X"], 0, points)
