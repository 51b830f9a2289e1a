# -*- coding: utf-8 -*-
"""
Real- and reciprocal-space lattice helpers.
"""
from typing import Dict, List, Union

import numpy as np
import numpy.typing as npt


def lattice_vectors(
    a: float,
    b: float,
    c: float,
    alpha: float = 90.0,
    beta: float = 90.0,
    gamma: float = 90.0,
) -> npt.NDArray[np.float64]:
    """
    Unit-cell vectors from lattice parameters (a || x, b in the xy plane).

    Angles are in degrees. Returns the vectors as rows.
    """
    alpha, beta, gamma = np.deg2rad([alpha, beta, gamma])

    v_a = np.array([a, 0.0, 0.0])
    v_b = np.array([b * np.cos(gamma), b * np.sin(gamma), 0.0])

    # cos(beta) = cx / c, cos(alpha) = (bx*cx + by*cy) / (b*c)
    cx = c * np.cos(beta)
    cy = (c * b * np.cos(alpha) - v_b[0] * cx) / v_b[1]
    cz_sq = c**2 - cx**2 - cy**2
    cz = np.sqrt(cz_sq) if cz_sq > 0 else 0.0
    v_c = np.array([cx, cy, cz])

    return np.array([v_a, v_b, v_c])


def reciprocal_basis(uc_vectors: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """
    Reciprocal basis B with columns b1, b2, b3 so that b_i . a_j = 2 pi delta_ij.

    Args:
        uc_vectors (npt.NDArray[np.float64]): Unit-cell vectors as rows.

    Raises:
        ValueError: If the unit cell is degenerate.
    """
    uc_vectors = np.asarray(uc_vectors, dtype=float)
    volume = np.dot(uc_vectors[0], np.cross(uc_vectors[1], uc_vectors[2]))
    if abs(volume) < 1e-12:
        raise ValueError("Unit cell vectors are linearly dependent.")
    return 2.0 * np.pi * np.linalg.inv(uc_vectors)


def q_to_inverse_angstrom(
    B_matrix: npt.NDArray[np.float64], q_rlu: Union[List[float], npt.NDArray[np.float64]]
) -> npt.NDArray[np.float64]:
    """Convert Q from r.l.u. to Cartesian 1/A."""
    return B_matrix @ np.asarray(q_rlu, dtype=float)


def generate_q_path(
    path_spec: List[str],
    points_per_segment: int,
    high_symmetry_points: Dict[str, Union[List[float], npt.NDArray[np.float64]]],
) -> npt.NDArray[np.float64]:
    """
    Generates a list of q-vectors along a path defined by high-symmetry points.

    Args:
        path_spec (List[str]): A list of names of high-symmetry points defining
            the path segments (e.g., ['Gamma', 'X', 'M', 'Gamma']).
        points_per_segment (int): The number of q-points to generate for each
            segment of the path.
        high_symmetry_points (Dict[str, Union[List[float], npt.NDArray[np.float64]]]):
            A dictionary mapping high-symmetry point names (str) to their
            coordinates (list or array of 3 floats).

    Returns:
        npt.NDArray[np.float64]: A NumPy array of shape (N_total, 3) containing
            the q-vectors along the specified path.

    Raises:
        ValueError: If path_spec is too short, points_per_segment is not positive,
                    or a point name in path_spec is not found in high_symmetry_points.
    """
    if len(path_spec) < 2:
        raise ValueError("path_spec must contain at least two points.")
    if points_per_segment <= 0:
        raise ValueError("points_per_segment must be positive.")

    segments = []
    num_segments = len(path_spec) - 1
    for i in range(num_segments):
        start_name, end_name = path_spec[i], path_spec[i + 1]
        if start_name not in high_symmetry_points or end_name not in high_symmetry_points:
            raise ValueError(
                f"Point name '{start_name}' or '{end_name}' not found in high_symmetry_points."
            )
        start = np.array(high_symmetry_points[start_name], dtype=float)
        end = np.array(high_symmetry_points[end_name], dtype=float)
        # endpoint only on the last segment
        include_endpoint = i == num_segments - 1
        segments.append(
            np.linspace(start, end, points_per_segment, endpoint=include_endpoint)
        )
    return np.vstack(segments)
