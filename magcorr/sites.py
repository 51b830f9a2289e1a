"""
Magnetic sites and their local spin frames.

A site carries its fractional position, spin magnitude and the complex
vectors u, u* spanning the plane perpendicular to its ordered moment,
already expressed in the global frame (Toth and Lake 2015, eq. 9).
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import numpy.typing as npt
import sympy as sp

from .expressions import check_expression

logger = logging.getLogger(__name__)

PARALLEL_THRESHOLD: float = 1e-12

_VECTOR_NAMES = {"I": sp.I, "sqrt": sp.sqrt, "pi": sp.pi}


@dataclass(frozen=True, eq=False)
class MagneticSite:
    """One magnetic site of the unit cell."""
    label: str
    pos: npt.NDArray[np.float64]
    spin_mag: float
    u: npt.NDArray[np.complex128]
    u_conj: npt.NDArray[np.complex128]


def rotation_to_direction(direction: Sequence[float]) -> npt.NDArray[np.float64]:
    """
    Rotation matrix that takes the z axis onto `direction`.

    Args:
        direction (Sequence[float]): Target direction, need not be normalised.

    Returns:
        npt.NDArray[np.float64]: 3x3 rotation matrix R with R @ [0, 0, 1] = n.

    Raises:
        ValueError: If the direction has zero length.
    """
    n = np.asarray(direction, dtype=float)
    norm = np.linalg.norm(n)
    if norm == 0:
        raise ValueError("Moment direction must not be the zero vector.")
    n = n / norm
    z = np.array([0.0, 0.0, 1.0])

    axis = np.cross(z, n)
    sin_angle = np.linalg.norm(axis)
    cos_angle = np.dot(z, n)

    if sin_angle < PARALLEL_THRESHOLD:
        if cos_angle > 0:
            return np.eye(3)
        # antiparallel: rotate by pi about x
        return np.diag([1.0, -1.0, -1.0])

    axis = axis / sin_angle
    K = np.array(
        [
            [0.0, -axis[2], axis[1]],
            [axis[2], 0.0, -axis[0]],
            [-axis[1], axis[0], 0.0],
        ]
    )
    # Rodrigues
    return np.eye(3) + sin_angle * K + (1.0 - cos_angle) * (K @ K)


def site_from_moment(
    label: str,
    pos: Sequence[float],
    spin_mag: float,
    direction: Sequence[float],
) -> MagneticSite:
    """Create a site whose u vectors follow from its classical moment direction."""
    rot = rotation_to_direction(direction)
    u = rot[:, 0] + 1j * rot[:, 1]
    return MagneticSite(
        label=label,
        pos=np.asarray(pos, dtype=float),
        spin_mag=float(spin_mag),
        u=u.astype(np.complex128),
        u_conj=np.conj(u).astype(np.complex128),
    )


def parse_complex_vector(components: Sequence) -> npt.NDArray[np.complex128]:
    """
    Convert a list of numbers or expression strings (e.g. "I/sqrt(2)") to a complex 3-vector.

    Raises:
        ValueError: If a component cannot be parsed or is not a number.
    """
    if len(components) != 3:
        raise ValueError(f"Expected 3 components, got {len(components)}.")
    values = []
    for c in components:
        if isinstance(c, str):
            try:
                check_expression(c, _VECTOR_NAMES)
                expr = sp.sympify(c, locals=dict(_VECTOR_NAMES))
                values.append(complex(sp.N(expr)))
            except (sp.SympifyError, SyntaxError, TypeError, ValueError) as e:
                raise ValueError(f"Cannot parse vector component '{c}': {e}") from e
        else:
            values.append(complex(c))
    return np.array(values, dtype=np.complex128)


def sites_from_config(site_configs: Sequence) -> List[MagneticSite]:
    """
    Build magnetic sites from validated site configurations.

    Explicit `u` vectors take precedence over `magmom_classical`. When only
    `u` is given, u* is its complex conjugate unless `u_conj` is also set.
    """
    sites: List[MagneticSite] = []
    for cfg in site_configs:
        if cfg.u is not None:
            u = parse_complex_vector(cfg.u)
            u_conj: Optional[npt.NDArray[np.complex128]] = (
                parse_complex_vector(cfg.u_conj) if cfg.u_conj is not None else np.conj(u)
            )
            site = MagneticSite(
                label=cfg.label,
                pos=np.asarray(cfg.pos, dtype=float),
                spin_mag=float(cfg.spin_S),
                u=u,
                u_conj=u_conj,
            )
        else:
            site = site_from_moment(cfg.label, cfg.pos, cfg.spin_S, cfg.magmom_classical)
        logger.debug(f"Site {site.label}: pos={site.pos}, S={site.spin_mag}, u={site.u}")
        sites.append(site)
    return sites
