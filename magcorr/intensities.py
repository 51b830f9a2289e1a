"""
Neutron intensities from per-mode correlation tensors.

Applies the Bose factor, the magnetic form factor and the orthogonal
projector of magnetic neutron scattering (Shirane 2002, eq. 2.64) to the
tensors produced by `compute_correlations`, and reduces them to scalar
weights.
"""
import logging
from typing import List, Optional, Sequence, Union

import numpy as np
import numpy.typing as npt

from .correlations import EnergyAndWeight
from .form_factors import FormFactor
from .lattice import q_to_inverse_angstrom
from .schema import CorrelationSettings

logger = logging.getLogger(__name__)

# --- Physical Constants ---
K_BOLTZMANN_meV: float = 0.08617333262  # meV / K

# --- Numerical Constants ---
Q_ZERO_THRESHOLD: float = 1e-10


def bose_factor(E: float, temperature: float) -> float:
    """
    Bose occupation for creation (E >= 0) or annihilation (E < 0) of a magnon.

    n(|E|) + 1 for E >= 0 and n(|E|) for E < 0, with n the Bose-Einstein
    distribution. At zero temperature this is 1 or 0.
    """
    if temperature <= 0.0:
        return 1.0 if E >= 0.0 else 0.0

    beta_E = abs(E) / (K_BOLTZMANN_meV * temperature)
    with np.errstate(over="ignore", divide="ignore"):
        n = 1.0 / np.expm1(beta_E)
    if E >= 0.0:
        n += 1.0
    return float(n)


def bose_cutoff(E: float, temperature: float, E_cutoff: float = 0.02) -> float:
    """Bose factor with |E| floored at |E_cutoff| to keep it finite near E = 0."""
    E_cutoff = abs(E_cutoff)
    if abs(E) < E_cutoff:
        return bose_factor(float(np.copysign(E_cutoff, E)), temperature)
    return bose_factor(E, temperature)


def ortho_projector(q_vector: Union[Sequence[float], npt.NDArray[np.float64]]) -> npt.NDArray[np.complex128]:
    """
    Projector onto the plane perpendicular to Q: P = 1 - Q Q^dagger / |Q|^2.

    At Q = 0 there is no direction to remove and the identity is returned.
    """
    q = np.asarray(q_vector, dtype=np.complex128)
    q_norm_sq = np.real(np.vdot(q, q))
    if q_norm_sq < Q_ZERO_THRESHOLD:
        return np.eye(3, dtype=np.complex128)
    return np.eye(3, dtype=np.complex128) - np.outer(q, np.conj(q)) / q_norm_sq


def apply_weights(
    q_vector: Union[Sequence[float], npt.NDArray[np.float64]],
    modes: List[EnergyAndWeight],
    settings: CorrelationSettings,
    form_factor: Optional[FormFactor] = None,
    B_matrix: Optional[npt.NDArray[np.float64]] = None,
) -> List[EnergyAndWeight]:
    """
    Apply thermal population, form factor and projector to each mode, in place.

    Args:
        q_vector: Momentum transfer in r.l.u.
        modes (List[EnergyAndWeight]): Output of `compute_correlations`.
        settings (CorrelationSettings): `temperature` (< 0 disables the Bose
            factor) and `bose_cutoff` are read.
        form_factor (Optional[FormFactor]): Disabled when None or empty.
        B_matrix (Optional[npt.NDArray[np.float64]]): Reciprocal basis used to
            get |Q| in 1/A for the form factor. Identity when None.

    Returns:
        List[EnergyAndWeight]: The same list, for chaining.
    """
    q_rlu = np.asarray(q_vector, dtype=float)

    ffact: Optional[float] = None
    if form_factor is not None and form_factor.enabled:
        q_inv_A = q_rlu if B_matrix is None else q_to_inverse_angstrom(B_matrix, q_rlu)
        q_abs = float(np.linalg.norm(q_inv_A))
        result = form_factor.evaluate(q_abs)
        if result.error is not None:
            logger.debug(f"Form factor fallback at |Q| = {q_abs:.4f}: {result.error}")
        ffact = result.value.real

    proj_neutron = ortho_projector(q_rlu)

    for E_and_S in modes:
        if settings.temperature >= 0.0:
            E_and_S.S = E_and_S.S * bose_cutoff(E_and_S.E, settings.temperature, settings.bose_cutoff)

        if ffact is not None:
            E_and_S.S = E_and_S.S * ffact

        E_and_S.S_perp = proj_neutron @ E_and_S.S @ proj_neutron

        E_and_S.S_sum = complex(np.trace(E_and_S.S))
        E_and_S.S_perp_sum = complex(np.trace(E_and_S.S_perp))
        E_and_S.weight_full = abs(E_and_S.S_sum.real)
        E_and_S.weight = abs(E_and_S.S_perp_sum.real)

    return modes
