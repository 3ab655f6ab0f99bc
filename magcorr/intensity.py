#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Neutron scattering weights from the per-band correlation tensors.

Each band's tensor is weighted by the Bose population factor and the
magnetic form factor, then projected onto the plane perpendicular to Q
(Shirane 2002, p. 37, eq. 2.64) since neutrons only see the transverse
spin components.
"""
import logging
from typing import Optional

import numpy as np
import numpy.typing as npt
from scipy import constants

try:
    from .form_factors import get_form_factor
    from .linalg import ortho_projector
    from .records import EnergiesAndWeights, EnergyAndWeight
    from .schema import CorrelationConfig
except ImportError:
    from form_factors import get_form_factor
    from linalg import ortho_projector
    from records import EnergiesAndWeights, EnergyAndWeight
    from schema import CorrelationConfig

logger = logging.getLogger(__name__)

# Boltzmann constant in meV/K
K_B_MEV: float = constants.physical_constants["Boltzmann constant in eV/K"][0] * 1e3


def bose(E: float, T: float) -> float:
    """
    Bose occupation including detailed balance.

    n(|E|) + 1 for energy loss (E >= 0) and n(|E|) for energy gain (E < 0).
    E in meV, T in K.
    """
    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        n = 1.0 / np.expm1(np.abs(np.float64(E)) / (K_B_MEV * np.float64(T)))
    if E >= 0.0:
        n += 1.0
    return float(n)


def bose_cutoff(E: float, T: float, E_cutoff: float = 0.02) -> float:
    """Bose factor with |E| clamped to at least |E_cutoff| to avoid the divergence at E = 0."""
    E_cutoff = abs(E_cutoff)
    if abs(E) < E_cutoff:
        sign = -1.0 if E < 0.0 else 1.0
        return bose(sign * E_cutoff, T)
    return bose(E, T)


def q_magnitude(q_rlu: npt.NDArray[np.float64], config: CorrelationConfig) -> float:
    """|Q| in 1/A from Q in reciprocal lattice units."""
    return float(np.linalg.norm(config.b_matrix() @ np.asarray(q_rlu, dtype=float)))


def _apply_polarisation(
    E_and_S: EnergyAndWeight,
    q_rlu: npt.NDArray[np.float64],
    config: CorrelationConfig,
) -> None:
    # placeholder for polarised cross sections via the Blume-Maleev equations
    if config.polarisation is None:
        return
    raise NotImplementedError(
        f"Polarisation channel '{config.polarisation}' is not supported."
    )


def calc_intensities(
    q_rlu: npt.NDArray[np.float64],
    energies_and_correlations: EnergiesAndWeights,
    config: Optional[CorrelationConfig] = None,
) -> EnergiesAndWeights:
    """
    Apply Bose factor, form factor and the transverse projector to every band.

    The bands are updated in place: S is weighted, and S_perp, the traces
    S_sum and S_perp_sum, and the weights weight_full = |Re S_sum| and
    weight = |Re S_perp_sum| are set.

    Args:
        q_rlu (npt.NDArray[np.float64]): Momentum transfer in rlu.
        energies_and_correlations (EnergiesAndWeights): Bands with their
            correlation tensors.
        config (Optional[CorrelationConfig]): Temperature, Bose cutoff,
            form factor and crystal metric.

    Returns:
        EnergiesAndWeights: The same (updated) band list.
    """
    config = config or CorrelationConfig()
    q_rlu = np.asarray(q_rlu, dtype=float)

    ffact = None
    if config.magnetic_form_factor or config.magnetic_ion:
        Q_abs = q_magnitude(q_rlu, config)
        ffact = get_form_factor(
            Q_abs, config.magnetic_form_factor, config.magnetic_ion
        )
        logger.debug(f"Form factor at |Q| = {Q_abs:.4f} 1/A: {ffact}")

    proj_neutron = ortho_projector(q_rlu).astype(np.complex128)

    for E_and_S in energies_and_correlations:
        if config.temperature >= 0.0:
            E_and_S.S = E_and_S.S * bose_cutoff(
                E_and_S.E, config.temperature, config.bose_cutoff
            )

        if ffact is not None:
            E_and_S.S = E_and_S.S * ffact

        E_and_S.S_perp = proj_neutron @ E_and_S.S @ proj_neutron

        E_and_S.S_sum = complex(np.trace(E_and_S.S))
        E_and_S.S_perp_sum = complex(np.trace(E_and_S.S_perp))
        E_and_S.weight_full = abs(E_and_S.S_sum.real)
        E_and_S.weight = abs(E_and_S.S_perp_sum.real)

        _apply_polarisation(E_and_S, q_rlu, config)

    return energies_and_correlations
