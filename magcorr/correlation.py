#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Spin-spin correlation functions from a diagonalized magnon Hamiltonian.

Implements the formalism of
S. Toth and B. Lake, J. Phys.: Condens. Matter 27, 166002 (2015),
equations (32) to (47): the eigenvectors of the Hamiltonian are turned into
a paraunitary transform T, and for every pair of Cartesian components the
doubled-basis spin matrix M is projected through T to give one 3x3
correlation tensor per band.
"""
from itertools import product
from typing import Optional, Sequence

import numpy as np
import numpy.typing as npt

try:
    from .linalg import (
        EigenvectorInput,
        MatrixObserver,
        ParaunitaryTransform,
        numeric_types,
        paraunitary_transform,
    )
    from .records import EnergiesAndWeights, MagneticSite
    from .schema import CorrelationConfig
except ImportError:
    from linalg import (
        EigenvectorInput,
        MatrixObserver,
        ParaunitaryTransform,
        numeric_types,
        paraunitary_transform,
    )
    from records import EnergiesAndWeights, MagneticSite
    from schema import CorrelationConfig


def _site_arrays(sites: Sequence[MagneticSite]):
    """Stack site data into arrays: positions (N,3), spins (N,), u and u* (N,3)."""
    positions = np.array([site.pos for site in sites], dtype=float).reshape(-1, 3)
    spins = np.array([site.spin_mag for site in sites], dtype=float)
    u = np.array([site.u for site in sites], dtype=np.complex128).reshape(-1, 3)
    u_conj = np.array([site.u_conj for site in sites], dtype=np.complex128).reshape(-1, 3)
    return positions, spins, u, u_conj


def spin_prefactors(
    sites: Sequence[MagneticSite],
    q_vector: npt.NDArray[np.float64],
    phase_sign: float = -1.0,
) -> npt.NDArray[np.complex128]:
    """
    Site-pair prefactors sqrt(S_i S_j) * exp(-phase_sign * i 2 pi Q.(r_j - r_i)).

    Returns:
        npt.NDArray[np.complex128]: N x N matrix indexed [i, j].
    """
    positions, spins, _, _ = _site_arrays(sites)
    S_mag = np.sqrt(np.outer(spins, spins))
    phases = positions @ np.asarray(q_vector, dtype=float)
    phase = np.exp(
        -phase_sign * 1j * 2.0 * np.pi * (phases[np.newaxis, :] - phases[:, np.newaxis])
    )
    return phase * S_mag


def spin_matrix(
    u: npt.NDArray[np.complex128],
    u_conj: npt.NDArray[np.complex128],
    prefactors: npt.NDArray[np.complex128],
    x_idx: int,
    y_idx: int,
) -> npt.NDArray[np.complex128]:
    """
    Doubled-basis matrix M of equation (44) for the components (x_idx, y_idx).

    The four N x N blocks hold the particle-particle, particle-hole,
    hole-particle and hole-hole products of the u vectors.
    """
    M00 = prefactors * np.outer(u[:, x_idx], u_conj[:, y_idx])
    M0N = prefactors * np.outer(u[:, x_idx], u[:, y_idx])
    MN0 = prefactors * np.outer(u_conj[:, x_idx], u_conj[:, y_idx])
    MNN = prefactors * np.outer(u_conj[:, x_idx], u[:, y_idx])
    return np.block([[M00, M0N], [MN0, MNN]])


def build_correlation_tensors(
    energies_and_correlations: EnergiesAndWeights,
    sites: Sequence[MagneticSite],
    q_vector: npt.NDArray[np.float64],
    transform: ParaunitaryTransform,
    config: Optional[CorrelationConfig] = None,
    observer: Optional[MatrixObserver] = None,
) -> None:
    """
    Accumulate the correlation tensor S of every band, equation (47).

    For each component pair (x, y) the spin matrix M is projected,
    M' = T^dagger M T, and band k receives S_k(x, y) += M'(k, k) / 2N.
    With no magnetic sites nothing is changed.

    Args:
        energies_and_correlations (EnergiesAndWeights): Bands as produced by
            `paraunitary_transform`; their S tensors are updated in place.
        sites (Sequence[MagneticSite]): The N magnetic sites.
        q_vector (npt.NDArray[np.float64]): Momentum transfer, dual to the
            site positions.
        transform (ParaunitaryTransform): T and T^dagger at this momentum.
        config (Optional[CorrelationConfig]): Provides the phase sign convention.
        observer (Optional[MatrixObserver]): Receives each projected matrix
            as "M_trafo[x,y]".
    """
    N = len(sites)
    if N == 0:
        return

    config = config or CorrelationConfig()
    types = numeric_types(config.precision)
    trafo = transform.trafo
    trafo_herm = transform.trafo_herm
    if trafo.shape != (2 * N, 2 * N):
        raise ValueError(
            f"Transform of shape {trafo.shape} does not match {N} magnetic sites."
        )
    if len(energies_and_correlations) != 2 * N:
        raise ValueError(
            f"Expected {2 * N} bands for {N} magnetic sites, got {len(energies_and_correlations)}."
        )

    _, _, u, u_conj = _site_arrays(sites)
    prefactors = spin_prefactors(sites, q_vector, config.phase_sign)

    for x_idx, y_idx in product(range(3), range(3)):
        M = spin_matrix(u, u_conj, prefactors, x_idx, y_idx).astype(types.complex)
        M_trafo = trafo_herm @ M @ trafo

        if observer is not None:
            observer(f"M_trafo[{x_idx},{y_idx}]", M_trafo)

        diagonal = np.diag(M_trafo) / M.shape[0]
        for band, value in zip(energies_and_correlations, diagonal):
            band.S[x_idx, y_idx] += value


def calc_correlations_from_hamiltonian(
    energies_and_correlations: EnergiesAndWeights,
    sites: Sequence[MagneticSite],
    H_mat: npt.NDArray[np.complex128],
    chol_mat: npt.NDArray[np.complex128],
    g_sign: npt.NDArray[np.float64],
    q_vector: npt.NDArray[np.float64],
    evecs: EigenvectorInput,
    config: Optional[CorrelationConfig] = None,
    observer: Optional[MatrixObserver] = None,
) -> Optional[ParaunitaryTransform]:
    """
    Energies and correlation tensors of all bands at one momentum point.

    Runs the paraunitary transform and the tensor builder. The band list is
    rebuilt in place in descending-energy order.

    Returns:
        Optional[ParaunitaryTransform]: The transform, or None when there are
        no magnetic sites.
    """
    if len(sites) == 0:
        return None

    config = config or CorrelationConfig()
    transform = paraunitary_transform(
        energies_and_correlations,
        H_mat,
        chol_mat,
        g_sign,
        q_vector,
        evecs,
        types=numeric_types(config.precision),
        observer=observer,
    )
    build_correlation_tensors(
        energies_and_correlations, sites, q_vector, transform, config, observer
    )
    return transform
