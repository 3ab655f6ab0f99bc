import os
import sys

import numpy as np
import pytest
from scipy import linalg as la

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from magcorr.records import MagneticSite


def _colpa(H_boson):
    """
    Upstream part of the Colpa procedure: H = C^dagger C, then diagonalize C g C^dagger.

    Returns (H_trafo, C, g, evals, evecs) with eigenvalues in ascending order.
    """
    nspins = H_boson.shape[0] // 2
    g_sign = np.diag([1.0] * nspins + [-1.0] * nspins)
    chol_mat = la.cholesky(H_boson, lower=False)
    H_trafo = chol_mat @ g_sign @ chol_mat.conj().T
    evals, evecs = la.eigh(H_trafo)
    return H_trafo, chol_mat, g_sign, evals, evecs


def _boson_hamiltonian(nspins, seed=0, pairing=True):
    """Random positive-definite bosonic Hamiltonian [[A, B], [B*, A*]]."""
    rng = np.random.default_rng(seed)
    X = 0.3 * (rng.normal(size=(nspins, nspins)) + 1j * rng.normal(size=(nspins, nspins)))
    A = X + X.conj().T + 5.0 * np.eye(nspins)
    if pairing:
        Y = 0.3 * (rng.normal(size=(nspins, nspins)) + 1j * rng.normal(size=(nspins, nspins)))
        B = Y + Y.T
    else:
        B = np.zeros((nspins, nspins), dtype=complex)
    return np.block([[A, B], [B.conj(), A.conj()]])


@pytest.fixture
def colpa():
    return _colpa


@pytest.fixture
def boson_hamiltonian():
    return _boson_hamiltonian


@pytest.fixture
def ferromagnet_site():
    u = np.array([1.0, 1.0j, 0.0]) / np.sqrt(2.0)
    return MagneticSite(pos=[0.0, 0.0, 0.0], spin_mag=1.0, u=u, u_conj=np.conj(u))


@pytest.fixture
def two_sites():
    return [
        MagneticSite.from_direction([0.0, 0.0, 0.0], 1.0, [0.3, -0.2, 1.0]),
        MagneticSite.from_direction([0.5, 0.25, 0.1], 2.5, [-0.4, 1.0, 0.2]),
    ]
