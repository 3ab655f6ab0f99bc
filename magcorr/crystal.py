import logging
from typing import Union

import numpy as np

try:
    from .schema import LatticeParameters
except ImportError:
    from schema import LatticeParameters

logger = logging.getLogger(__name__)


def unit_cell_from_lattice_parameters(
    lp: Union[LatticeParameters, dict]
) -> np.ndarray:
    """
    Cartesian unit cell vectors (rows a, b, c) with a along x and b in the xy plane.
    """
    if isinstance(lp, dict):
        lp = LatticeParameters(**lp)
    alpha, beta, gamma = np.radians([lp.alpha, lp.beta, lp.gamma])
    cos_a, cos_b, cos_g = np.cos(alpha), np.cos(beta), np.cos(gamma)
    sin_g = np.sin(gamma)
    if abs(sin_g) < 1e-9:
        raise ValueError("Lattice parameter gamma results in sin(gamma) close to zero.")
    va = np.array([lp.a, 0, 0], dtype=float)
    vb = np.array([lp.b * cos_g, lp.b * sin_g, 0], dtype=float)
    vc_x = lp.c * cos_b
    vc_y = lp.c * (cos_a - cos_b * cos_g) / sin_g
    term_for_vc_z_sq_content = (
        1.0 - cos_a**2 - cos_b**2 - cos_g**2 + 2.0 * cos_a * cos_b * cos_g
    )
    if term_for_vc_z_sq_content < -1e-9:
        raise ValueError(
            f"Invalid lattice parameters: term for vc_z calculation is negative ({term_for_vc_z_sq_content:.3e})."
        )
    if term_for_vc_z_sq_content < 0:
        term_for_vc_z_sq_content = 0
    vc_z_val = (lp.c / sin_g) * np.sqrt(term_for_vc_z_sq_content)
    vc = np.array([vc_x, vc_y, vc_z_val], dtype=float)
    return np.array([va, vb, vc])


def b_matrix(unit_cell_vectors: np.ndarray) -> np.ndarray:
    """
    Reciprocal lattice vectors (including 2 pi) as the columns of B.

    Q in 1/A is B @ Q_rlu.
    """
    uc = np.asarray(unit_cell_vectors, dtype=float)
    return 2.0 * np.pi * np.linalg.inv(uc)


def b_matrix_from_lattice_parameters(lp: Union[LatticeParameters, dict]) -> np.ndarray:
    B = b_matrix(unit_cell_from_lattice_parameters(lp))
    logger.debug(f"Reciprocal metric B = \n{B}")
    return B
