#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Data records shared by the correlation and intensity calculations.

`MagneticSite` is owned by the upstream spin model and only read here.
`EnergyAndWeight` holds the per-band results at one momentum point and is
filled in stages: energies by the paraunitary transform, the correlation
tensor by the tensor builder, and the projected tensor and weights by the
intensity post-processing.
"""
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np
import numpy.typing as npt


def _zero_tensor() -> npt.NDArray[np.complex128]:
    return np.zeros((3, 3), dtype=np.complex128)


def rotation_to_direction(direction: Sequence[float]) -> npt.NDArray[np.float64]:
    """
    Rotation matrix R = Rz(phi) * Ry(theta) mapping the z axis onto `direction`.
    """
    n = np.asarray(direction, dtype=float)
    norm = np.linalg.norm(n)
    if norm == 0.0:
        raise ValueError("Spin direction must be a non-zero vector.")
    n = n / norm
    theta = np.arccos(np.clip(n[2], -1.0, 1.0))
    phi = np.arctan2(n[1], n[0])
    ct, st = np.cos(theta), np.sin(theta)
    cp, sp_ = np.cos(phi), np.sin(phi)
    Ry = np.array([[ct, 0, st], [0, 1, 0], [-st, 0, ct]])
    Rz = np.array([[cp, -sp_, 0], [sp_, cp, 0], [0, 0, 1]])
    return Rz @ Ry


@dataclass(frozen=True, eq=False)
class MagneticSite:
    """
    A magnetic site as seen by the correlation calculation.

    Attributes:
        pos: Site position, in the length units dual to the Q passed in.
        spin_mag: Spin magnitude S.
        u: Complex local-frame vector expressing the transverse spin
           operators in the rotated frame of the site.
        u_conj: Complex conjugate of `u`.
    """
    pos: npt.NDArray[np.float64]
    spin_mag: float
    u: npt.NDArray[np.complex128]
    u_conj: npt.NDArray[np.complex128]

    def __post_init__(self):
        object.__setattr__(self, "pos", np.asarray(self.pos, dtype=float))
        object.__setattr__(self, "u", np.asarray(self.u, dtype=np.complex128))
        object.__setattr__(
            self, "u_conj", np.asarray(self.u_conj, dtype=np.complex128)
        )
        if self.pos.shape != (3,) or self.u.shape != (3,) or self.u_conj.shape != (3,):
            raise ValueError("Site position, u and u_conj must be 3-vectors.")

    @classmethod
    def from_direction(
        cls, pos: Sequence[float], spin_mag: float, direction: Sequence[float]
    ) -> "MagneticSite":
        """
        Build a site from its classical spin direction.

        u = (R[:, 0] + i R[:, 1]) / sqrt(2), with R rotating z onto the spin.
        """
        R = rotation_to_direction(direction)
        u = (R[:, 0] + 1j * R[:, 1]) / np.sqrt(2.0)
        return cls(pos=pos, spin_mag=float(spin_mag), u=u, u_conj=np.conj(u))


@dataclass
class EnergyAndWeight:
    """Energy, correlation tensor and scattering weights of one magnon band."""
    E: float = 0.0
    S: npt.NDArray[np.complex128] = field(default_factory=_zero_tensor)
    S_perp: npt.NDArray[np.complex128] = field(default_factory=_zero_tensor)
    S_sum: complex = 0j
    S_perp_sum: complex = 0j
    weight_full: float = 0.0
    weight: float = 0.0


EnergiesAndWeights = List[EnergyAndWeight]


def bands_from_energies(energies: Sequence[float]) -> EnergiesAndWeights:
    """Fresh band records carrying only the (unsorted) eigen-energies."""
    return [EnergyAndWeight(E=float(np.real(E))) for E in energies]
