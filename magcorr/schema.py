from typing import List, Optional, Union, Literal, Tuple
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

import numpy as np


# --- Primitive Types ---
Vector3 = Union[List[float], Tuple[float, float, float]]
Matrix3 = List[Vector3]
# Complex components are given as numbers or strings like "0.7071j"
ComplexValue = Union[float, str]


# --- Crystal Structure ---
class LatticeParameters(BaseModel):
    model_config = ConfigDict(frozen=True)

    a: float
    b: float
    c: float
    alpha: float = 90.0
    beta: float = 90.0
    gamma: float = 90.0


# --- Correlation / Intensity Settings ---
class CorrelationConfig(BaseModel):
    """
    Settings shared by all momentum points of a calculation.

    Immutable, so one instance can be handed to any number of worker
    processes.
    """
    model_config = ConfigDict(frozen=True, extra='forbid')

    temperature: float = Field(
        default=-1.0, description="Temperature in K. Negative values disable the Bose factor."
    )
    bose_cutoff: float = Field(default=0.025, description="Energy cutoff of the Bose factor in meV.")
    phase_sign: float = -1.0
    magnetic_form_factor: str = Field(
        default="", description="Form factor expression in the variable Q (1/A)."
    )
    magnetic_ion: Optional[str] = Field(
        default=None, description="Tabulated ion used for <j0> when no expression is given."
    )
    xtal_b: Optional[Matrix3] = None
    lattice_parameters: Optional[LatticeParameters] = None
    precision: Literal['double', 'single'] = 'double'
    polarisation: Optional[str] = None  # reserved for polarised cross sections

    @field_validator('phase_sign')
    @classmethod
    def check_phase_sign(cls, v):
        if v not in (1.0, -1.0):
            raise ValueError("phase_sign must be +1 or -1.")
        return v

    @field_validator('xtal_b')
    @classmethod
    def check_xtal_b(cls, v):
        if v is not None and np.asarray(v, dtype=float).shape != (3, 3):
            raise ValueError("xtal_b must be a 3x3 matrix.")
        return v

    def b_matrix(self) -> np.ndarray:
        """Reciprocal metric converting Q in rlu to Q in 1/A."""
        if self.xtal_b is not None:
            return np.asarray(self.xtal_b, dtype=float)
        if self.lattice_parameters is not None:
            try:
                from .crystal import b_matrix_from_lattice_parameters
            except ImportError:
                from crystal import b_matrix_from_lattice_parameters
            return b_matrix_from_lattice_parameters(self.lattice_parameters)
        return np.eye(3)


# --- Sites ---
class SiteConfig(BaseModel):
    label: str = ""
    pos: Vector3
    spin_S: float
    magmom_classical: Optional[Vector3] = Field(
        default=None,
        description="Classical magnetic moment direction [mx, my, mz].",
    )
    u: Optional[List[ComplexValue]] = Field(
        default=None, description="Explicit local-frame vector; overrides magmom_classical."
    )

    @model_validator(mode='after')
    def check_frame_source(self):
        if self.u is None and self.magmom_classical is None:
            self.magmom_classical = [0.0, 0.0, 1.0]
        if self.u is not None:
            if len(self.u) != 3:
                raise ValueError(f"Site '{self.label}': 'u' must have 3 components.")
            for comp in self.u:
                try:
                    complex(comp)
                except ValueError:
                    raise ValueError(
                        f"Site '{self.label}': cannot read '{comp}' as a complex number."
                    ) from None
        return self

    def u_vector(self) -> Optional[np.ndarray]:
        if self.u is None:
            return None
        return np.array([complex(comp) for comp in self.u], dtype=np.complex128)


# --- Main Configuration ---
class MagCorrConfig(BaseModel):
    correlation: CorrelationConfig = Field(default_factory=CorrelationConfig)
    sites: List[SiteConfig] = Field(default_factory=list)
