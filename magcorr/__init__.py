"""
PyMagCorr: dynamical spin-spin correlations and neutron intensities of magnons.
"""
from .records import EnergyAndWeight, EnergiesAndWeights, MagneticSite
from .schema import CorrelationConfig, MagCorrConfig
from .linalg import get_energy_permutation, paraunitary_transform, log_matrix_observer
from .correlation import build_correlation_tensors, calc_correlations_from_hamiltonian
from .intensity import calc_intensities
from .core import MagCorr, QPointData

__version__ = "0.1.0"
