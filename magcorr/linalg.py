import logging
from dataclasses import dataclass
from typing import Callable, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt
from scipy import linalg as la

try:
    from .records import EnergiesAndWeights, EnergyAndWeight
except ImportError:
    from records import EnergiesAndWeights, EnergyAndWeight

logger = logging.getLogger(__name__)

# --- Numerical Constants ---
ENERGY_IMAG_PART_THRESHOLD: float = 1e-5
Q_ZERO_THRESHOLD: float = 1e-10
NICEPRINT_THRESHOLD: float = 1e-4
NICEPRINT_PRECISION: int = 4

# Callback receiving a label and an intermediate matrix, e.g. ("L", energy_mat)
MatrixObserver = Callable[[str, np.ndarray], None]

EigenvectorInput = Union[npt.NDArray[np.complex128], Sequence[npt.NDArray[np.complex128]]]


class NumericTypes(NamedTuple):
    """Real and complex scalar types used together for all matrices of a calculation."""
    real: type
    complex: type


_PRECISIONS = {
    "double": NumericTypes(np.float64, np.complex128),
    "single": NumericTypes(np.float32, np.complex64),
}


def numeric_types(precision: str = "double") -> NumericTypes:
    try:
        return _PRECISIONS[precision]
    except KeyError:
        raise ValueError(
            f"Unknown precision '{precision}'. Choose from {sorted(_PRECISIONS)}."
        ) from None


def log_matrix_observer(name: str, matrix: np.ndarray) -> None:
    """Observer that writes intermediate matrices to the debug log."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    matrix = np.asarray(matrix)
    matrix = np.where(np.abs(matrix) < NICEPRINT_THRESHOLD, 0, matrix)
    text = np.array2string(
        matrix,
        precision=NICEPRINT_PRECISION,
        suppress_small=True,
        max_line_width=200,
    )
    logger.debug(f"{name} = \n{text}")


def get_energy_permutation(energies: Sequence[float]) -> npt.NDArray[np.int_]:
    """
    Permutation of band indices ordering the energies from highest to lowest.

    Equal energies keep their original relative order.

    Args:
        energies (Sequence[float]): Unsorted band energies.

    Returns:
        npt.NDArray[np.int_]: Indices such that energies[perm] is non-increasing.
    """
    E = np.real(np.asarray(energies, dtype=complex))
    return np.argsort(-E, kind="stable")


def _eigenvector_matrix(
    evecs: EigenvectorInput, sorting: npt.NDArray[np.int_], dtype: type
) -> npt.NDArray[np.complex128]:
    """Eigenvectors, reordered by `sorting`, as the columns of one matrix."""
    if isinstance(evecs, np.ndarray) and evecs.ndim == 2:
        columns = evecs
    elif len(evecs) == 0:
        columns = np.zeros((0, 0), dtype=dtype)
    else:
        columns = np.column_stack([np.asarray(v) for v in evecs])
    if columns.shape[1] != len(sorting):
        raise ValueError(
            f"Got {columns.shape[1]} eigenvectors for {len(sorting)} bands."
        )
    return np.asarray(columns[:, sorting], dtype=dtype)


def invert_cholesky(
    chol_mat: npt.NDArray[np.complex128], q_vector: npt.NDArray[np.float64]
) -> Tuple[npt.NDArray[np.complex128], bool]:
    """
    Invert the Cholesky factor of the Hamiltonian.

    A singular factor does not abort the calculation: a warning naming the
    momentum point is logged and the pseudo-inverse is returned instead.

    Returns:
        Tuple[npt.NDArray[np.complex128], bool]: The (pseudo-)inverse and
        whether the regular inversion succeeded.
    """
    try:
        chol_inv = la.inv(chol_mat)
        if np.all(np.isfinite(chol_inv)):
            return chol_inv, True
    except (np.linalg.LinAlgError, ValueError):
        pass
    logger.warning(f"Inversion failed at Q = {np.asarray(q_vector)}.")
    return np.linalg.pinv(chol_mat), False


@dataclass
class ParaunitaryTransform:
    """
    Result of the paraunitary transformation at one momentum point.

    Attributes:
        trafo: T = C^-1 V E_sqrt, mapping quasi-particle to boson operators.
        trafo_herm: Hermitian conjugate of `trafo`.
        E_sqrt: Diagonal matrix of sqrt(g L).
        energy_mat: L = V^dagger H V, diagonal for true eigenvectors.
        inversion_ok: False if the Cholesky factor could not be inverted.
    """
    trafo: npt.NDArray[np.complex128]
    trafo_herm: npt.NDArray[np.complex128]
    E_sqrt: npt.NDArray[np.complex128]
    energy_mat: npt.NDArray[np.complex128]
    inversion_ok: bool = True


def paraunitary_transform(
    energies_and_correlations: EnergiesAndWeights,
    H_mat: npt.NDArray[np.complex128],
    chol_mat: npt.NDArray[np.complex128],
    g_sign: npt.NDArray[np.float64],
    q_vector: npt.NDArray[np.float64],
    evecs: EigenvectorInput,
    types: Optional[NumericTypes] = None,
    observer: Optional[MatrixObserver] = None,
) -> ParaunitaryTransform:
    """
    Build the paraunitary transform from the Hamiltonian eigen-data.

    Following Toth & Lake (2015), eqs. (32) and (34):
    L = V^dagger H V, E_sqrt = sqrt(g L), T = C^-1 V E_sqrt.
    The band list is rebuilt in place from the diagonal of L, sorted by
    descending energy, with zeroed correlation tensors. Any energies set
    before this call are only used to determine the sorting.

    Args:
        energies_and_correlations (EnergiesAndWeights): Band records whose
            energies belong to the eigenvectors in `evecs`; rebuilt in place.
        H_mat (npt.NDArray[np.complex128]): Hermitian matrix (2N x 2N) that
            `evecs` diagonalize. For the Colpa procedure this is C g C^dagger.
        chol_mat (npt.NDArray[np.complex128]): Cholesky factor C of the
            bosonic Hamiltonian (2N x 2N).
        g_sign (npt.NDArray[np.float64]): Diagonal metric diag(1,..,1,-1,..,-1).
        q_vector (npt.NDArray[np.float64]): Momentum point, used in diagnostics.
        evecs (EigenvectorInput): Eigenvectors as the columns of a 2N x 2N
            array, or a sequence of 2N vectors, in the order of the band list.
        types (Optional[NumericTypes]): Scalar types of the calculation.
        observer (Optional[MatrixObserver]): Receives "D", "E_sqrt" and "L".

    Returns:
        ParaunitaryTransform: T, T^dagger and the intermediate matrices.
    """
    types = types or numeric_types()
    q_label = f"Q = {np.asarray(q_vector)}"

    sorting = get_energy_permutation([band.E for band in energies_and_correlations])
    evec_mat = _eigenvector_matrix(evecs, sorting, types.complex)
    evec_mat_herm = evec_mat.conj().T

    H_mat = np.asarray(H_mat, dtype=types.complex)
    g_sign = np.asarray(g_sign, dtype=types.real)
    nspins2 = evec_mat.shape[0]
    if H_mat.shape != (nspins2, nspins2) or g_sign.shape != (nspins2, nspins2):
        raise ValueError(
            f"Hamiltonian {H_mat.shape} and sign matrix {g_sign.shape} do not match "
            f"{nspins2} eigenvector components."
        )

    energy_mat = evec_mat_herm @ H_mat @ evec_mat
    abs_energies = np.diag(g_sign @ energy_mat)
    E_sqrt = np.diag(np.sqrt(abs_energies.astype(types.complex)))

    energies = np.diag(energy_mat)
    imag_part_mags = np.abs(np.imag(energies))
    if nspins2 > 0 and np.any(imag_part_mags > ENERGY_IMAG_PART_THRESHOLD):
        logger.warning(
            f"Significant imaginary part in energies for {q_label}. Max imag: {np.max(imag_part_mags)}"
        )

    # energies are re-created to be consistent with the weights
    energies_and_correlations[:] = [
        EnergyAndWeight(E=float(np.real(E))) for E in energies
    ]

    chol_inv, inv_ok = invert_cholesky(
        np.asarray(chol_mat, dtype=types.complex), q_vector
    )

    trafo = (chol_inv @ evec_mat @ E_sqrt).astype(types.complex)
    trafo_herm = trafo.conj().T

    if observer is not None:
        observer("D", trafo_herm @ H_mat @ trafo)
        observer("E_sqrt", E_sqrt)
        observer("L", energy_mat)

    return ParaunitaryTransform(
        trafo=trafo,
        trafo_herm=trafo_herm,
        E_sqrt=E_sqrt,
        energy_mat=energy_mat,
        inversion_ok=inv_ok,
    )


def ortho_projector(vec: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """
    Projector onto the plane perpendicular to `vec`: P = 1 - v v^T / (v.v).

    For a vanishing vector there is no preferred direction and the identity
    is returned.
    """
    v = np.asarray(vec, dtype=float)
    norm_sq = np.dot(v, v)
    if norm_sq < Q_ZERO_THRESHOLD:
        return np.eye(len(v))
    return np.eye(len(v)) - np.outer(v, v) / norm_sq
