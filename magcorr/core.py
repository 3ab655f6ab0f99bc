#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Magnon correlation and neutron intensity calculator.

This module provides the `MagCorr` class, which combines the magnetic site
data and the (immutable) calculation settings and, for momentum points
whose Hamiltonian has already been set up and diagonalized, computes:

1.  Band energies consistent with the paraunitary transform.
2.  The dynamical spin-spin correlation tensor of every band.
3.  Neutron scattering weights (Bose factor, form factor, transverse projection).

Independent momentum points can be processed in parallel with
`MagCorr.calculate_many`.
"""
import logging
import timeit
from multiprocessing import Pool
from typing import Iterable, List, NamedTuple, Optional, Sequence

import numpy as np
import numpy.typing as npt
from tqdm.auto import tqdm

try:
    from .config_loader import load_config, sites_from_config
    from .correlation import calc_correlations_from_hamiltonian
    from .intensity import calc_intensities
    from .linalg import EigenvectorInput, MatrixObserver
    from .records import EnergiesAndWeights, MagneticSite, bands_from_energies
    from .schema import CorrelationConfig, MagCorrConfig
except ImportError:
    from config_loader import load_config, sites_from_config
    from correlation import calc_correlations_from_hamiltonian
    from intensity import calc_intensities
    from linalg import EigenvectorInput, MatrixObserver
    from records import EnergiesAndWeights, MagneticSite, bands_from_energies
    from schema import CorrelationConfig, MagCorrConfig

logger = logging.getLogger(__name__)


class QPointData(NamedTuple):
    """Upstream data of one momentum point: Hamiltonian, Cholesky factor, metric and eigen-pairs."""
    q_vector: npt.NDArray[np.float64]
    H_mat: npt.NDArray[np.complex128]
    chol_mat: npt.NDArray[np.complex128]
    g_sign: npt.NDArray[np.float64]
    evals: npt.NDArray[np.complex128]
    evecs: EigenvectorInput


# --- Global variable for worker processes ---
_worker_calc = None


def _init_worker(sites, config, observer):
    """
    Initializer function for multiprocessing worker.
    Builds the calculator once per process.
    """
    global _worker_calc
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    _worker_calc = MagCorr(sites, config, observer=observer)


def process_q_point(point: QPointData) -> Optional[EnergiesAndWeights]:
    """
    Worker function for a single momentum point.
    Uses the pre-initialized _worker_calc.
    """
    if _worker_calc is None:
        raise RuntimeError("Worker not initialized with a MagCorr instance")
    return _worker_calc._calculate_safe(point)


class MagCorr:
    """
    Correlation tensors and neutron intensities of magnon bands.

    The site list and configuration are fixed at construction; every
    momentum point is computed independently from its own upstream data.
    """

    def __init__(
        self,
        sites: Sequence[MagneticSite],
        config: Optional[CorrelationConfig] = None,
        observer: Optional[MatrixObserver] = None,
    ):
        self.sites: List[MagneticSite] = list(sites)
        self.config: CorrelationConfig = config or CorrelationConfig()
        self.observer = observer
        logger.debug(
            f"MagCorr set up with {self.nspins} sites, config: {self.config.model_dump()}"
        )

    @classmethod
    def from_config(cls, config: MagCorrConfig, observer: Optional[MatrixObserver] = None):
        return cls(sites_from_config(config), config.correlation, observer=observer)

    @classmethod
    def from_config_file(cls, filepath: str, observer: Optional[MatrixObserver] = None):
        return cls.from_config(load_config(filepath), observer=observer)

    @property
    def nspins(self) -> int:
        return len(self.sites)

    def calculate(
        self,
        q_vector: npt.NDArray[np.float64],
        H_mat: npt.NDArray[np.complex128],
        chol_mat: npt.NDArray[np.complex128],
        g_sign: npt.NDArray[np.float64],
        evals: npt.NDArray[np.complex128],
        evecs: EigenvectorInput,
    ) -> EnergiesAndWeights:
        """
        Energies, correlation tensors and weights of all 2N bands at one Q.

        Args:
            q_vector (npt.NDArray[np.float64]): Momentum transfer in rlu; site
                positions are taken to be fractional coordinates.
            H_mat (npt.NDArray[np.complex128]): Hermitian matrix diagonalized by
                `evecs` (C g C^dagger in the Colpa procedure).
            chol_mat (npt.NDArray[np.complex128]): Cholesky factor C of the
                bosonic Hamiltonian.
            g_sign (npt.NDArray[np.float64]): Metric diag(1,..,1,-1,..,-1).
            evals (npt.NDArray[np.complex128]): Eigenvalues, in the order of `evecs`.
            evecs (EigenvectorInput): Eigenvectors (columns).

        Returns:
            EnergiesAndWeights: Band records in descending energy order.
        """
        q_vector = np.asarray(q_vector, dtype=float)
        if len(evals) != 2 * self.nspins:
            raise ValueError(
                f"Expected {2 * self.nspins} eigenvalues for {self.nspins} sites, got {len(evals)}."
            )
        bands = bands_from_energies(evals)
        if self.nspins == 0:
            return bands

        calc_correlations_from_hamiltonian(
            bands,
            self.sites,
            H_mat,
            chol_mat,
            g_sign,
            q_vector,
            evecs,
            config=self.config,
            observer=self.observer,
        )
        calc_intensities(q_vector, bands, self.config)
        return bands

    def _calculate_safe(self, point: QPointData) -> Optional[EnergiesAndWeights]:
        try:
            return self.calculate(*point)
        except Exception:
            logger.exception(f"Error during correlation calculation for q={point.q_vector}.")
            return None

    def calculate_many(
        self,
        points: Iterable[QPointData],
        processes: Optional[int] = None,
        show_progress: bool = True,
    ) -> List[Optional[EnergiesAndWeights]]:
        """
        Run `calculate` over many momentum points.

        Points are independent and are distributed over a process pool
        (`processes=1` runs them in this process). Failing points are logged
        and give None; the others are unaffected. The observer, if any, must
        be picklable to be used by the workers.

        Returns:
            List[Optional[EnergiesAndWeights]]: Results in input order.
        """
        points = [QPointData(*point) for point in points]
        start_time: float = timeit.default_timer()

        if processes == 1:
            results = [
                self._calculate_safe(point)
                for point in tqdm(points, desc="Q points", disable=not show_progress)
            ]
        else:
            with Pool(
                processes=processes,
                initializer=_init_worker,
                initargs=(self.sites, self.config, self.observer),
            ) as pool:
                results = list(
                    tqdm(
                        pool.imap(process_q_point, points),
                        total=len(points),
                        desc="Q points",
                        disable=not show_progress,
                    )
                )

        num_failures = sum(1 for res in results if res is None)
        if num_failures > 0:
            logger.warning(
                f"Correlation calculation failed for {num_failures} out of {len(points)} q-points. Check logs for details."
            )

        end_time: float = timeit.default_timer()
        logger.info(
            f"Run-time for correlation calculation: {np.round((end_time - start_time) / 60, 2)} min."
        )
        return results
