import logging

import numpy as np
import pytest
from numpy.testing import assert_allclose

from magcorr.core import MagCorr, QPointData
from magcorr.schema import CorrelationConfig


@pytest.fixture
def q_points(colpa, boson_hamiltonian):
    points = []
    for seed, q in enumerate([[0.0, 0.0, 0.0], [0.1, 0.0, 0.3], [0.5, 0.5, 0.0]]):
        H_trafo, chol, g_sign, evals, evecs = colpa(boson_hamiltonian(2, seed=seed))
        points.append(QPointData(np.array(q), H_trafo, chol, g_sign, evals, evecs))
    return points


def test_calculate_ferromagnet(colpa, ferromagnet_site):
    H_trafo, chol, g_sign, evals, evecs = colpa(np.diag([2.0, 2.0]).astype(complex))
    calc = MagCorr([ferromagnet_site])

    bands = calc.calculate(np.array([0.0, 0.0, 1.0]), H_trafo, chol, g_sign, evals, evecs)

    assert [b.E for b in bands] == pytest.approx([2.0, -2.0])
    for band in bands:
        assert band.weight_full == pytest.approx(0.5)
        assert band.weight == pytest.approx(0.5)


def test_calculate_without_sites():
    calc = MagCorr([])
    empty = np.zeros((0, 0))
    assert calc.calculate(np.zeros(3), empty, empty, empty, [], empty) == []


def test_calculate_rejects_wrong_band_count(colpa, ferromagnet_site):
    H_trafo, chol, g_sign, evals, evecs = colpa(np.eye(4, dtype=complex))
    with pytest.raises(ValueError):
        MagCorr([ferromagnet_site]).calculate(np.zeros(3), H_trafo, chol, g_sign, evals, evecs)


def test_calculate_many_serial_matches_single(two_sites, q_points):
    calc = MagCorr(two_sites, CorrelationConfig(temperature=5.0))
    results = calc.calculate_many(q_points, processes=1, show_progress=False)

    assert len(results) == len(q_points)
    for point, bands in zip(q_points, results):
        expected = calc.calculate(*point)
        assert_allclose([b.E for b in bands], [b.E for b in expected])
        assert_allclose([b.weight for b in bands], [b.weight for b in expected])


def test_calculate_many_pool_matches_serial(two_sites, q_points):
    calc = MagCorr(two_sites)
    serial = calc.calculate_many(q_points, processes=1, show_progress=False)
    pooled = calc.calculate_many(q_points, processes=2, show_progress=False)

    for bands_s, bands_p in zip(serial, pooled):
        assert_allclose([b.E for b in bands_p], [b.E for b in bands_s])
        for b_s, b_p in zip(bands_s, bands_p):
            assert_allclose(b_p.S, b_s.S, atol=1e-12)


def test_calculate_many_continues_after_failure(two_sites, q_points, caplog):
    broken = q_points[1]._replace(evals=q_points[1].evals[:2])
    points = [q_points[0], broken, q_points[2]]
    with caplog.at_level(logging.WARNING):
        results = MagCorr(two_sites).calculate_many(points, processes=1, show_progress=False)
    assert results[0] is not None and results[2] is not None
    assert results[1] is None
    assert any("failed for 1 out of 3" in rec.message for rec in caplog.records)


def test_from_config_file(tmp_path, colpa):
    path = tmp_path / "fm.yaml"
    path.write_text(
        "correlation:\n"
        "  temperature: -1\n"
        "sites:\n"
        "  - pos: [0, 0, 0]\n"
        "    spin_S: 1.0\n"
    )
    calc = MagCorr.from_config_file(str(path))
    assert calc.nspins == 1

    H_trafo, chol, g_sign, evals, evecs = colpa(np.diag([2.0, 2.0]).astype(complex))
    bands = calc.calculate(np.zeros(3), H_trafo, chol, g_sign, evals, evecs)
    assert_allclose(bands[0].S[0, 1], -0.25j, atol=1e-14)
