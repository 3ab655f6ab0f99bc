import logging

import numpy as np
import pytest

from magcorr.form_factors import (
    FORM_FACTOR_COEFFICIENTS,
    FORM_FACTOR_FALLBACK,
    eval_form_factor,
    get_form_factor,
    get_j0,
    parse_form_factor,
)


def test_j0_at_zero_q_is_normalized():
    for ion, c in FORM_FACTOR_COEFFICIENTS.items():
        expected = c["A"] + c["B"] + c["C"] + c["D"]
        assert get_j0(ion, 0.0) == pytest.approx(expected)
        assert abs(expected - 1.0) < 0.02, ion


def test_j0_decreases_with_q():
    assert get_j0("Mn2+", 4.0) < get_j0("Mn2+", 1.0) < get_j0("Mn2+", 0.0)


def test_j0_unknown_ion(caplog):
    with caplog.at_level(logging.WARNING):
        assert get_j0("Xx9+", 1.0) == 1.0
    assert any("not found in form factor database" in rec.message for rec in caplog.records)


@pytest.mark.parametrize(
    "formula, Q, expected",
    [
        ("exp(-Q^2/10)", 2.0, np.exp(-0.4)),
        ("0.5*exp(-0.1*Q**2) + 0.5", 1.0, 0.5 * np.exp(-0.1) + 0.5),
        ("sqrt(Q)", 4.0, 2.0),
        ("1", 3.0, 1.0),
        ("sin(pi*Q)/(pi*Q)", 0.5, 2.0 / np.pi),
    ],
)
def test_eval_form_factor(formula, Q, expected):
    assert eval_form_factor(formula, Q).real == pytest.approx(expected)


@pytest.mark.parametrize(
    "formula",
    ["exp(-Q^2", "Q +* 2", "Q * unknown_symbol", "1/(Q-1)", "Lambda(Q, Q)", "lambda x: x"],
)
def test_eval_form_factor_failures_fall_back(formula, caplog):
    with caplog.at_level(logging.ERROR):
        value = eval_form_factor(formula, 1.0)
    assert value == FORM_FACTOR_FALLBACK
    assert caplog.records


def test_parse_form_factor_rejects_unknown_symbols():
    with pytest.raises(ValueError):
        parse_form_factor("a*Q")


def test_get_form_factor_precedence():
    assert get_form_factor(2.0, "0.25", "Fe3+") == pytest.approx(0.25)
    assert get_form_factor(2.0, "", "Fe3+") == pytest.approx(get_j0("Fe3+", 2.0))
    assert get_form_factor(2.0) == 1.0
