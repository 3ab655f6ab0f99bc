import logging
from functools import lru_cache
from tokenize import TokenError

import numpy as np
import sympy as sp
from sympy.parsing.sympy_parser import (
    parse_expr,
    standard_transformations,
    convert_xor,
)

logger = logging.getLogger(__name__)

# Value used when a form factor expression cannot be evaluated
FORM_FACTOR_FALLBACK: float = 0.0

Q_SYMBOL = sp.Symbol("Q", real=True, nonnegative=True)

_TRANSFORMATIONS = standard_transformations + (convert_xor,)

# Data from International Tables for Crystallography Vol C, Table 4.4.4.1
# Formula for j0(s): j0(s) = A*exp(-a*s^2) + B*exp(-b*s^2) + C*exp(-c*s^2) + D
# s = sin(theta)/lambda = Q / (4*pi)

FORM_FACTOR_COEFFICIENTS = {
    # 3d ions (j0)
    "Ti3+": {"A": 0.4391, "a": 12.1009, "B": 0.5238, "b": 5.1517, "C": 0.0521, "c": 0.1703, "D": -0.0152},
    "V4+":  {"A": 0.4026, "a": 15.6558, "B": 0.5404, "b": 6.3054, "C": 0.0716, "c": 0.2312, "D": -0.0145},
    "V3+":  {"A": 0.3542, "a": 14.8690, "B": 0.5752, "b": 6.1360, "C": 0.0886, "c": 0.1982, "D": -0.0180},
    "V2+":  {"A": 0.2882, "a": 14.2863, "B": 0.6139, "b": 5.9238, "C": 0.1177, "c": 0.1558, "D": -0.0198},
    "Cr3+": {"A": 0.2974, "a": 19.4678, "B": 0.6094, "b": 7.7348, "C": 0.1147, "c": 0.2505, "D": -0.0215},
    "Cr2+": {"A": 0.2223, "a": 18.2325, "B": 0.6553, "b": 7.3341, "C": 0.1481, "c": 0.1915, "D": -0.0257},
    "Mn4+": {"A": 0.2238, "a": 23.4913, "B": 0.6559, "b": 9.2452, "C": 0.1444, "c": 0.3013, "D": -0.0241},
    "Mn3+": {"A": 0.1524, "a": 21.3653, "B": 0.7067, "b": 8.7188, "C": 0.1764, "c": 0.2238, "D": -0.0355},
    "Mn2+": {"A": 0.1084, "a": 20.3547, "B": 0.7410, "b": 8.3619, "C": 0.1989, "c": 0.1805, "D": -0.0483},
    "Fe3+": {"A": 0.0626, "a": 27.2721, "B": 0.7554, "b": 10.3800, "C": 0.2464, "c": 0.2797, "D": -0.0644},
    "Fe2+": {"A": 0.0142, "a": 24.3639, "B": 0.7853, "b": 9.9407, "C": 0.2936, "c": 0.2111, "D": -0.0931},
    "Co2+": {"A": -0.0556, "a": 34.6983, "B": 0.8118, "b": 11.8315, "C": 0.3571, "c": 0.2829, "D": -0.1133},
    "Ni2+": {"A": -0.1986, "a": 54.4373, "B": 0.8647, "b": 13.5654, "C": 0.4578, "c": 0.3805, "D": -0.1239},
    "Cu2+": {"A": -0.1561, "a": 63.3630, "B": 0.8523, "b": 14.8698, "C": 0.4851, "c": 0.5065, "D": -0.1813},
}


def get_j0(ion, Q_mag):
    """
    Calculate j0(s) for a given ion and Q magnitude.
    s = Q / (4 * pi)
    """
    if ion not in FORM_FACTOR_COEFFICIENTS:
        logger.warning(f"Ion '{ion}' not found in form factor database. Returning 1.0.")
        return 1.0

    coeffs = FORM_FACTOR_COEFFICIENTS[ion]
    s = Q_mag / (4.0 * np.pi)
    s2 = s**2

    j0 = (coeffs["A"] * np.exp(-coeffs["a"] * s2) +
          coeffs["B"] * np.exp(-coeffs["b"] * s2) +
          coeffs["C"] * np.exp(-coeffs["c"] * s2) +
          coeffs["D"])
    return j0


@lru_cache(maxsize=32)
def parse_form_factor(formula: str) -> sp.Expr:
    """
    Parse a form factor expression in the variable Q.

    '^' is read as a power, and the usual functions (exp, sqrt, ...) and
    constants (pi, E) are available.

    Raises:
        ValueError: If the expression cannot be parsed or depends on
                    symbols other than Q.
    """
    try:
        expr = parse_expr(
            formula, local_dict={"Q": Q_SYMBOL}, transformations=_TRANSFORMATIONS
        )
    except (SyntaxError, TokenError, TypeError, AttributeError, sp.SympifyError) as e:
        raise ValueError(f"Cannot parse form factor expression '{formula}': {e}") from e
    if not isinstance(expr, sp.Expr):
        raise ValueError(f"Form factor '{formula}' is not a scalar expression.")
    unknown = expr.free_symbols - {Q_SYMBOL}
    if unknown:
        raise ValueError(
            f"Form factor '{formula}' contains unknown symbols: {sorted(map(str, unknown))}"
        )
    return expr


def eval_form_factor(formula: str, Q_mag: float) -> complex:
    """
    Evaluate a form factor expression at |Q| without raising.

    Expressions that cannot be parsed or evaluated to a finite number are
    logged and give FORM_FACTOR_FALLBACK.
    """
    try:
        expr = parse_form_factor(formula)
        value = complex(expr.subs(Q_SYMBOL, Q_mag).evalf())
    except Exception as e:
        logger.error(f"Form factor evaluation failed at |Q| = {Q_mag}: {e}")
        return complex(FORM_FACTOR_FALLBACK)
    if not np.isfinite(value):
        logger.error(f"Form factor '{formula}' is not finite at |Q| = {Q_mag}.")
        return complex(FORM_FACTOR_FALLBACK)
    return value


def get_form_factor(Q_mag, formula="", ion=None):
    """
    Magnetic form factor F(|Q|).

    An explicit expression takes precedence; otherwise the tabulated dipole
    form factor <j0> of `ion` is used (g = 2). Without either, F = 1.
    """
    if formula:
        return eval_form_factor(formula, Q_mag).real
    if ion:
        return float(get_j0(ion, Q_mag))
    return 1.0
