import logging
from typing import NamedTuple, Optional

import numpy as np
import sympy as sp
from sympy import lambdify
from sympy.core.function import AppliedUndef

from .expressions import check_expression

logger = logging.getLogger(__name__)

# Value used when a form-factor expression cannot be evaluated
FORM_FACTOR_FALLBACK: float = 0.0

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

# Names a form-factor formula may use; the momentum transfer is bound to Q
Q_SYMBOL = sp.Symbol("Q", real=True)
_ALLOWED_NAMES = {
    "Q": Q_SYMBOL,
    "pi": sp.pi,
    "E": sp.E,
    "I": sp.I,
    "sqrt": sp.sqrt,
    "exp": sp.exp,
    "log": sp.log,
    "sin": sp.sin,
    "cos": sp.cos,
    "tan": sp.tan,
    "abs": sp.Abs,
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


def j0_formula(ion: str) -> str:
    """
    Form-factor expression in the variable Q (1/A) for a tabulated ion.

    Raises:
        ValueError: If the ion is not in FORM_FACTOR_COEFFICIENTS.
    """
    if ion not in FORM_FACTOR_COEFFICIENTS:
        raise ValueError(
            f"Ion '{ion}' not found in form factor database. "
            f"Known ions: {', '.join(FORM_FACTOR_COEFFICIENTS)}"
        )
    c = FORM_FACTOR_COEFFICIENTS[ion]
    s2 = "(Q/(4*pi))**2"
    return (
        f"({c['A']})*exp(-({c['a']})*{s2}) + ({c['B']})*exp(-({c['b']})*{s2}) + "
        f"({c['C']})*exp(-({c['c']})*{s2}) + ({c['D']})"
    )


class FormFactorValue(NamedTuple):
    value: complex
    error: Optional[str] = None


class FormFactor:
    """
    Magnetic form factor given as an expression of Q.

    The syntax tree is checked against _ALLOWED_NAMES before sympy sees the
    formula, so only the variable Q and a handful of elementary functions
    are available. Parse errors are logged here; neither construction nor
    evaluation raises, and a bad formula evaluates to FORM_FACTOR_FALLBACK.
    """

    def __init__(self, formula: str = ""):
        self.formula = (formula or "").strip()
        self.parse_error: Optional[str] = None
        self._func = None
        if not self.formula:
            return

        try:
            check_expression(self.formula, _ALLOWED_NAMES)
            expr = sp.sympify(self.formula, locals=dict(_ALLOWED_NAMES))
            if not isinstance(expr, sp.Expr):
                raise TypeError(f"not a scalar expression: {type(expr).__name__}")
            unknown = expr.free_symbols - {Q_SYMBOL}
            if unknown:
                raise NameError(f"unknown symbols {sorted(str(s) for s in unknown)}")
            undefined = expr.atoms(AppliedUndef)
            if undefined:
                raise NameError(f"unknown functions {sorted(str(f.func) for f in undefined)}")
            self._func = lambdify(Q_SYMBOL, expr, modules=["numpy"])
        except Exception as e:
            self.parse_error = f"Invalid form factor formula '{self.formula}': {e}"
            logger.error(self.parse_error)

    # lambdified functions do not pickle; worker processes re-parse the formula
    def __getstate__(self):
        return {"formula": self.formula}

    def __setstate__(self, state):
        self.__init__(state["formula"])

    @classmethod
    def for_ion(cls, ion: str) -> "FormFactor":
        return cls(j0_formula(ion))

    @property
    def enabled(self) -> bool:
        return bool(self.formula)

    def evaluate(self, Q_abs: float) -> FormFactorValue:
        """Evaluate at |Q| (1/A); returns the fallback value instead of raising."""
        if self._func is None:
            return FormFactorValue(
                complex(FORM_FACTOR_FALLBACK), self.parse_error or "form factor disabled"
            )
        try:
            with np.errstate(all="ignore"):
                value = complex(self._func(float(Q_abs)))
        except Exception as e:
            logger.debug(f"Form factor evaluation failed at Q = {Q_abs}: {e}")
            return FormFactorValue(complex(FORM_FACTOR_FALLBACK), str(e))
        if not np.isfinite(value):
            return FormFactorValue(complex(FORM_FACTOR_FALLBACK), f"non-finite value at Q = {Q_abs}")
        return FormFactorValue(value)
