from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from .eq_mult import LeastSquareEqMultCalculator


@dataclass(frozen=True, slots=True)
class RestoInitialIterate:
    n: NDArray[np.float64]
    p: NDArray[np.float64]
    y: NDArray[np.float64]
    multipliers_clipped: bool


class RestoIterateInitializer:
    """Starting point of the feasibility restoration phase.

    The slack pair ``(n, p)`` absorbs the constraint violation ``c`` with
    ``c - p + n = 0``; equality multipliers come from the least-squares
    estimate and are zeroed when their max-norm exceeds ``laminitmax``.
    """

    def __init__(
        self,
        eq_mult_calculator: LeastSquareEqMultCalculator | None,
        *,
        laminitmax: float = 1.0e3,
        rho: float = 1.0e3,
    ) -> None:
        if laminitmax < 0.0:
            raise ValueError("laminitmax must be >= 0")
        if rho <= 0.0:
            raise ValueError("rho must be > 0")
        self._eq_mult_calculator = eq_mult_calculator
        self._laminitmax = laminitmax
        self._rho = rho

    def initialize(
        self,
        constraint_values: NDArray[np.float64],
        mu: float,
        *,
        jacobian: object | None = None,
        grad_f: NDArray[np.float64] | None = None,
    ) -> RestoInitialIterate:
        c = np.asarray(constraint_values, dtype=np.float64)
        if c.ndim != 1:
            raise ValueError("constraint_values must be one-dimensional")
        n, p = solve_quadratic(self._rho, mu, c)

        y = np.zeros(c.shape[0], dtype=np.float64)
        clipped = False
        if self._eq_mult_calculator is not None and jacobian is not None and grad_f is not None:
            estimate = self._eq_mult_calculator.calculate_multipliers(jacobian, grad_f)
            if estimate is not None:
                if estimate.shape != c.shape:
                    raise ValueError("multiplier estimate length must match constraint_values")
                if estimate.size and float(np.max(np.abs(estimate))) > self._laminitmax:
                    clipped = True
                else:
                    y = estimate
        return RestoInitialIterate(n=n, p=p, y=y, multipliers_clipped=clipped)


def solve_quadratic(
    rho: float,
    mu: float,
    c: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Positive root of ``rho n^2 + (rho c - mu) n - mu c / 2 = 0`` per component; ``p = c + n``."""
    if rho <= 0.0:
        raise ValueError("rho must be > 0")
    if mu <= 0.0:
        raise ValueError("mu must be > 0")
    values = np.asarray(c, dtype=np.float64)
    half = (mu - rho * values) / (2.0 * rho)
    n = half + np.sqrt(half * half + mu * values / (2.0 * rho))
    p = values + n
    return n, p
