from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from iplinalg.solver import SolveOutcome, SymLinearSolver
from iplinalg.views import DenseVector, IndexArray, SymMatrixView, VectorView

_SIGMA_EXPONENT = 3.0


class LinearSolveFailed(RuntimeError):
    def __init__(self, outcome: SolveOutcome, message: str) -> None:
        super().__init__(f"{outcome}: {message}")
        self.outcome = outcome
        self.message = message


@dataclass(frozen=True, slots=True)
class ComplementarityIterate:
    """Current slack/multiplier pairs and where their steps sit in the KKT solution."""

    slacks: NDArray[np.float64]
    multipliers: NDArray[np.float64]
    slack_positions: IndexArray
    multiplier_positions: IndexArray

    def __post_init__(self) -> None:
        slacks = np.asarray(self.slacks, dtype=np.float64)
        multipliers = np.asarray(self.multipliers, dtype=np.float64)
        slack_positions = np.asarray(self.slack_positions, dtype=np.int64)
        multiplier_positions = np.asarray(self.multiplier_positions, dtype=np.int64)
        if slacks.ndim != 1 or multipliers.shape != slacks.shape:
            raise ValueError("slacks and multipliers must be one-dimensional with equal length")
        if slack_positions.shape != slacks.shape or multiplier_positions.shape != slacks.shape:
            raise ValueError("step positions must match the number of complementarity pairs")
        if np.any(slacks <= 0.0) or np.any(multipliers <= 0.0):
            raise ValueError("slacks and multipliers must be strictly positive")
        object.__setattr__(self, "slacks", slacks)
        object.__setattr__(self, "multipliers", multipliers)
        object.__setattr__(self, "slack_positions", slack_positions)
        object.__setattr__(self, "multiplier_positions", multiplier_positions)

    @property
    def n_pairs(self) -> int:
        return int(self.slacks.shape[0])


class ProbingMuOracle:
    """Mehrotra probing heuristic for the barrier parameter.

    The affine-scaling step is obtained from the KKT system; the barrier
    parameter is the current average complementarity scaled by
    ``(mu_aff / mu_curr) ** 3`` and clipped to ``[mu_min, mu_max]``.
    """

    def __init__(
        self,
        solver: SymLinearSolver,
        *,
        mu_min: float = 1.0e-9,
        mu_max: float = 1.0e5,
        tau: float = 0.99,
    ) -> None:
        if not 0.0 < mu_min <= mu_max:
            raise ValueError("mu bounds must satisfy 0 < mu_min <= mu_max")
        if not 0.0 < tau <= 1.0:
            raise ValueError("fraction-to-the-boundary parameter tau must be in (0, 1]")
        self._solver = solver
        self._mu_min = mu_min
        self._mu_max = mu_max
        self._tau = tau

    def calculate_mu(
        self,
        kkt_matrix: SymMatrixView,
        rhs_aff: VectorView,
        iterate: ComplementarityIterate,
    ) -> float:
        if iterate.n_pairs == 0:
            return self._mu_min

        step = DenseVector.zeros(kkt_matrix.dim)
        outcome = self._solver.solve(kkt_matrix, rhs_aff, step)
        if outcome is not SolveOutcome.SUCCESS:
            raise LinearSolveFailed(outcome, "affine-scaling step could not be computed")

        step_values = step.values()
        step_slacks = step_values[iterate.slack_positions]
        step_multipliers = step_values[iterate.multiplier_positions]
        alpha_primal = fraction_to_boundary(iterate.slacks, step_slacks, self._tau)
        alpha_dual = fraction_to_boundary(iterate.multipliers, step_multipliers, self._tau)

        mu_curr = float(np.dot(iterate.slacks, iterate.multipliers)) / iterate.n_pairs
        mu_aff = calculate_affine_mu(
            alpha_primal,
            alpha_dual,
            iterate.slacks,
            iterate.multipliers,
            step_slacks,
            step_multipliers,
        )
        sigma = (mu_aff / mu_curr) ** _SIGMA_EXPONENT
        return float(min(self._mu_max, max(self._mu_min, sigma * mu_curr)))


def fraction_to_boundary(
    values: NDArray[np.float64],
    step: NDArray[np.float64],
    tau: float,
) -> float:
    """Largest ``alpha`` in ``(0, 1]`` with ``values + alpha * step >= (1 - tau) * values``."""
    decreasing = step < 0.0
    if not np.any(decreasing):
        return 1.0
    return float(min(1.0, np.min(-tau * values[decreasing] / step[decreasing])))


def calculate_affine_mu(
    alpha_primal: float,
    alpha_dual: float,
    slacks: NDArray[np.float64],
    multipliers: NDArray[np.float64],
    step_slacks: NDArray[np.float64],
    step_multipliers: NDArray[np.float64],
) -> float:
    n_pairs = int(slacks.shape[0])
    if n_pairs == 0:
        return 0.0
    trial_slacks = slacks + alpha_primal * step_slacks
    trial_multipliers = multipliers + alpha_dual * step_multipliers
    return float(np.dot(trial_slacks, trial_multipliers)) / n_pairs
