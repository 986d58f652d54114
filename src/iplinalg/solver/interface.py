from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from iplinalg.views import SymMatrixView, VectorView

from .types import SolveOutcome


class SolverUsageError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


@runtime_checkable
class SymLinearSolver(Protocol):
    """What the optimization algorithm needs from a symmetric indefinite solver."""

    @property
    def provides_inertia(self) -> bool: ...

    def multi_solve(
        self,
        matrix: SymMatrixView,
        rhs_list: Sequence[VectorView],
        sol_list: Sequence[VectorView],
        *,
        check_inertia: bool = False,
        expected_neg_eigenvalues: int = 0,
    ) -> SolveOutcome: ...

    def solve(
        self,
        matrix: SymMatrixView,
        rhs: VectorView,
        sol: VectorView,
        *,
        check_inertia: bool = False,
        expected_neg_eigenvalues: int = 0,
    ) -> SolveOutcome: ...

    def number_of_neg_eigenvalues(self) -> int: ...

    def increase_quality(self) -> bool: ...
