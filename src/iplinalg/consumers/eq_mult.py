from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import coo_matrix, issparse  # type: ignore[import-untyped]

from iplinalg.solver import AdaptiveSolveEngine, SolveOutcome
from iplinalg.views import DenseVector, SymTripletMatrix


class LeastSquareEqMultCalculator:
    """Least-squares equality multipliers ``y`` minimizing ``||grad_f + J^T y||``.

    Solves the augmented system ``[[I, J^T], [J, 0]] [w; y] = [-grad_f; 0]``.
    The augmented matrix keeps its structure while the Jacobian pattern is
    unchanged, so repeated calls only refactorize.
    """

    def __init__(self, engine: AdaptiveSolveEngine) -> None:
        self._engine = engine
        self._matrix: SymTripletMatrix | None = None
        self._pattern: tuple[int, int, bytes, bytes] | None = None

    @property
    def engine(self) -> AdaptiveSolveEngine:
        return self._engine

    def calculate_multipliers(
        self,
        jacobian: object,
        grad_f: NDArray[np.float64],
    ) -> NDArray[np.float64] | None:
        if not issparse(jacobian):
            raise TypeError("jacobian must be a SciPy sparse matrix")
        jac = coo_matrix(jacobian, dtype=np.float64)
        jac.sum_duplicates()
        n_constraints, n_variables = (int(size) for size in jac.shape)
        gradient = np.asarray(grad_f, dtype=np.float64)
        if gradient.shape != (n_variables,):
            raise ValueError("grad_f length must equal the number of Jacobian columns")
        if n_constraints == 0:
            return np.zeros(0, dtype=np.float64)

        matrix = self._augmented_matrix(jac, n_variables, n_constraints)
        rhs = DenseVector(np.concatenate([-gradient, np.zeros(n_constraints, dtype=np.float64)]))
        sol = DenseVector.zeros(n_variables + n_constraints)
        outcome = self._engine.solve(
            matrix,
            rhs,
            sol,
            check_inertia=self._engine.provides_inertia,
            expected_neg_eigenvalues=n_constraints,
        )
        if outcome is not SolveOutcome.SUCCESS:
            return None
        return sol.values()[n_variables:]

    def _augmented_matrix(
        self,
        jac: coo_matrix,
        n_variables: int,
        n_constraints: int,
    ) -> SymTripletMatrix:
        jac_rows = np.asarray(jac.row, dtype=np.int64)
        jac_cols = np.asarray(jac.col, dtype=np.int64)
        pattern = (n_variables, n_constraints, jac_rows.tobytes(), jac_cols.tobytes())

        variable_diag = np.arange(n_variables, dtype=np.int64)
        constraint_diag = np.arange(n_variables, n_variables + n_constraints, dtype=np.int64)
        values = np.concatenate(
            [
                np.ones(n_variables, dtype=np.float64),
                np.asarray(jac.data, dtype=np.float64),
                np.zeros(n_constraints, dtype=np.float64),
            ]
        )

        if self._matrix is not None and pattern == self._pattern:
            self._matrix.set_values(values)
            return self._matrix

        if self._matrix is not None:
            self._engine.reset_structure()
        rows = np.concatenate([variable_diag, jac_rows + n_variables, constraint_diag])
        cols = np.concatenate([variable_diag, jac_cols, constraint_diag])
        self._matrix = SymTripletMatrix(n_variables + n_constraints, rows, cols, values)
        self._pattern = pattern
        return self._matrix
