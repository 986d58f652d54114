from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import issparse  # type: ignore[import-untyped]

from iplinalg.views import SymMatrixView, SymTripletMatrix

EPSILON = 1.0e-30


@dataclass(frozen=True, slots=True)
class ResidualMetrics:
    res_l2: float
    res_linf: float
    res_rel: float


def compute_residual_metrics(
    A: SymMatrixView | object,
    b: NDArray[np.float64],
    x: NDArray[np.float64],
    *,
    epsilon: float = EPSILON,
) -> ResidualMetrics:
    """Residual of ``A x = b``; ``res_rel`` is scaled by ``|A| |x| + |b|`` in the inf-norm."""
    matrix = _as_scipy(A)
    vector_b = np.asarray(b, dtype=np.float64)
    vector_x = np.asarray(x, dtype=np.float64)
    residual = np.asarray(matrix @ vector_x, dtype=np.float64) - vector_b
    res_l2 = _vector_l2_norm(residual)
    res_linf = _vector_inf_norm(residual)
    denominator = (
        (_matrix_inf_norm(matrix) * _vector_inf_norm(vector_x))
        + _vector_inf_norm(vector_b)
        + epsilon
    )
    return ResidualMetrics(res_l2=res_l2, res_linf=res_linf, res_rel=res_linf / denominator)


def _as_scipy(A: SymMatrixView | object) -> object:
    if isinstance(A, SymTripletMatrix):
        return A.to_scipy()
    if issparse(A):
        return A
    if isinstance(A, SymMatrixView):
        rows, cols = A.fill_row_col()
        return SymTripletMatrix(A.dim, rows, cols, A.fill_values()).to_scipy()
    raise TypeError("matrix must be a symmetric matrix view or a SciPy sparse matrix")


def _vector_l2_norm(vector: NDArray[np.float64]) -> float:
    if vector.size == 0:
        return 0.0
    return float(np.linalg.norm(vector, ord=2))


def _vector_inf_norm(vector: NDArray[np.float64]) -> float:
    if vector.size == 0:
        return 0.0
    return float(np.max(np.abs(vector)))


def _matrix_inf_norm(matrix: object) -> float:
    row_sums = np.abs(matrix).sum(axis=1)  # type: ignore[call-overload]
    row_abs_sums = np.asarray(row_sums, dtype=np.float64).reshape(-1)
    if row_abs_sums.size == 0:
        return 0.0
    return float(np.max(row_abs_sums))
