from __future__ import annotations

import itertools
from typing import Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import coo_matrix, csr_matrix, issparse, tril  # type: ignore[import-untyped]

type IndexArray = NDArray[np.int64]
type ValueArray = NDArray[np.float64]

_TAG_COUNTER = itertools.count(1)


def next_tag() -> int:
    return next(_TAG_COUNTER)


class MatrixViewError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


@runtime_checkable
class SymMatrixView(Protocol):
    @property
    def dim(self) -> int: ...

    @property
    def nonzeros(self) -> int: ...

    @property
    def tag(self) -> int: ...

    def has_changed(self, tag: int) -> bool: ...

    def fill_row_col(self) -> tuple[IndexArray, IndexArray]: ...

    def fill_values(self, out: ValueArray | None = None) -> ValueArray: ...


class SymTripletMatrix:
    """Symmetric matrix stored as one triangle of (row, col, value) triplets.

    The triplet positions are fixed at construction. Values may be replaced
    through ``set_values``; every replacement draws a new change tag so a
    solver holding the previous tag sees the matrix as changed.
    """

    __slots__ = ("_dim", "_rows", "_cols", "_values", "_tag")

    def __init__(
        self,
        dim: int,
        rows: object,
        cols: object,
        values: object | None = None,
    ) -> None:
        if dim < 0:
            raise MatrixViewError("E_MATRIX_VIEW_INVALID", "dim must be >= 0")
        row_array = np.asarray(rows, dtype=np.int64).reshape(-1)
        col_array = np.asarray(cols, dtype=np.int64).reshape(-1)
        if row_array.shape != col_array.shape:
            raise MatrixViewError("E_MATRIX_VIEW_INVALID", "rows and cols must have equal length")
        if row_array.size and (
            int(row_array.min()) < 0
            or int(col_array.min()) < 0
            or int(row_array.max()) >= dim
            or int(col_array.max()) >= dim
        ):
            raise MatrixViewError("E_MATRIX_VIEW_INDEX_OUT_OF_RANGE", "triplet index out of range")
        row_array.setflags(write=False)
        col_array.setflags(write=False)
        self._dim = int(dim)
        self._rows = row_array
        self._cols = col_array
        self._values = np.zeros(row_array.shape[0], dtype=np.float64)
        self._tag = next_tag()
        if values is not None:
            self.set_values(values)

    @classmethod
    def from_scipy(cls, A: object) -> SymTripletMatrix:
        if not issparse(A):
            raise MatrixViewError("E_MATRIX_VIEW_INVALID", "matrix must be a SciPy sparse matrix")
        shape = A.shape  # type: ignore[attr-defined]
        if shape[0] != shape[1]:
            raise MatrixViewError("E_MATRIX_VIEW_INVALID", "matrix must be square")
        lower = coo_matrix(tril(A, format="coo"))
        lower.sum_duplicates()
        return cls(int(shape[0]), lower.row, lower.col, lower.data)

    @classmethod
    def from_dense(cls, dense: object) -> SymTripletMatrix:
        array = np.asarray(dense, dtype=np.float64)
        if array.ndim != 2 or array.shape[0] != array.shape[1]:
            raise MatrixViewError("E_MATRIX_VIEW_INVALID", "dense matrix must be square")
        rows, cols = np.tril_indices(array.shape[0])
        keep = array[rows, cols] != 0.0
        # diagonal positions stay structural so a zero pivot is still visible
        keep |= rows == cols
        return cls(array.shape[0], rows[keep], cols[keep], array[rows[keep], cols[keep]])

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def nonzeros(self) -> int:
        return int(self._rows.shape[0])

    @property
    def tag(self) -> int:
        return self._tag

    def has_changed(self, tag: int) -> bool:
        return self._tag != tag

    def fill_row_col(self) -> tuple[IndexArray, IndexArray]:
        return self._rows.copy(), self._cols.copy()

    def fill_values(self, out: ValueArray | None = None) -> ValueArray:
        if out is None:
            return self._values.copy()
        if out.shape[0] < self._values.shape[0]:
            raise MatrixViewError("E_MATRIX_VIEW_INVALID", "output buffer shorter than nonzeros")
        out[: self._values.shape[0]] = self._values
        return out

    def set_values(self, values: object) -> None:
        array = np.asarray(values, dtype=np.float64).reshape(-1)
        if array.shape[0] != self._values.shape[0]:
            raise MatrixViewError(
                "E_MATRIX_VIEW_INVALID",
                f"expected {self._values.shape[0]} values, got {array.shape[0]}",
            )
        if not np.isfinite(array).all():
            raise MatrixViewError("E_MATRIX_VIEW_INVALID", "matrix values must be finite")
        self._values = array.copy()
        self._tag = next_tag()

    def to_scipy(self) -> csr_matrix:
        """Return the full symmetric matrix; off-diagonal triplets are mirrored."""
        off_diagonal = self._rows != self._cols
        rows = np.concatenate([self._rows, self._cols[off_diagonal]])
        cols = np.concatenate([self._cols, self._rows[off_diagonal]])
        values = np.concatenate([self._values, self._values[off_diagonal]])
        return csr_matrix(
            coo_matrix((values, (rows, cols)), shape=(self._dim, self._dim)),
        )

    def matvec(self, x: object) -> ValueArray:
        return np.asarray(self.to_scipy() @ np.asarray(x, dtype=np.float64), dtype=np.float64)
