from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray

from .matrix import MatrixViewError


@runtime_checkable
class VectorView(Protocol):
    @property
    def dim(self) -> int: ...

    def values(self) -> NDArray[np.float64]: ...

    def set_values(self, values: NDArray[np.float64]) -> None: ...


class DenseVector:
    __slots__ = ("_values",)

    def __init__(self, values: object) -> None:
        array = np.array(values, dtype=np.float64).reshape(-1)
        self._values = array

    @classmethod
    def zeros(cls, dim: int) -> DenseVector:
        if dim < 0:
            raise MatrixViewError("E_VECTOR_VIEW_INVALID", "dim must be >= 0")
        return cls(np.zeros(dim, dtype=np.float64))

    @property
    def dim(self) -> int:
        return int(self._values.shape[0])

    def values(self) -> NDArray[np.float64]:
        return self._values.copy()

    def set_values(self, values: NDArray[np.float64]) -> None:
        array = np.asarray(values, dtype=np.float64).reshape(-1)
        if array.shape[0] != self._values.shape[0]:
            raise MatrixViewError(
                "E_VECTOR_VIEW_INVALID",
                f"expected {self._values.shape[0]} values, got {array.shape[0]}",
            )
        self._values[:] = array
