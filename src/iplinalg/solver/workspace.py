from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import DTypeLike, NDArray


@dataclass(frozen=True, slots=True)
class WorkspaceSizes:
    integer_workspace_len: int
    real_workspace_len: int
    index_array_len: int


@dataclass(frozen=True, slots=True)
class PendingGrowth:
    """Growth requested by one factorization and applied before the next one."""

    real: bool = False
    integer: bool = False

    @property
    def any(self) -> bool:
        return self.real or self.integer


NO_PENDING_GROWTH = PendingGrowth()


class GrowableBuffer:
    """Contiguous numpy buffer that only grows.

    Growing discards the previous contents; callers refill the buffer after
    every reallocation.
    """

    __slots__ = ("_dtype", "_data")

    def __init__(self, dtype: DTypeLike) -> None:
        self._dtype = np.dtype(dtype)
        self._data: NDArray[np.generic] = np.zeros(0, dtype=self._dtype)

    def __len__(self) -> int:
        return int(self._data.shape[0])

    @property
    def data(self) -> NDArray[np.generic]:
        return self._data

    def ensure_capacity(self, length: int) -> bool:
        if length < 0:
            raise ValueError("buffer length must be >= 0")
        if length <= self._data.shape[0]:
            return False
        self._data = np.zeros(length, dtype=self._dtype)
        return True

    def release(self) -> None:
        self._data = np.zeros(0, dtype=self._dtype)


def grown_length(current: int, base: int, factor: float) -> int:
    """Length for a buffer grown to ``factor * base``, never below ``current``."""
    return max(current, int(factor * float(base)))
