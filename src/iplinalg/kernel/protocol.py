from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray

type IntBuffer = NDArray[np.int64]
type RealBuffer = NDArray[np.float64]


@runtime_checkable
class FactorizationKernel(Protocol):
    """Calling convention of an MA27-compatible symmetric indefinite kernel.

    Indices in ``irn``/``icn`` are 1-based. ``iw`` (LIW = ``len(iw)``),
    ``a`` (LA = ``len(a)``) and ``keep`` (IKEEP, length ``3 * n``) are
    caller-owned buffers that the kernel reads and writes in place. Each
    phase returns the raw INFO array described in ``iplinalg.kernel.codes``.
    """

    kernel_id: str

    def default_controls(self) -> RealBuffer: ...

    def analyse(
        self,
        n: int,
        irn: IntBuffer,
        icn: IntBuffer,
        iw: IntBuffer,
        keep: IntBuffer,
        cntl: RealBuffer,
    ) -> IntBuffer: ...

    def factorize(  # noqa: PLR0913
        self,
        n: int,
        irn: IntBuffer,
        icn: IntBuffer,
        a: RealBuffer,
        iw: IntBuffer,
        keep: IntBuffer,
        cntl: RealBuffer,
    ) -> IntBuffer: ...

    def solve(self, n: int, a: RealBuffer, iw: IntBuffer, rhs: RealBuffer) -> int: ...
