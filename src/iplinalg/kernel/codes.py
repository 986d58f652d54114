from __future__ import annotations

from dataclasses import dataclass
from typing import Final

import numpy as np
from numpy.typing import NDArray

# INFO array layout of an MA27-compatible kernel (0-based positions).
INFO_LENGTH: Final[int] = 20
INFO_IFLAG: Final[int] = 0
INFO_IERROR: Final[int] = 1
INFO_NRLNEC: Final[int] = 4
INFO_NIRNEC: Final[int] = 5
INFO_NCMPBR: Final[int] = 11
INFO_NCMPBI: Final[int] = 12
INFO_RANK: Final[int] = 13
INFO_NEGEVALS: Final[int] = 14

IFLAG_OK: Final[int] = 0
IFLAG_INDEX_OUT_OF_RANGE: Final[int] = 1
IFLAG_RANK_DEFICIENT: Final[int] = 3
IFLAG_N_OUT_OF_RANGE: Final[int] = -1
IFLAG_NZ_OUT_OF_RANGE: Final[int] = -2
IFLAG_LIW_TOO_SMALL: Final[int] = -3
IFLAG_LA_TOO_SMALL: Final[int] = -4
IFLAG_SINGULAR: Final[int] = -5

CNTL_LENGTH: Final[int] = 5
CNTL_PIVOT_TOLERANCE: Final[int] = 0
CNTL_ZERO_PIVOT: Final[int] = 2


class KernelContractError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


def new_info() -> NDArray[np.int64]:
    return np.zeros(INFO_LENGTH, dtype=np.int64)


@dataclass(frozen=True, slots=True)
class KernelInfo:
    """Named view of the fields the solver reads from a raw INFO array."""

    iflag: int
    ierror: int
    nrlnec: int
    nirnec: int
    ncmpbr: int
    ncmpbi: int
    rank: int
    negevals: int

    @classmethod
    def from_array(cls, info: object) -> KernelInfo:
        array = np.asarray(info)
        if array.ndim != 1 or array.shape[0] < INFO_LENGTH:
            raise KernelContractError(
                "E_KERNEL_INFO_INVALID",
                f"kernel INFO must be a rank-1 array of length >= {INFO_LENGTH}",
            )
        if not np.issubdtype(array.dtype, np.integer):
            raise KernelContractError("E_KERNEL_INFO_INVALID", "kernel INFO must be integer")
        return cls(
            iflag=int(array[INFO_IFLAG]),
            ierror=int(array[INFO_IERROR]),
            nrlnec=int(array[INFO_NRLNEC]),
            nirnec=int(array[INFO_NIRNEC]),
            ncmpbr=int(array[INFO_NCMPBR]),
            ncmpbi=int(array[INFO_NCMPBI]),
            rank=int(array[INFO_RANK]),
            negevals=int(array[INFO_NEGEVALS]),
        )
