from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

import numpy as np
from numpy.typing import NDArray

from iplinalg.views import IndexArray, SymMatrixView

from .codes import (
    CNTL_PIVOT_TOLERANCE,
    IFLAG_LA_TOO_SMALL,
    IFLAG_LIW_TOO_SMALL,
    IFLAG_OK,
    IFLAG_RANK_DEFICIENT,
    IFLAG_SINGULAR,
    KernelContractError,
    KernelInfo,
)
from .dense_ldl import DenseLdlKernel
from .protocol import FactorizationKernel, IntBuffer, RealBuffer


class AnalysisStatus(StrEnum):
    OK = "ok"
    STRUCTURAL_ERROR = "structural_error"


class FactorizationStatus(StrEnum):
    SUCCESS = "success"
    INTEGER_WORKSPACE_TOO_SMALL = "integer_workspace_too_small"
    REAL_WORKSPACE_TOO_SMALL = "real_workspace_too_small"
    SINGULAR = "singular"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    status: AnalysisStatus
    recommended_real_len: int
    recommended_integer_len: int
    iflag: int
    ierror: int


@dataclass(frozen=True, slots=True)
class FactorizationResult:
    status: FactorizationStatus
    required_len: int | None
    neg_eigenvalues: int
    rank: int
    real_compressions: int
    integer_compressions: int
    iflag: int
    ierror: int


@dataclass(frozen=True, slots=True)
class BacksolveResult:
    x: NDArray[np.float64] | None
    iflag: int


def classify_analysis(info: object) -> AnalysisResult:
    fields = KernelInfo.from_array(info)
    status = AnalysisStatus.OK if fields.iflag == IFLAG_OK else AnalysisStatus.STRUCTURAL_ERROR
    return AnalysisResult(
        status=status,
        recommended_real_len=fields.nrlnec,
        recommended_integer_len=fields.nirnec,
        iflag=fields.iflag,
        ierror=fields.ierror,
    )


def classify_factorization(info: object) -> FactorizationResult:
    fields = KernelInfo.from_array(info)
    required_len: int | None = None
    if fields.iflag == IFLAG_LIW_TOO_SMALL:
        status = FactorizationStatus.INTEGER_WORKSPACE_TOO_SMALL
        required_len = fields.ierror
    elif fields.iflag == IFLAG_LA_TOO_SMALL:
        status = FactorizationStatus.REAL_WORKSPACE_TOO_SMALL
        required_len = fields.ierror
    elif fields.iflag in (IFLAG_SINGULAR, IFLAG_RANK_DEFICIENT):
        status = FactorizationStatus.SINGULAR
    elif fields.iflag != IFLAG_OK:
        status = FactorizationStatus.ERROR
    else:
        status = FactorizationStatus.SUCCESS
    if required_len is not None and required_len <= 0:
        raise KernelContractError(
            "E_KERNEL_INFO_INVALID",
            f"kernel reported insufficient workspace with non-positive requirement {required_len}",
        )
    return FactorizationResult(
        status=status,
        required_len=required_len,
        neg_eigenvalues=fields.negevals,
        rank=fields.rank,
        real_compressions=fields.ncmpbr,
        integer_compressions=fields.ncmpbi,
        iflag=fields.iflag,
        ierror=fields.ierror,
    )


class KernelAdapter:
    """Marshals matrix views and engine-owned buffers into kernel calls.

    Buffers are borrowed for one call; the adapter keeps only the control
    array (pivot tolerance) between calls.
    """

    def __init__(self, kernel: FactorizationKernel | None = None) -> None:
        self._kernel: FactorizationKernel = kernel if kernel is not None else DenseLdlKernel()
        self._cntl = np.asarray(self._kernel.default_controls(), dtype=np.float64).copy()

    @property
    def kernel_id(self) -> str:
        return self._kernel.kernel_id

    @property
    def pivot_tolerance(self) -> float:
        return float(self._cntl[CNTL_PIVOT_TOLERANCE])

    def set_pivot_tolerance(self, value: float) -> None:
        self._cntl[CNTL_PIVOT_TOLERANCE] = value

    def kernel_indices(self, matrix: SymMatrixView) -> tuple[IntBuffer, IntBuffer]:
        rows, cols = matrix.fill_row_col()
        irn = _one_based(rows)
        icn = _one_based(cols)
        irn.setflags(write=False)
        icn.setflags(write=False)
        return irn, icn

    def analyse_structure(
        self,
        dim: int,
        irn: IntBuffer,
        icn: IntBuffer,
        iw: IntBuffer,
        keep: IntBuffer,
    ) -> AnalysisResult:
        info = self._kernel.analyse(dim, irn, icn, iw, keep, self._cntl)
        return classify_analysis(info)

    def fill_values(self, matrix: SymMatrixView, a: RealBuffer) -> None:
        matrix.fill_values(out=a)

    def factorize(  # noqa: PLR0913
        self,
        dim: int,
        irn: IntBuffer,
        icn: IntBuffer,
        a: RealBuffer,
        iw: IntBuffer,
        keep: IntBuffer,
    ) -> FactorizationResult:
        info = self._kernel.factorize(dim, irn, icn, a, iw, keep, self._cntl)
        return classify_factorization(info)

    def backsolve(
        self,
        dim: int,
        rhs: NDArray[np.float64],
        a: RealBuffer,
        iw: IntBuffer,
    ) -> BacksolveResult:
        scratch = np.array(rhs, dtype=np.float64).reshape(-1)
        if scratch.shape[0] != dim:
            raise KernelContractError(
                "E_KERNEL_RHS_INVALID",
                f"right-hand side has length {scratch.shape[0]}, expected {dim}",
            )
        try:
            iflag = int(self._kernel.solve(dim, a, iw, scratch))
        except (np.linalg.LinAlgError, ValueError):
            return BacksolveResult(x=None, iflag=IFLAG_SINGULAR)
        if iflag != IFLAG_OK:
            return BacksolveResult(x=None, iflag=iflag)
        return BacksolveResult(x=scratch, iflag=iflag)


def _one_based(indices: IndexArray) -> IntBuffer:
    return np.asarray(indices, dtype=np.int64).reshape(-1) + 1
