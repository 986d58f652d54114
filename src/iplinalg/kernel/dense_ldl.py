from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import solve, solve_triangular  # type: ignore[import-untyped]
from scipy.sparse import coo_matrix  # type: ignore[import-untyped]
from scipy.sparse.csgraph import reverse_cuthill_mckee  # type: ignore[import-untyped]

from .codes import (
    CNTL_LENGTH,
    CNTL_PIVOT_TOLERANCE,
    CNTL_ZERO_PIVOT,
    IFLAG_INDEX_OUT_OF_RANGE,
    IFLAG_LA_TOO_SMALL,
    IFLAG_LIW_TOO_SMALL,
    IFLAG_N_OUT_OF_RANGE,
    IFLAG_NZ_OUT_OF_RANGE,
    IFLAG_OK,
    IFLAG_RANK_DEFICIENT,
    IFLAG_SINGULAR,
    INFO_IERROR,
    INFO_IFLAG,
    INFO_NCMPBI,
    INFO_NCMPBR,
    INFO_NEGEVALS,
    INFO_NIRNEC,
    INFO_NRLNEC,
    INFO_RANK,
    new_info,
)
from .protocol import IntBuffer, RealBuffer

_DEFAULT_PIVOT_TOLERANCE = 0.1
_DEFAULT_ZERO_PIVOT = 0.0
# Thresholds above this are clipped, as in MA27.
_MAX_PIVOT_THRESHOLD = 0.5

type _Dense = NDArray[np.float64]


def analysis_integer_requirement(n: int, nz: int) -> int:
    return 2 * nz + 3 * n + 1


def factor_integer_requirement(n: int, nz: int) -> int:
    return nz + 2 * n + 1


def factor_real_requirement(n: int, nz: int) -> int:
    return max(nz, (n * (n + 1)) // 2 + n)


def compression_count(length: int, required: int) -> int:
    """Number of compressions a kernel with ``length`` words would need.

    No compression happens while the free space after the factors is at
    least as large as the factors themselves.
    """
    headroom = length - required
    if required <= 0 or headroom >= required:
        return 0
    return math.ceil(required / max(headroom, 1))


@dataclass(frozen=True, slots=True)
class DenseLdlKernel:
    """Reference MA27-compatible kernel doing dense threshold LDL^T.

    Analysis computes a reverse Cuthill-McKee ordering and stores it in IKEEP.
    Factorization stores the packed unit lower factor (diagonal replaced by the
    block-diagonal D) and the D sub-diagonal in ``a``; the row permutation and
    the ordering in ``iw``.

    ``cntl[0]`` is the threshold ``u`` of the pivot choice only: a 1x1 pivot
    is accepted when it is at least ``u`` times the largest entry below it,
    so a larger ``u`` gives a more stable factorization. ``cntl[2]`` is the
    absolute magnitude at or below which a D eigenvalue counts as a zero
    pivot; it is never smaller than ``n * eps * max|A|``.
    """

    kernel_id: str = "dense_ldl_bunch_kaufman"

    def default_controls(self) -> RealBuffer:
        cntl = np.zeros(CNTL_LENGTH, dtype=np.float64)
        cntl[CNTL_PIVOT_TOLERANCE] = _DEFAULT_PIVOT_TOLERANCE
        cntl[CNTL_ZERO_PIVOT] = _DEFAULT_ZERO_PIVOT
        return cntl

    def analyse(
        self,
        n: int,
        irn: IntBuffer,
        icn: IntBuffer,
        iw: IntBuffer,
        keep: IntBuffer,
        cntl: RealBuffer,
    ) -> IntBuffer:
        del cntl
        info = new_info()
        nz = int(irn.shape[0])
        if n < 1:
            info[INFO_IFLAG] = IFLAG_N_OUT_OF_RANGE
            info[INFO_IERROR] = n
            return info
        if icn.shape[0] != nz:
            info[INFO_IFLAG] = IFLAG_NZ_OUT_OF_RANGE
            info[INFO_IERROR] = nz
            return info
        required_iw = analysis_integer_requirement(n, nz)
        if iw.shape[0] < required_iw:
            info[INFO_IFLAG] = IFLAG_LIW_TOO_SMALL
            info[INFO_IERROR] = required_iw
            return info
        if keep.shape[0] < 3 * n:
            info[INFO_IFLAG] = IFLAG_N_OUT_OF_RANGE
            info[INFO_IERROR] = 3 * n
            return info

        rows, cols, valid = _valid_entries(n, irn, icn)
        graph = coo_matrix(
            (np.ones(rows.shape[0], dtype=np.float64), (rows, cols)),
            shape=(n, n),
        ).tocsr()
        graph = (graph + graph.T).tocsr()
        order = np.asarray(reverse_cuthill_mckee(graph, symmetric_mode=True), dtype=np.int64)
        inverse = np.empty(n, dtype=np.int64)
        inverse[order] = np.arange(n, dtype=np.int64)
        keep[:n] = order + 1
        keep[n : 2 * n] = inverse + 1
        keep[2 * n : 3 * n] = 0
        iw[:required_iw] = 0

        invalid_count = int(nz - int(np.count_nonzero(valid)))
        if invalid_count:
            info[INFO_IFLAG] = IFLAG_INDEX_OUT_OF_RANGE
            info[INFO_IERROR] = invalid_count
        info[INFO_NRLNEC] = factor_real_requirement(n, nz)
        info[INFO_NIRNEC] = factor_integer_requirement(n, nz)
        return info

    def factorize(  # noqa: PLR0913
        self,
        n: int,
        irn: IntBuffer,
        icn: IntBuffer,
        a: RealBuffer,
        iw: IntBuffer,
        keep: IntBuffer,
        cntl: RealBuffer,
    ) -> IntBuffer:
        info = new_info()
        nz = int(irn.shape[0])
        if n < 1:
            info[INFO_IFLAG] = IFLAG_N_OUT_OF_RANGE
            info[INFO_IERROR] = n
            return info
        required_iw = factor_integer_requirement(n, nz)
        required_a = factor_real_requirement(n, nz)
        if iw.shape[0] < required_iw:
            info[INFO_IFLAG] = IFLAG_LIW_TOO_SMALL
            info[INFO_IERROR] = required_iw
            return info
        if a.shape[0] < required_a:
            info[INFO_IFLAG] = IFLAG_LA_TOO_SMALL
            info[INFO_IERROR] = required_a
            return info

        rows, cols, valid = _valid_entries(n, irn, icn)
        lower = np.zeros((n, n), dtype=np.float64)
        np.add.at(lower, (np.maximum(rows, cols), np.minimum(rows, cols)), a[:nz][valid])
        full = lower + lower.T - np.diag(np.diag(lower))
        order = keep[:n] - 1
        permuted = full[np.ix_(order, order)]

        try:
            unit_lower, block_diagonal, row_perm = threshold_ldl(
                permuted, float(cntl[CNTL_PIVOT_TOLERANCE])
            )
        except np.linalg.LinAlgError:
            info[INFO_IFLAG] = IFLAG_SINGULAR
            return info
        if not (np.isfinite(unit_lower).all() and np.isfinite(block_diagonal).all()):
            info[INFO_IFLAG] = IFLAG_SINGULAR
            return info

        pivots = np.linalg.eigvalsh(block_diagonal)
        scale = float(np.max(np.abs(permuted)))
        cutoff = max(float(cntl[CNTL_ZERO_PIVOT]), n * np.finfo(np.float64).eps * scale)
        zero_pivots = np.abs(pivots) <= cutoff
        rank = int(n - int(np.count_nonzero(zero_pivots)))
        negevals = int(np.count_nonzero((pivots < 0.0) & ~zero_pivots))

        packed = unit_lower.copy()
        np.fill_diagonal(packed, np.diag(block_diagonal))
        tri_rows, tri_cols = np.tril_indices(n)
        packed_len = tri_rows.shape[0]
        a[:packed_len] = packed[tri_rows, tri_cols]
        a[packed_len : packed_len + n - 1] = np.diag(block_diagonal, -1)
        iw[0] = n
        iw[1 : n + 1] = np.asarray(row_perm, dtype=np.int64) + 1
        iw[n + 1 : 2 * n + 1] = keep[:n]

        info[INFO_NRLNEC] = required_a
        info[INFO_NIRNEC] = required_iw
        info[INFO_NCMPBR] = compression_count(int(a.shape[0]), required_a)
        info[INFO_NCMPBI] = compression_count(int(iw.shape[0]), required_iw)
        info[INFO_RANK] = rank
        info[INFO_NEGEVALS] = negevals
        if rank < n:
            info[INFO_IFLAG] = IFLAG_RANK_DEFICIENT
            info[INFO_IERROR] = rank
        else:
            info[INFO_IFLAG] = IFLAG_OK
        return info

    def solve(self, n: int, a: RealBuffer, iw: IntBuffer, rhs: RealBuffer) -> int:
        if n < 1 or iw.shape[0] < 2 * n + 1 or int(iw[0]) != n:
            return IFLAG_N_OUT_OF_RANGE
        tri_rows, tri_cols = np.tril_indices(n)
        packed_len = tri_rows.shape[0]
        if a.shape[0] < packed_len + n:
            return IFLAG_LA_TOO_SMALL

        packed = np.zeros((n, n), dtype=np.float64)
        packed[tri_rows, tri_cols] = a[:packed_len]
        diagonal = np.diag(packed).copy()
        unit_lower = packed
        np.fill_diagonal(unit_lower, 1.0)
        sub_diagonal = a[packed_len : packed_len + n - 1]
        block_diagonal = (
            np.diag(diagonal) + np.diag(sub_diagonal, -1) + np.diag(sub_diagonal, 1)
        )
        row_perm = iw[1 : n + 1] - 1
        order = iw[n + 1 : 2 * n + 1] - 1

        permuted_rhs = rhs[order]
        stage = solve_triangular(unit_lower, permuted_rhs[row_perm], lower=True, unit_diagonal=True)
        stage = solve(block_diagonal, stage, assume_a="sym")
        stage = solve_triangular(unit_lower.T, stage, lower=False, unit_diagonal=True)
        solution = np.empty(n, dtype=np.float64)
        solution[row_perm] = stage
        if not np.isfinite(solution).all():
            return IFLAG_SINGULAR
        rhs[order] = solution
        return IFLAG_OK


def threshold_ldl(matrix: _Dense, threshold: float) -> tuple[_Dense, _Dense, NDArray[np.int64]]:
    """Symmetric indefinite LDL^T with 1x1 / 2x2 threshold pivoting.

    Returns ``(unit_lower, block_diagonal, perm)`` such that
    ``matrix[np.ix_(perm, perm)] == unit_lower @ block_diagonal @ unit_lower.T``.
    ``threshold`` is clipped to ``[0, 0.5]``; zero accepts any nonzero
    diagonal pivot.
    """
    alpha = min(max(threshold, 0.0), _MAX_PIVOT_THRESHOLD)
    work = np.array(matrix, dtype=np.float64)
    n = work.shape[0]
    unit_lower = np.eye(n, dtype=np.float64)
    block_diagonal = np.zeros((n, n), dtype=np.float64)
    perm = np.arange(n, dtype=np.int64)

    def swap(i: int, j: int, k: int) -> None:
        if i == j:
            return
        work[[i, j], :] = work[[j, i], :]
        work[:, [i, j]] = work[:, [j, i]]
        perm[[i, j]] = perm[[j, i]]
        unit_lower[[i, j], :k] = unit_lower[[j, i], :k]

    k = 0
    while k < n:
        below = np.abs(work[k + 1 :, k])
        lam = float(below.max()) if below.size else 0.0
        pivot = float(work[k, k])
        size = 1
        if lam > 0.0 and not (pivot != 0.0 and abs(pivot) >= alpha * lam):
            r = k + 1 + int(np.argmax(below))
            others = np.abs(work[k:, r])
            others[r - k] = 0.0
            sigma = float(others.max())
            diagonal_r = float(work[r, r])
            if pivot == 0.0 or abs(pivot) * sigma < alpha * lam * lam:
                if diagonal_r != 0.0 and abs(diagonal_r) >= alpha * sigma:
                    swap(k, r, k)
                else:
                    swap(k + 1, r, k)
                    size = 2

        if size == 1:
            d = float(work[k, k])
            block_diagonal[k, k] = d
            if d != 0.0:
                column = work[k + 1 :, k].copy()
                multipliers = column / d
                work[k + 1 :, k + 1 :] -= np.outer(multipliers, column)
                unit_lower[k + 1 :, k] = multipliers
        else:
            block = work[k : k + 2, k : k + 2].copy()
            coupling = work[k + 2 :, k : k + 2].copy()
            block_diagonal[k : k + 2, k : k + 2] = block
            if coupling.size:
                multipliers = np.linalg.solve(block, coupling.T).T
                work[k + 2 :, k + 2 :] -= multipliers @ coupling.T
                unit_lower[k + 2 :, k : k + 2] = multipliers
        k += size

    return unit_lower, block_diagonal, perm


def _valid_entries(
    n: int,
    irn: IntBuffer,
    icn: IntBuffer,
) -> tuple[NDArray[np.int64], NDArray[np.int64], NDArray[np.bool_]]:
    valid = (irn >= 1) & (irn <= n) & (icn >= 1) & (icn <= n)
    return (
        np.asarray(irn[valid] - 1, dtype=np.int64),
        np.asarray(icn[valid] - 1, dtype=np.int64),
        valid,
    )
