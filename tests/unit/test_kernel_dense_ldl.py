from __future__ import annotations

import numpy as np
import pytest

from iplinalg.kernel import DenseLdlKernel, KernelAdapter, KernelInfo
from iplinalg.kernel.codes import (
    CNTL_PIVOT_TOLERANCE,
    CNTL_ZERO_PIVOT,
    IFLAG_INDEX_OUT_OF_RANGE,
    IFLAG_LA_TOO_SMALL,
    IFLAG_LIW_TOO_SMALL,
    IFLAG_N_OUT_OF_RANGE,
    IFLAG_OK,
    IFLAG_RANK_DEFICIENT,
)
from iplinalg.kernel.dense_ldl import (
    analysis_integer_requirement,
    compression_count,
    factor_integer_requirement,
    factor_real_requirement,
    threshold_ldl,
)
from iplinalg.views import SymTripletMatrix

pytestmark = pytest.mark.unit

_DENSE = np.asarray(
    [
        [4.0, 1.0, 0.0, 2.0],
        [1.0, -3.0, 1.0, 0.0],
        [0.0, 1.0, 0.0, 1.0],
        [2.0, 0.0, 1.0, 5.0],
    ]
)


def _controls(tolerance: float = 1.0e-8, *, zero_pivot: float = 0.0) -> np.ndarray:
    cntl = DenseLdlKernel().default_controls()
    cntl[CNTL_PIVOT_TOLERANCE] = tolerance
    cntl[CNTL_ZERO_PIVOT] = zero_pivot
    return cntl


def _kernel_arrays(matrix: SymTripletMatrix) -> tuple[np.ndarray, np.ndarray]:
    rows, cols = matrix.fill_row_col()
    return rows + 1, cols + 1


def _analysed(matrix: SymTripletMatrix) -> tuple[np.ndarray, np.ndarray, np.ndarray, KernelInfo]:
    kernel = DenseLdlKernel()
    irn, icn = _kernel_arrays(matrix)
    n, nz = matrix.dim, matrix.nonzeros
    iw = np.zeros(analysis_integer_requirement(n, nz), dtype=np.int64)
    keep = np.zeros(3 * n, dtype=np.int64)
    info = KernelInfo.from_array(kernel.analyse(n, irn, icn, iw, keep, kernel.default_controls()))
    return irn, icn, keep, info


def _factorize_dense(
    dense: np.ndarray, cntl: np.ndarray
) -> tuple[KernelInfo, np.ndarray, np.ndarray]:
    matrix = SymTripletMatrix.from_dense(dense)
    irn, icn, keep, analysis = _analysed(matrix)
    a = np.zeros(analysis.nrlnec * 2, dtype=np.float64)
    matrix.fill_values(out=a)
    iw = np.zeros(analysis.nirnec * 2, dtype=np.int64)
    info = DenseLdlKernel().factorize(matrix.dim, irn, icn, a, iw, keep, cntl)
    return KernelInfo.from_array(info), a, iw


def test_requirement_helpers() -> None:
    assert analysis_integer_requirement(3, 5) == 20
    assert factor_integer_requirement(3, 5) == 12
    assert factor_real_requirement(3, 5) == 9
    assert factor_real_requirement(1, 5) == 5


@pytest.mark.parametrize(
    ("length", "required", "expected"),
    [(20, 10, 0), (15, 10, 2), (10, 10, 10), (0, 0, 0), (11, 10, 10)],
)
def test_compression_count(length: int, required: int, expected: int) -> None:
    assert compression_count(length, required) == expected


def test_analysis_reports_ordering_and_requirements() -> None:
    matrix = SymTripletMatrix.from_dense(_DENSE)
    _, _, keep, info = _analysed(matrix)
    n = matrix.dim

    assert info.iflag == IFLAG_OK
    assert info.nrlnec == factor_real_requirement(n, matrix.nonzeros)
    assert info.nirnec == factor_integer_requirement(n, matrix.nonzeros)
    order = keep[:n] - 1
    inverse = keep[n : 2 * n] - 1
    assert sorted(order.tolist()) == list(range(n))
    np.testing.assert_array_equal(order[inverse], np.arange(n))


def test_analysis_flags_short_integer_workspace_and_bad_dimension() -> None:
    kernel = DenseLdlKernel()
    matrix = SymTripletMatrix.from_dense(_DENSE)
    irn, icn = _kernel_arrays(matrix)
    keep = np.zeros(12, dtype=np.int64)

    info = KernelInfo.from_array(
        kernel.analyse(4, irn, icn, np.zeros(3, dtype=np.int64), keep, kernel.default_controls())
    )
    assert info.iflag == IFLAG_LIW_TOO_SMALL
    assert info.ierror == analysis_integer_requirement(4, matrix.nonzeros)

    info = KernelInfo.from_array(
        kernel.analyse(0, irn, icn, np.zeros(64, dtype=np.int64), keep, kernel.default_controls())
    )
    assert info.iflag == IFLAG_N_OUT_OF_RANGE


def test_analysis_warns_on_out_of_range_indices() -> None:
    kernel = DenseLdlKernel()
    irn = np.asarray([1, 2, 5], dtype=np.int64)
    icn = np.asarray([1, 2, 1], dtype=np.int64)
    iw = np.zeros(analysis_integer_requirement(2, 3), dtype=np.int64)
    keep = np.zeros(6, dtype=np.int64)

    info = KernelInfo.from_array(kernel.analyse(2, irn, icn, iw, keep, kernel.default_controls()))
    assert info.iflag == IFLAG_INDEX_OUT_OF_RANGE
    assert info.ierror == 1


def test_factorize_and_solve_match_dense_reference() -> None:
    kernel = DenseLdlKernel()
    matrix = SymTripletMatrix.from_dense(_DENSE)
    irn, icn, keep, analysis = _analysed(matrix)
    n = matrix.dim
    a = np.zeros(analysis.nrlnec * 2, dtype=np.float64)
    iw = np.zeros(analysis.nirnec * 2, dtype=np.int64)
    matrix.fill_values(out=a)

    info = KernelInfo.from_array(kernel.factorize(n, irn, icn, a, iw, keep, _controls()))
    assert info.iflag == IFLAG_OK
    assert info.rank == n
    assert info.negevals == int(np.count_nonzero(np.linalg.eigvalsh(_DENSE) < 0.0))
    assert info.ncmpbr == 0
    assert info.ncmpbi == 0

    rhs = np.asarray([1.0, -2.0, 0.5, 3.0])
    x = rhs.copy()
    assert kernel.solve(n, a, iw, x) == IFLAG_OK
    np.testing.assert_allclose(_DENSE @ x, rhs, atol=1.0e-12)


def test_factorize_reports_workspace_shortage() -> None:
    kernel = DenseLdlKernel()
    matrix = SymTripletMatrix.from_dense(_DENSE)
    irn, icn, keep, analysis = _analysed(matrix)
    n = matrix.dim

    info = KernelInfo.from_array(
        kernel.factorize(
            n,
            irn,
            icn,
            np.zeros(analysis.nrlnec, dtype=np.float64),
            np.zeros(2, dtype=np.int64),
            keep,
            kernel.default_controls(),
        )
    )
    assert info.iflag == IFLAG_LIW_TOO_SMALL
    assert info.ierror == analysis.nirnec

    info = KernelInfo.from_array(
        kernel.factorize(
            n,
            irn,
            icn,
            np.zeros(analysis.nrlnec - 1, dtype=np.float64),
            np.zeros(analysis.nirnec, dtype=np.int64),
            keep,
            kernel.default_controls(),
        )
    )
    assert info.iflag == IFLAG_LA_TOO_SMALL
    assert info.ierror == analysis.nrlnec


def test_factorize_counts_compressions_without_headroom() -> None:
    kernel = DenseLdlKernel()
    matrix = SymTripletMatrix.from_dense(_DENSE)
    irn, icn, keep, analysis = _analysed(matrix)
    a = np.zeros(analysis.nrlnec, dtype=np.float64)
    matrix.fill_values(out=a)

    info = KernelInfo.from_array(
        kernel.factorize(
            4,
            irn,
            icn,
            a,
            np.zeros(analysis.nirnec * 3, dtype=np.int64),
            keep,
            _controls(),
        )
    )
    assert info.iflag == IFLAG_OK
    assert info.ncmpbr == analysis.nrlnec
    assert info.ncmpbi == 0


def test_threshold_ldl_reconstructs_permuted_matrix() -> None:
    for threshold in (0.0, 1.0e-8, 0.1, 0.5, 0.9):
        unit_lower, block_diagonal, perm = threshold_ldl(_DENSE, threshold)
        np.testing.assert_allclose(np.diag(unit_lower), np.ones(4))
        np.testing.assert_allclose(np.triu(unit_lower, 1), np.zeros((4, 4)))
        np.testing.assert_allclose(
            unit_lower @ block_diagonal @ unit_lower.T,
            _DENSE[np.ix_(perm, perm)],
            atol=1.0e-12,
        )


def test_threshold_selects_two_by_two_pivot_for_small_diagonal() -> None:
    dense = np.asarray([[1.0e-10, 1.0], [1.0, 1.0e-10]])

    _, accepted, _ = threshold_ldl(dense, 0.0)
    assert accepted[1, 0] == 0.0
    assert accepted[0, 0] == 1.0e-10

    _, blocked, _ = threshold_ldl(dense, 0.1)
    assert blocked[1, 0] == 1.0
    np.testing.assert_allclose(np.linalg.eigvalsh(blocked), [-1.0, 1.0], atol=1.0e-9)


@pytest.mark.parametrize("tolerance", [0.0, 1.0e-12, 1.0e-8, 1.0e-4, 0.1, 0.5])
def test_pivot_threshold_never_reports_rank_deficiency(tolerance: float) -> None:
    dense = np.asarray([[1.0e-10, 1.0], [1.0, 1.0e-10]])
    info, a, iw = _factorize_dense(dense, _controls(tolerance))

    assert info.iflag == IFLAG_OK
    assert info.rank == 2
    assert info.negevals == 1
    if tolerance >= 1.0e-8:
        rhs = np.asarray([1.0, 2.0])
        x = rhs.copy()
        assert DenseLdlKernel().solve(2, a, iw, x) == IFLAG_OK
        np.testing.assert_allclose(dense @ x, rhs, atol=1.0e-12)


@pytest.mark.parametrize("tolerance", [1.0e-8, 1.0e-4, 0.5])
def test_wide_pivot_range_is_not_singular(tolerance: float) -> None:
    info, _, _ = _factorize_dense(np.diag([1.0e9, 1.0]), _controls(tolerance))
    assert info.iflag == IFLAG_OK
    assert info.rank == 2
    assert info.negevals == 0


@pytest.mark.parametrize("tolerance", [0.0, 1.0e-8, 0.5])
def test_exactly_singular_matrix_is_rank_deficient(tolerance: float) -> None:
    info, _, _ = _factorize_dense(np.ones((2, 2)), _controls(tolerance))
    assert info.iflag == IFLAG_RANK_DEFICIENT
    assert info.rank == 1
    assert info.ierror == 1
    assert info.negevals == 0


def test_zero_pivot_control_is_separate_from_threshold() -> None:
    dense = np.diag([1.0, 1.0e-6, -2.0])
    for tolerance in (1.0e-8, 1.0e-4, 0.5):
        info, _, _ = _factorize_dense(dense, _controls(tolerance))
        assert info.iflag == IFLAG_OK
        assert info.rank == 3
        assert info.negevals == 1

    flagged, _, _ = _factorize_dense(dense, _controls(1.0e-8, zero_pivot=1.0e-3))
    assert flagged.iflag == IFLAG_RANK_DEFICIENT
    assert flagged.rank == 2
    assert flagged.ierror == 2
    assert flagged.negevals == 1


def test_adapter_drives_reference_kernel_end_to_end() -> None:
    adapter = KernelAdapter()
    assert adapter.kernel_id == "dense_ldl_bunch_kaufman"
    adapter.set_pivot_tolerance(1.0e-8)
    assert adapter.pivot_tolerance == 1.0e-8

    matrix = SymTripletMatrix.from_dense(_DENSE)
    irn, icn = adapter.kernel_indices(matrix)
    assert not irn.flags.writeable
    assert int(irn.min()) == 1

    n, nz = matrix.dim, matrix.nonzeros
    iw = np.zeros(analysis_integer_requirement(n, nz), dtype=np.int64)
    keep = np.zeros(3 * n, dtype=np.int64)
    analysis = adapter.analyse_structure(n, irn, icn, iw, keep)
    assert analysis.status == "ok"

    a = np.zeros(analysis.recommended_real_len * 2, dtype=np.float64)
    adapter.fill_values(matrix, a)
    result = adapter.factorize(n, irn, icn, a, iw, keep)
    assert result.status == "success"
    assert result.required_len is None

    rhs = np.asarray([1.0, 2.0, 3.0, 4.0])
    solved = adapter.backsolve(n, rhs, a, iw)
    assert solved.x is not None
    assert solved.iflag == IFLAG_OK
    np.testing.assert_allclose(_DENSE @ solved.x, rhs, atol=1.0e-12)
    np.testing.assert_array_equal(rhs, [1.0, 2.0, 3.0, 4.0])
