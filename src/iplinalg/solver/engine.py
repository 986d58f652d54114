from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from iplinalg.diagnostics import DiagnosticEvent, build_diagnostic_event
from iplinalg.kernel import (
    AnalysisStatus,
    FactorizationKernel,
    FactorizationResult,
    FactorizationStatus,
    KernelAdapter,
)
from iplinalg.views import SymMatrixView, VectorView

from .config import LinearSolverOptions, load_linear_solver_options
from .interface import SolverUsageError
from .types import FactorizationAttemptRecord, SolveOutcome, SolverState
from .workspace import (
    NO_PENDING_GROWTH,
    GrowableBuffer,
    PendingGrowth,
    WorkspaceSizes,
    grown_length,
)

_USAGE_INVALID = "E_LIN_USAGE_INVALID"


class AdaptiveSolveEngine:
    """Sparse symmetric indefinite solver driving an MA27-compatible kernel.

    The engine captures the sparsity structure on the first call, runs the
    symbolic analysis once per structure and the numeric factorization once
    per distinct matrix values (detected through the matrix change tag). The
    numeric phase is retried with larger workspaces whenever the kernel
    reports that one of them is too small; those retries are invisible to the
    caller on eventual success. Singular matrices, wrong inertia and other
    kernel failures are returned as ``SolveOutcome`` values.

    ``attempt_trace`` and ``diagnostics`` describe the most recent solve call
    only, so an engine kept for a whole optimization run holds a bounded
    record. Engine-level events without a solve index (pivot tolerance
    increases, bounded by the tolerance schedule) are kept across calls.

    An engine is not reentrant: calls against one instance must be strictly
    sequential.
    """

    def __init__(
        self,
        options: LinearSolverOptions | None = None,
        *,
        kernel: FactorizationKernel | None = None,
        solver_id: str = "ma27",
        provides_inertia: bool = True,
    ) -> None:
        if not solver_id:
            raise SolverUsageError(_USAGE_INVALID, "solver_id must be non-empty")
        self._options = options if options is not None else load_linear_solver_options()
        self._adapter = KernelAdapter(kernel)
        self._solver_id = solver_id
        self._provides_inertia = provides_inertia
        self._pivot_tolerance = self._options.pivot_tolerance
        self._adapter.set_pivot_tolerance(self._pivot_tolerance)

        self._state = SolverState.UNINITIALIZED
        self._matrix_tag = 0
        self._dim = 0
        self._nonzeros = 0
        self._irn = np.zeros(0, dtype=np.int64)
        self._icn = np.zeros(0, dtype=np.int64)
        self._integer_ws = GrowableBuffer(np.int64)
        self._real_ws = GrowableBuffer(np.float64)
        self._keep = GrowableBuffer(np.int64)
        self._pending_growth = NO_PENDING_GROWTH
        self._neg_eigenvalues: int | None = None

        self._solve_count = 0
        self._factorization_count = 0
        self._diagnostics: list[DiagnosticEvent] = []
        self._attempt_trace: list[FactorizationAttemptRecord] = []

    @property
    def solver_id(self) -> str:
        return self._solver_id

    @property
    def kernel_id(self) -> str:
        return self._adapter.kernel_id

    @property
    def options(self) -> LinearSolverOptions:
        return self._options

    @property
    def provides_inertia(self) -> bool:
        return self._provides_inertia

    @property
    def state(self) -> SolverState:
        return self._state

    @property
    def pivot_tolerance(self) -> float:
        return self._pivot_tolerance

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def nonzeros(self) -> int:
        return self._nonzeros

    @property
    def workspace_sizes(self) -> WorkspaceSizes:
        return WorkspaceSizes(
            integer_workspace_len=len(self._integer_ws),
            real_workspace_len=len(self._real_ws),
            index_array_len=len(self._keep),
        )

    @property
    def pending_growth(self) -> PendingGrowth:
        return self._pending_growth

    @property
    def factorization_count(self) -> int:
        return self._factorization_count

    @property
    def solve_count(self) -> int:
        return self._solve_count

    @property
    def diagnostics(self) -> tuple[DiagnosticEvent, ...]:
        return tuple(self._diagnostics)

    @property
    def attempt_trace(self) -> tuple[FactorizationAttemptRecord, ...]:
        return tuple(self._attempt_trace)

    def solve(
        self,
        matrix: SymMatrixView,
        rhs: VectorView,
        sol: VectorView,
        *,
        check_inertia: bool = False,
        expected_neg_eigenvalues: int = 0,
    ) -> SolveOutcome:
        return self.multi_solve(
            matrix,
            [rhs],
            [sol],
            check_inertia=check_inertia,
            expected_neg_eigenvalues=expected_neg_eigenvalues,
        )

    def multi_solve(
        self,
        matrix: SymMatrixView,
        rhs_list: Sequence[VectorView],
        sol_list: Sequence[VectorView],
        *,
        check_inertia: bool = False,
        expected_neg_eigenvalues: int = 0,
    ) -> SolveOutcome:
        if len(rhs_list) != len(sol_list):
            raise SolverUsageError(
                _USAGE_INVALID,
                f"got {len(rhs_list)} right-hand sides but {len(sol_list)} solution vectors",
            )
        if check_inertia and not self._provides_inertia:
            raise SolverUsageError(
                _USAGE_INVALID, "inertia check requested from a solver without inertia"
            )

        if self._state is not SolverState.UNINITIALIZED and (
            matrix.dim != self._dim or matrix.nonzeros != self._nonzeros
        ):
            raise SolverUsageError(
                _USAGE_INVALID,
                "matrix structure differs from the captured one; call reset_structure() first",
            )
        self._validate_vectors(matrix.dim, rhs_list, sol_list)

        solve_index = self._solve_count
        self._solve_count += 1
        self._begin_call()

        if self._state is SolverState.UNINITIALIZED:
            self._initialize_structure(matrix)

        if self._state is SolverState.STRUCTURE_KNOWN:
            outcome = self._symbolic_factorization(solve_index)
            if outcome is not SolveOutcome.SUCCESS:
                return outcome

        if matrix.has_changed(self._matrix_tag):
            self._matrix_tag = matrix.tag
            if self._state is SolverState.FACTORIZED:
                self._state = SolverState.FACTORIZATION_STALE

        if self._state is not SolverState.FACTORIZED:
            outcome = self._factorization(matrix, solve_index)
            if outcome is not SolveOutcome.SUCCESS:
                return outcome

        if check_inertia and self._neg_eigenvalues != expected_neg_eigenvalues:
            self._emit(
                code="E_LIN_WRONG_INERTIA",
                message=(
                    f"factorization has {self._neg_eigenvalues} negative eigenvalues, "
                    f"expected {expected_neg_eigenvalues}"
                ),
                solve_index=solve_index,
                witness={
                    "expected_neg_eigenvalues": expected_neg_eigenvalues,
                    "neg_eigenvalues": self._neg_eigenvalues,
                },
            )
            return SolveOutcome.WRONG_INERTIA

        return self._backsolve(rhs_list, sol_list, solve_index)

    def number_of_neg_eigenvalues(self) -> int:
        if not self._provides_inertia:
            raise SolverUsageError(_USAGE_INVALID, "this solver does not provide inertia")
        if self._state is not SolverState.FACTORIZED or self._neg_eigenvalues is None:
            raise SolverUsageError(
                _USAGE_INVALID,
                f"inertia requires a current factorization; solver state is '{self._state}'",
            )
        return self._neg_eigenvalues

    def increase_quality(self) -> bool:
        maximum = self._options.pivot_tolerance_max
        if self._pivot_tolerance >= maximum:
            return False
        previous = self._pivot_tolerance
        self._pivot_tolerance = min(maximum, previous**self._options.quality_exponent)
        self._adapter.set_pivot_tolerance(self._pivot_tolerance)
        if self._state is SolverState.FACTORIZED:
            self._state = SolverState.FACTORIZATION_STALE
        self._emit(
            code="W_LIN_QUALITY_INCREASED",
            message=f"pivot tolerance raised from {previous:.3e} to {self._pivot_tolerance:.3e}",
            witness={"from": previous, "to": self._pivot_tolerance},
        )
        return True

    def reset_structure(self) -> None:
        self._state = SolverState.UNINITIALIZED
        self._matrix_tag = 0
        self._dim = 0
        self._nonzeros = 0
        self._irn = np.zeros(0, dtype=np.int64)
        self._icn = np.zeros(0, dtype=np.int64)
        self._integer_ws.release()
        self._real_ws.release()
        self._keep.release()
        self._pending_growth = NO_PENDING_GROWTH
        self._neg_eigenvalues = None

    def _initialize_structure(self, matrix: SymMatrixView) -> None:
        self.reset_structure()
        self._dim = int(matrix.dim)
        self._nonzeros = int(matrix.nonzeros)
        self._irn, self._icn = self._adapter.kernel_indices(matrix)
        self._state = SolverState.STRUCTURE_KNOWN

    def _symbolic_factorization(self, solve_index: int) -> SolveOutcome:
        analysis_len = int(
            self._options.analysis_integer_overestimate
            * float(2 * self._nonzeros + 3 * self._dim + 1)
        )
        self._integer_ws.ensure_capacity(analysis_len)
        self._keep.ensure_capacity(3 * self._dim)

        result = self._adapter.analyse_structure(
            self._dim,
            self._irn,
            self._icn,
            self._integer_ws.data,
            self._keep.data,
        )
        if result.status is not AnalysisStatus.OK:
            self._emit(
                code="E_LIN_STRUCTURE_INVALID",
                message=f"symbolic analysis rejected the structure (iflag={result.iflag})",
                solve_index=solve_index,
                witness={
                    "dim": self._dim,
                    "ierror": result.ierror,
                    "iflag": result.iflag,
                    "nonzeros": self._nonzeros,
                },
            )
            return SolveOutcome.FATAL_ERROR

        self._integer_ws.ensure_capacity(
            int(self._options.integer_workspace_init_factor * float(result.recommended_integer_len))
        )
        self._real_ws.ensure_capacity(
            max(
                self._nonzeros,
                int(self._options.real_workspace_init_factor * float(result.recommended_real_len)),
            )
        )
        self._state = SolverState.SYMBOLIC_DONE
        return SolveOutcome.SUCCESS

    def _factorization(self, matrix: SymMatrixView, solve_index: int) -> SolveOutcome:
        self._apply_pending_growth(solve_index)

        attempt_index = 0
        while True:
            self._adapter.fill_values(matrix, self._real_ws.data)
            result = self._adapter.factorize(
                self._dim,
                self._irn,
                self._icn,
                self._real_ws.data,
                self._integer_ws.data,
                self._keep.data,
            )
            self._factorization_count += 1
            self._record_attempt(result, solve_index, attempt_index)
            if result.status not in (
                FactorizationStatus.INTEGER_WORKSPACE_TOO_SMALL,
                FactorizationStatus.REAL_WORKSPACE_TOO_SMALL,
            ):
                break
            if not self._grow_after_shortage(result, solve_index, attempt_index):
                return SolveOutcome.FATAL_ERROR
            attempt_index += 1

        if result.status is FactorizationStatus.SINGULAR:
            self._state = SolverState.FACTORIZATION_STALE
            self._emit(
                code="E_LIN_SINGULAR",
                message=f"matrix is singular (rank {result.rank} of {self._dim})",
                solve_index=solve_index,
                attempt_index=attempt_index,
                witness={"iflag": result.iflag, "rank": result.rank},
            )
            return SolveOutcome.SINGULAR
        if result.status is not FactorizationStatus.SUCCESS:
            self._state = SolverState.FACTORIZATION_STALE
            self._emit(
                code="E_LIN_KERNEL_FAILED",
                message=f"numeric factorization failed (iflag={result.iflag})",
                solve_index=solve_index,
                attempt_index=attempt_index,
                witness={"ierror": result.ierror, "iflag": result.iflag},
            )
            return SolveOutcome.FATAL_ERROR

        self._neg_eigenvalues = result.neg_eigenvalues
        self._schedule_growth(result, solve_index, attempt_index)
        self._state = SolverState.FACTORIZED
        return SolveOutcome.SUCCESS

    def _grow_after_shortage(
        self,
        result: FactorizationResult,
        solve_index: int,
        attempt_index: int,
    ) -> bool:
        factor = self._options.workspace_growth_factor
        old_integer = len(self._integer_ws)
        old_real = len(self._real_ws)
        required = result.required_len if result.required_len is not None else 0
        if result.status is FactorizationStatus.INTEGER_WORKSPACE_TOO_SMALL:
            short_len = old_integer
            new_integer = grown_length(old_integer, required, factor)
            new_real = grown_length(old_real, old_real, factor)
        else:
            short_len = old_real
            new_integer = grown_length(old_integer, old_integer, factor)
            new_real = grown_length(old_real, required, factor)
        if required <= short_len:
            self._state = SolverState.FACTORIZATION_STALE
            self._emit(
                code="E_LIN_KERNEL_FAILED",
                message=(
                    f"kernel reported {result.status} with requirement {required} "
                    f"not above the current length {short_len}"
                ),
                solve_index=solve_index,
                attempt_index=attempt_index,
                witness={"current_len": short_len, "iflag": result.iflag, "required_len": required},
            )
            return False

        self._integer_ws.ensure_capacity(new_integer)
        self._real_ws.ensure_capacity(new_real)
        self._emit(
            code="W_LIN_WORKSPACE_REALLOCATED",
            message=(
                f"kernel reported {result.status}; integer workspace {old_integer} -> "
                f"{len(self._integer_ws)}, real workspace {old_real} -> {len(self._real_ws)}"
            ),
            solve_index=solve_index,
            attempt_index=attempt_index,
            witness={
                "integer_workspace_len": [old_integer, len(self._integer_ws)],
                "real_workspace_len": [old_real, len(self._real_ws)],
                "required_len": required,
            },
        )
        return True

    def _schedule_growth(
        self,
        result: FactorizationResult,
        solve_index: int,
        attempt_index: int,
    ) -> None:
        threshold = self._options.compression_count_threshold
        pending = PendingGrowth(
            real=self._pending_growth.real or result.real_compressions >= threshold,
            integer=self._pending_growth.integer or result.integer_compressions >= threshold,
        )
        if pending == self._pending_growth:
            return
        self._pending_growth = pending
        self._emit(
            code="W_LIN_WORKSPACE_GROWTH_SCHEDULED",
            message=(
                f"kernel compressed {result.real_compressions} real / "
                f"{result.integer_compressions} integer times; growing workspace before the next "
                "factorization"
            ),
            solve_index=solve_index,
            attempt_index=attempt_index,
            witness={
                "integer": pending.integer,
                "integer_compressions": result.integer_compressions,
                "real": pending.real,
                "real_compressions": result.real_compressions,
            },
        )

    def _apply_pending_growth(self, solve_index: int) -> None:
        pending = self._pending_growth
        if not pending.any:
            return
        factor = self._options.workspace_growth_factor
        old_integer = len(self._integer_ws)
        old_real = len(self._real_ws)
        if pending.real:
            self._real_ws.ensure_capacity(grown_length(old_real, old_real, factor))
        if pending.integer:
            self._integer_ws.ensure_capacity(grown_length(old_integer, old_integer, factor))
        self._pending_growth = NO_PENDING_GROWTH
        self._emit(
            code="W_LIN_WORKSPACE_REALLOCATED",
            message=(
                f"scheduled growth applied; integer workspace {old_integer} -> "
                f"{len(self._integer_ws)}, real workspace {old_real} -> {len(self._real_ws)}"
            ),
            solve_index=solve_index,
            witness={
                "integer_workspace_len": [old_integer, len(self._integer_ws)],
                "real_workspace_len": [old_real, len(self._real_ws)],
            },
        )

    def _backsolve(
        self,
        rhs_list: Sequence[VectorView],
        sol_list: Sequence[VectorView],
        solve_index: int,
    ) -> SolveOutcome:
        for rhs_index, (rhs, sol) in enumerate(zip(rhs_list, sol_list, strict=True)):
            result = self._adapter.backsolve(
                self._dim,
                rhs.values(),
                self._real_ws.data,
                self._integer_ws.data,
            )
            if result.x is None:
                self._emit(
                    code="E_LIN_BACKSOLVE_FAILED",
                    message=(
                        f"backsolve failed for right-hand side {rhs_index} (iflag={result.iflag})"
                    ),
                    solve_index=solve_index,
                    witness={"iflag": result.iflag, "rhs_index": rhs_index},
                )
                return SolveOutcome.FATAL_ERROR
            sol.set_values(result.x)
        return SolveOutcome.SUCCESS

    def _validate_vectors(
        self,
        dim: int,
        rhs_list: Sequence[VectorView],
        sol_list: Sequence[VectorView],
    ) -> None:
        for label, vectors in (("rhs", rhs_list), ("solution", sol_list)):
            for index, vector in enumerate(vectors):
                if vector.dim != dim:
                    raise SolverUsageError(
                        _USAGE_INVALID,
                        f"{label} vector {index} has dimension {vector.dim}, expected {dim}",
                    )

    def _begin_call(self) -> None:
        self._attempt_trace.clear()
        self._diagnostics = [event for event in self._diagnostics if event.solve_index is None]

    def _record_attempt(
        self,
        result: FactorizationResult,
        solve_index: int,
        attempt_index: int,
    ) -> None:
        succeeded = result.status is FactorizationStatus.SUCCESS
        self._attempt_trace.append(
            FactorizationAttemptRecord(
                solve_index=solve_index,
                attempt_index=attempt_index,
                status=str(result.status),
                integer_workspace_len=len(self._integer_ws),
                real_workspace_len=len(self._real_ws),
                required_len=result.required_len,
                neg_eigenvalues=result.neg_eigenvalues if succeeded else None,
                real_compressions=result.real_compressions,
                integer_compressions=result.integer_compressions,
                pivot_tolerance=self._pivot_tolerance,
            )
        )

    def _emit(
        self,
        *,
        code: str,
        message: str,
        solve_index: int | None = None,
        attempt_index: int | None = None,
        witness: object | None = None,
    ) -> None:
        self._diagnostics.append(
            build_diagnostic_event(
                code=code,
                message=message,
                solver_id=self._solver_id,
                solve_index=solve_index,
                attempt_index=attempt_index,
                witness=witness,
            )
        )
