from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Literal

import numpy as np
import typer
from numpy.typing import NDArray
from scipy.io import mmread  # type: ignore[import-untyped]
from scipy.sparse import coo_matrix, issparse  # type: ignore[import-untyped]

from iplinalg.diagnostics import DiagnosticEvent, build_diagnostic_event, sort_diagnostics
from iplinalg.solver import (
    AdaptiveSolveEngine,
    LinearSolverOptions,
    SolveOutcome,
    SolverConfigError,
    build_engine_snapshot,
    build_options_snapshot,
    compute_residual_metrics,
    load_linear_solver_options,
)
from iplinalg.views import DenseVector, MatrixViewError, SymTripletMatrix

app = typer.Typer(help="Adaptive sparse symmetric indefinite solver CLI")

_CLI_MATRIX_LOAD_FAILED = "E_CLI_MATRIX_LOAD_FAILED"
_CLI_OPTIONS_INVALID = "E_CLI_OPTIONS_INVALID"
_CLI_SOLVER_ID = "cli.solve"
_SOLVE_OUTPUT_SCHEMA_ID: Final[str] = "solve_output_v1"
_EXIT_CODES: Final[Mapping[SolveOutcome, int]] = {
    SolveOutcome.SUCCESS: 0,
    SolveOutcome.WRONG_INERTIA: 1,
    SolveOutcome.SINGULAR: 2,
    SolveOutcome.FATAL_ERROR: 2,
}
_EXIT_INPUT_ERROR = 2


class CliInputError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


@dataclass(frozen=True, slots=True)
class SolveReport:
    outcome: SolveOutcome
    x: NDArray[np.float64] | None
    neg_eigenvalues: int | None
    res_l2: float | None
    res_linf: float | None
    res_rel: float | None
    diagnostics: tuple[DiagnosticEvent, ...]
    snapshot: Mapping[str, object] | None


@app.command()
def solve(
    matrix_path: str,
    rhs: str | None = typer.Option(None, "--rhs", help="Right-hand side file (default: ones)"),
    check_inertia: bool = typer.Option(
        False, "--check-inertia", help="Require the expected number of negative eigenvalues"
    ),
    expected_neg: int = typer.Option(0, "--expected-neg", min=0, help="Expected negative count"),
    options: str | None = typer.Option(None, "--options", help="Linear solver options YAML"),
    format: Literal["text", "json"] = typer.Option(
        "text",
        "--format",
        help="Solve output format: text|json",
        show_default=True,
    ),
) -> None:
    """Factorize and solve a symmetric Matrix Market system."""
    try:
        solver_options = _load_options(options)
        matrix = _load_matrix(matrix_path)
        rhs_values = _load_rhs(rhs, matrix.dim)
    except CliInputError as exc:
        report = _input_failure_report(exc)
    else:
        report = _execute_solve(
            matrix,
            rhs_values,
            solver_options,
            check_inertia=check_inertia,
            expected_neg_eigenvalues=expected_neg,
        )

    _emit_solve_output(matrix_path=matrix_path, report=report, output_format=format)
    raise typer.Exit(code=_derive_solve_exit_code(report))


@app.command("options")
def show_options(
    options: str | None = typer.Option(None, "--options", help="Linear solver options YAML"),
) -> None:
    """Print the resolved linear solver options."""
    try:
        solver_options = _load_options(options)
    except CliInputError as exc:
        typer.echo(f"options invalid: {exc.message}")
        raise typer.Exit(code=_EXIT_INPUT_ERROR) from exc
    typer.echo(json.dumps(build_options_snapshot(solver_options), sort_keys=True, indent=2))


def _load_options(path: str | None) -> LinearSolverOptions:
    try:
        return load_linear_solver_options(path)
    except SolverConfigError as exc:
        raise CliInputError(_CLI_OPTIONS_INVALID, exc.message) from exc


def _load_matrix(path: str) -> SymTripletMatrix:
    try:
        loaded = mmread(path)
    except (OSError, ValueError) as exc:
        raise CliInputError(_CLI_MATRIX_LOAD_FAILED, f"unable to read '{path}': {exc}") from exc
    matrix = loaded if issparse(loaded) else coo_matrix(np.asarray(loaded, dtype=np.float64))
    try:
        return SymTripletMatrix.from_scipy(matrix)
    except MatrixViewError as exc:
        raise CliInputError(_CLI_MATRIX_LOAD_FAILED, exc.message) from exc


def _load_rhs(path: str | None, dim: int) -> NDArray[np.float64]:
    if path is None:
        return np.ones(dim, dtype=np.float64)
    try:
        if Path(path).suffix == ".mtx":
            values = np.asarray(mmread(path), dtype=np.float64).reshape(-1)
        else:
            values = np.loadtxt(path, dtype=np.float64, ndmin=1)
    except (OSError, ValueError) as exc:
        raise CliInputError(_CLI_MATRIX_LOAD_FAILED, f"unable to read '{path}': {exc}") from exc
    if values.shape != (dim,):
        raise CliInputError(
            _CLI_MATRIX_LOAD_FAILED,
            f"right-hand side has {values.size} entries, matrix dimension is {dim}",
        )
    if not np.isfinite(values).all():
        raise CliInputError(_CLI_MATRIX_LOAD_FAILED, "right-hand side entries must be finite")
    return values


def _execute_solve(
    matrix: SymTripletMatrix,
    rhs_values: NDArray[np.float64],
    options: LinearSolverOptions,
    *,
    check_inertia: bool,
    expected_neg_eigenvalues: int,
) -> SolveReport:
    engine = AdaptiveSolveEngine(options, solver_id=_CLI_SOLVER_ID)
    rhs = DenseVector(rhs_values)
    sol = DenseVector.zeros(matrix.dim)
    outcome = engine.solve(
        matrix,
        rhs,
        sol,
        check_inertia=check_inertia,
        expected_neg_eigenvalues=expected_neg_eigenvalues,
    )
    neg_eigenvalues = (
        engine.number_of_neg_eigenvalues()
        if outcome in (SolveOutcome.SUCCESS, SolveOutcome.WRONG_INERTIA)
        else None
    )
    x: NDArray[np.float64] | None = None
    res_l2 = res_linf = res_rel = None
    if outcome is SolveOutcome.SUCCESS:
        x = sol.values()
        metrics = compute_residual_metrics(matrix, rhs_values, x)
        res_l2, res_linf, res_rel = metrics.res_l2, metrics.res_linf, metrics.res_rel
    return SolveReport(
        outcome=outcome,
        x=x,
        neg_eigenvalues=neg_eigenvalues,
        res_l2=res_l2,
        res_linf=res_linf,
        res_rel=res_rel,
        diagnostics=tuple(sort_diagnostics(engine.diagnostics)),
        snapshot=build_engine_snapshot(engine),
    )


def _input_failure_report(exc: CliInputError) -> SolveReport:
    event = build_diagnostic_event(
        code=exc.code,
        message=exc.message,
        solver_id=_CLI_SOLVER_ID,
        witness={"error_type": type(exc.__cause__ or exc).__name__},
    )
    return SolveReport(
        outcome=SolveOutcome.FATAL_ERROR,
        x=None,
        neg_eigenvalues=None,
        res_l2=None,
        res_linf=None,
        res_rel=None,
        diagnostics=(event,),
        snapshot=None,
    )


def _derive_solve_exit_code(report: SolveReport) -> int:
    return _EXIT_CODES[report.outcome]


def _emit_solve_output(
    *,
    matrix_path: str,
    report: SolveReport,
    output_format: Literal["text", "json"],
) -> None:
    if output_format == "json":
        typer.echo(_build_solve_json_output(matrix_path=matrix_path, report=report))
        return
    _print_solve_summary(report)
    _print_diagnostics(report.diagnostics)


def _build_solve_json_output(*, matrix_path: str, report: SolveReport) -> str:
    payload: dict[str, object] = {
        "schema": _SOLVE_OUTPUT_SCHEMA_ID,
        "matrix": matrix_path,
        "outcome": str(report.outcome),
        "exit_code": _derive_solve_exit_code(report),
        "neg_eigenvalues": report.neg_eigenvalues,
        "residual": {
            "res_l2": report.res_l2,
            "res_linf": report.res_linf,
            "res_rel": report.res_rel,
        },
        "x": None if report.x is None else [float(value) for value in report.x],
        "diagnostics": [
            event.model_dump(mode="json", exclude_none=True) for event in report.diagnostics
        ],
        "solver_snapshot": None if report.snapshot is None else dict(report.snapshot),
    }
    return json.dumps(payload, ensure_ascii=True, separators=(",", ":"))


def _print_solve_summary(report: SolveReport) -> None:
    neg = "n/a" if report.neg_eigenvalues is None else str(report.neg_eigenvalues)
    typer.echo(f"SOLVE outcome={report.outcome} neg_eigenvalues={neg}")
    if report.x is None:
        return
    typer.echo(
        "RESIDUAL"
        f" res_l2={_format_optional(report.res_l2)}"
        f" res_linf={_format_optional(report.res_linf)}"
        f" res_rel={_format_optional(report.res_rel)}"
    )
    for index, value in enumerate(report.x):
        typer.echo(f"X index={index} value={_format_float(float(value))}")


def _print_diagnostics(diagnostics: Sequence[DiagnosticEvent]) -> None:
    for event in diagnostics:
        typer.echo(
            "DIAG"
            f" severity={event.severity}"
            f" stage={event.solver_stage}"
            f" code={event.code}"
            f" message={event.message}"
        )


def _format_optional(value: float | None) -> str:
    return "n/a" if value is None else _format_float(value)


def _format_float(value: float) -> str:
    return f"{float(value):.12g}"


def main() -> None:
    app()
