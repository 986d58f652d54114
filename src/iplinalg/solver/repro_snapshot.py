from __future__ import annotations

from collections.abc import Mapping, Sequence

from .config import DEFAULT_OPTIONS_PATH, LinearSolverOptions
from .engine import AdaptiveSolveEngine
from .types import FactorizationAttemptRecord

_SCHEMA_ID = "linear_solver_repro_snapshot_v1"
_STATUS_ORDER: tuple[str, ...] = (
    "success",
    "integer_workspace_too_small",
    "real_workspace_too_small",
    "singular",
    "error",
)


def build_options_snapshot(options: LinearSolverOptions) -> Mapping[str, object]:
    return {
        "pivoting": {
            "pivot_tolerance": options.pivot_tolerance,
            "pivot_tolerance_max": options.pivot_tolerance_max,
            "quality_exponent": options.quality_exponent,
        },
        "workspace": {
            "integer_workspace_init_factor": options.integer_workspace_init_factor,
            "real_workspace_init_factor": options.real_workspace_init_factor,
            "workspace_growth_factor": options.workspace_growth_factor,
            "compression_count_threshold": options.compression_count_threshold,
            "analysis_integer_overestimate": options.analysis_integer_overestimate,
        },
        "options_source": _options_source(options),
    }


def build_engine_snapshot(engine: AdaptiveSolveEngine) -> Mapping[str, object]:
    sizes = engine.workspace_sizes
    pending = engine.pending_growth
    return {
        "schema": _SCHEMA_ID,
        "solver_id": engine.solver_id,
        "kernel_id": engine.kernel_id,
        "options": build_options_snapshot(engine.options),
        "state": str(engine.state),
        "pivot_tolerance": engine.pivot_tolerance,
        "structure": {"dim": engine.dim, "nonzeros": engine.nonzeros},
        "workspace": {
            "integer_workspace_len": sizes.integer_workspace_len,
            "real_workspace_len": sizes.real_workspace_len,
            "index_array_len": sizes.index_array_len,
            "pending_growth": {"integer": pending.integer, "real": pending.real},
        },
        "attempt_trace_summary": summarize_attempt_trace(engine.attempt_trace),
    }


def summarize_attempt_trace(trace: Sequence[FactorizationAttemptRecord]) -> Mapping[str, object]:
    status_counts = {status: 0 for status in _STATUS_ORDER}
    attempts_per_solve: dict[int, int] = {}
    for row in trace:
        status_counts[row.status] = status_counts.get(row.status, 0) + 1
        attempts_per_solve[row.solve_index] = attempts_per_solve.get(row.solve_index, 0) + 1

    return {
        "total_factorizations": len(trace),
        "solves_with_factorization": len(attempts_per_solve),
        "solves_with_retry": sum(1 for count in attempts_per_solve.values() if count > 1),
        "max_attempts_per_solve": max(attempts_per_solve.values(), default=0),
        "status_counts": status_counts,
        "max_real_compressions": max((row.real_compressions for row in trace), default=0),
        "max_integer_compressions": max((row.integer_compressions for row in trace), default=0),
    }


def _options_source(options: LinearSolverOptions) -> str:
    if options.artifact_path is None:
        return "constructed"
    if options.artifact_path == str(DEFAULT_OPTIONS_PATH):
        return "default_artifact"
    return "override_artifact"
