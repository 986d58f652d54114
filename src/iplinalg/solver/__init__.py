from .config import (
    DEFAULT_OPTIONS_PATH,
    OPTIONS_SCHEMA_ID,
    LinearSolverOptions,
    SolverConfigError,
    load_linear_solver_options,
)
from .engine import AdaptiveSolveEngine
from .interface import SolverUsageError, SymLinearSolver
from .repro_snapshot import build_engine_snapshot, build_options_snapshot, summarize_attempt_trace
from .residual import ResidualMetrics, compute_residual_metrics
from .types import FactorizationAttemptRecord, SolveOutcome, SolverState
from .workspace import (
    NO_PENDING_GROWTH,
    GrowableBuffer,
    PendingGrowth,
    WorkspaceSizes,
    grown_length,
)

__all__ = [
    "DEFAULT_OPTIONS_PATH",
    "NO_PENDING_GROWTH",
    "OPTIONS_SCHEMA_ID",
    "AdaptiveSolveEngine",
    "FactorizationAttemptRecord",
    "GrowableBuffer",
    "LinearSolverOptions",
    "PendingGrowth",
    "ResidualMetrics",
    "SolveOutcome",
    "SolverConfigError",
    "SolverState",
    "SolverUsageError",
    "SymLinearSolver",
    "WorkspaceSizes",
    "build_engine_snapshot",
    "build_options_snapshot",
    "compute_residual_metrics",
    "grown_length",
    "load_linear_solver_options",
    "summarize_attempt_trace",
]
