from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class SolveOutcome(StrEnum):
    SUCCESS = "success"
    SINGULAR = "singular"
    WRONG_INERTIA = "wrong_inertia"
    FATAL_ERROR = "fatal_error"


class SolverState(StrEnum):
    UNINITIALIZED = "uninitialized"
    STRUCTURE_KNOWN = "structure_known"
    SYMBOLIC_DONE = "symbolic_done"
    FACTORIZED = "factorized"
    FACTORIZATION_STALE = "factorization_stale"


@dataclass(frozen=True, slots=True)
class FactorizationAttemptRecord:
    solve_index: int
    attempt_index: int
    status: str
    integer_workspace_len: int
    real_workspace_len: int
    required_len: int | None
    neg_eigenvalues: int | None
    real_compressions: int
    integer_compressions: int
    pivot_tolerance: float
