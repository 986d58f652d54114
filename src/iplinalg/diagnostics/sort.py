from __future__ import annotations

import json
from collections.abc import Iterable

from .models import DiagnosticEvent, Severity, SolverStage

# Declaration order of the enums is the report order.
_SEVERITY_RANK = {severity: rank for rank, severity in enumerate(Severity)}
_STAGE_RANK = {stage: rank for rank, stage in enumerate(SolverStage)}

type DiagnosticSortKey = tuple[int, int, str, str, tuple[int, int], tuple[int, int], str, str]


def canonical_witness_json(witness: object | None) -> str:
    if witness is None:
        return ""
    return json.dumps(witness, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def _missing_last(index: int | None) -> tuple[int, int]:
    return (1, 0) if index is None else (0, index)


def diagnostic_sort_key(event: DiagnosticEvent) -> DiagnosticSortKey:
    """Total order: severity, stage, code, solver, solve, attempt, message, witness."""
    return (
        _SEVERITY_RANK[event.severity],
        _STAGE_RANK[event.solver_stage],
        event.code,
        event.solver_id,
        _missing_last(event.solve_index),
        _missing_last(event.attempt_index),
        event.message,
        canonical_witness_json(event.witness),
    )


def sort_diagnostics(events: Iterable[DiagnosticEvent]) -> list[DiagnosticEvent]:
    return sorted(events, key=diagnostic_sort_key)
