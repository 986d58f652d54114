from __future__ import annotations

from .catalog import CANONICAL_DIAGNOSTIC_CATALOG
from .models import DiagnosticEvent, Severity, SolverStage


def build_diagnostic_event(  # noqa: PLR0913
    *,
    code: str,
    message: str,
    solver_id: str,
    solve_index: int | None = None,
    attempt_index: int | None = None,
    witness: object | None = None,
    severity: Severity | None = None,
    solver_stage: SolverStage | None = None,
    suggested_action: str | None = None,
) -> DiagnosticEvent:
    if not code:
        raise ValueError("diagnostic code must be non-empty")
    if not message:
        raise ValueError("diagnostic message must be non-empty")
    if not solver_id:
        raise ValueError("diagnostic solver_id must be non-empty")

    catalog_entry = CANONICAL_DIAGNOSTIC_CATALOG.get(code)
    resolved_severity = (
        severity
        if severity is not None
        else _require_catalog_field(
            code=code,
            field_name="severity",
            value=(None if catalog_entry is None else catalog_entry.severity),
        )
    )
    resolved_stage = (
        solver_stage
        if solver_stage is not None
        else _require_catalog_field(
            code=code,
            field_name="solver_stage",
            value=(None if catalog_entry is None else catalog_entry.solver_stage),
        )
    )
    resolved_action = (
        suggested_action
        if suggested_action is not None
        else _require_catalog_field(
            code=code,
            field_name="suggested_action",
            value=(None if catalog_entry is None else catalog_entry.suggested_action),
        )
    )
    if not resolved_action:
        raise ValueError("diagnostic suggested_action must be non-empty")

    return DiagnosticEvent(
        code=code,
        severity=resolved_severity,
        message=message,
        suggested_action=resolved_action,
        solver_stage=resolved_stage,
        solver_id=solver_id,
        solve_index=solve_index,
        attempt_index=attempt_index,
        witness=witness,
    )


def _require_catalog_field[T](*, code: str, field_name: str, value: T | None) -> T:
    if value is None:
        raise ValueError(
            f"diagnostic code '{code}' is not in canonical catalog; "
            f"explicit {field_name} is required"
        )
    return value
