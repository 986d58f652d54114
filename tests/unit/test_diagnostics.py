from __future__ import annotations

import numpy as np
import pytest
from pydantic import ValidationError

from iplinalg.diagnostics import (
    CANONICAL_DIAGNOSTIC_CATALOG,
    REQUIRED_CATALOG_FIELDS,
    DiagnosticEvent,
    Severity,
    SolverStage,
    build_diagnostic_event,
    canonical_witness_json,
    sort_diagnostics,
)

pytestmark = pytest.mark.unit


def test_catalog_entries_carry_required_fields() -> None:
    assert "E_LIN_SINGULAR" in CANONICAL_DIAGNOSTIC_CATALOG
    for code, entry in CANONICAL_DIAGNOSTIC_CATALOG.items():
        assert entry.code == code
        for field_name in REQUIRED_CATALOG_FIELDS:
            assert getattr(entry, field_name)
        assert code.startswith("E_") == (entry.severity is Severity.ERROR)


def test_build_event_resolves_catalog_fields() -> None:
    event = build_diagnostic_event(
        code="W_LIN_WORKSPACE_REALLOCATED",
        message="grown",
        solver_id="ma27",
        solve_index=3,
        attempt_index=1,
        witness={"b": [1, 2], "a": {"z": 1, "y": None}},
    )
    assert event.severity is Severity.WARNING
    assert event.solver_stage is SolverStage.FACTORIZE
    assert event.suggested_action
    assert list(event.witness) == ["a", "b"]  # type: ignore[arg-type]
    assert canonical_witness_json(event.witness) == '{"a":{"y":null,"z":1},"b":[1,2]}'


def test_build_event_requires_explicit_fields_for_unknown_codes() -> None:
    with pytest.raises(ValueError, match="explicit severity"):
        build_diagnostic_event(code="E_UNKNOWN", message="m", solver_id="ma27")

    event = build_diagnostic_event(
        code="E_UNKNOWN",
        message="m",
        solver_id="ma27",
        severity=Severity.ERROR,
        solver_stage=SolverStage.BACKSOLVE,
        suggested_action="retry",
    )
    assert event.code == "E_UNKNOWN"


def test_events_are_immutable_and_reject_invalid_witness() -> None:
    event = build_diagnostic_event(code="E_LIN_SINGULAR", message="m", solver_id="ma27")
    with pytest.raises(ValidationError):
        event.code = "other"  # type: ignore[misc]
    with pytest.raises(ValidationError):
        build_diagnostic_event(
            code="E_LIN_SINGULAR", message="m", solver_id="ma27", witness={1: "x"}
        )
    with pytest.raises(ValidationError):
        DiagnosticEvent(
            code="E_LIN_SINGULAR",
            severity=Severity.ERROR,
            message="m",
            suggested_action="a",
            solver_stage=SolverStage.FACTORIZE,
            solver_id="ma27",
            solve_index=-1,
        )


def test_sort_orders_by_severity_stage_code_and_index() -> None:
    events = [
        build_diagnostic_event(
            code="W_LIN_QUALITY_INCREASED", message="q", solver_id="ma27", solve_index=0
        ),
        build_diagnostic_event(
            code="E_LIN_SINGULAR", message="s", solver_id="ma27", solve_index=2
        ),
        build_diagnostic_event(
            code="E_LIN_SINGULAR", message="s", solver_id="ma27", solve_index=1
        ),
        build_diagnostic_event(code="E_LIN_STRUCTURE_INVALID", message="x", solver_id="ma27"),
        build_diagnostic_event(
            code="E_LIN_SINGULAR", message="s", solver_id="ma27", solve_index=None
        ),
    ]
    ordered = sort_diagnostics(events)
    assert [(event.code, event.solve_index) for event in ordered] == [
        ("E_LIN_STRUCTURE_INVALID", None),
        ("E_LIN_SINGULAR", 1),
        ("E_LIN_SINGULAR", 2),
        ("E_LIN_SINGULAR", None),
        ("W_LIN_QUALITY_INCREASED", 0),
    ]
    assert sort_diagnostics(reversed(events)) == ordered


def test_witness_unwraps_numpy_values_and_attempt_needs_solve() -> None:
    event = build_diagnostic_event(
        code="W_LIN_WORKSPACE_REALLOCATED",
        message="grown",
        solver_id="ma27",
        solve_index=0,
        witness={"lengths": np.asarray([10, 100]), "required_len": np.int64(80)},
    )
    assert event.witness == {"lengths": [10, 100], "required_len": 80}
    assert canonical_witness_json(event.witness) == '{"lengths":[10,100],"required_len":80}'

    with pytest.raises(ValidationError, match="attempt_index requires solve_index"):
        build_diagnostic_event(
            code="E_LIN_SINGULAR", message="s", solver_id="ma27", attempt_index=0
        )
    with pytest.raises(ValidationError):
        build_diagnostic_event(
            code="E_LIN_SINGULAR", message="s", solver_id="ma27", witness={"bad": object()}
        )
