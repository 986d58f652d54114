from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest
import yaml  # type: ignore[import-untyped]
from scipy.sparse import csr_matrix  # type: ignore[import-untyped]

from iplinalg.solver import (
    DEFAULT_OPTIONS_PATH,
    AdaptiveSolveEngine,
    FactorizationAttemptRecord,
    LinearSolverOptions,
    build_engine_snapshot,
    build_options_snapshot,
    compute_residual_metrics,
    load_linear_solver_options,
    summarize_attempt_trace,
)
from iplinalg.views import DenseVector, SymTripletMatrix

pytestmark = pytest.mark.unit


def _record(solve_index: int, attempt_index: int, status: str) -> FactorizationAttemptRecord:
    return FactorizationAttemptRecord(
        solve_index=solve_index,
        attempt_index=attempt_index,
        status=status,
        integer_workspace_len=10,
        real_workspace_len=20,
        required_len=None,
        neg_eigenvalues=None,
        real_compressions=attempt_index,
        integer_compressions=0,
        pivot_tolerance=1.0e-8,
    )


def test_fresh_engine_snapshot_is_deterministic_and_json_ready() -> None:
    engine = AdaptiveSolveEngine()
    left = build_engine_snapshot(engine)
    right = build_engine_snapshot(AdaptiveSolveEngine())
    assert left == right
    assert json.loads(json.dumps(left)) == left
    assert left["state"] == "uninitialized"
    assert left["kernel_id"] == "dense_ldl_bunch_kaufman"
    assert left["options"]["options_source"] == "default_artifact"
    assert left["attempt_trace_summary"]["total_factorizations"] == 0


def test_snapshot_after_solve_reports_workspace_and_trace() -> None:
    engine = AdaptiveSolveEngine(LinearSolverOptions())
    matrix = SymTripletMatrix.from_dense([[2.0, 1.0], [1.0, -1.0]])
    engine.solve(matrix, DenseVector([1.0, 1.0]), DenseVector.zeros(2))

    snapshot = build_engine_snapshot(engine)
    assert snapshot["state"] == "factorized"
    assert snapshot["structure"] == {"dim": 2, "nonzeros": 3}
    workspace = snapshot["workspace"]
    assert workspace["integer_workspace_len"] == engine.workspace_sizes.integer_workspace_len
    assert workspace["pending_growth"] == {"integer": False, "real": False}
    assert snapshot["options"]["options_source"] == "constructed"
    summary = snapshot["attempt_trace_summary"]
    assert summary["status_counts"]["success"] == 1


def test_attempt_trace_summary_counts_retries() -> None:
    trace = [
        _record(0, 0, "integer_workspace_too_small"),
        _record(0, 1, "real_workspace_too_small"),
        _record(0, 2, "success"),
        _record(3, 0, "singular"),
    ]
    summary = summarize_attempt_trace(trace)
    assert summary["total_factorizations"] == 4
    assert summary["solves_with_factorization"] == 2
    assert summary["solves_with_retry"] == 1
    assert summary["max_attempts_per_solve"] == 3
    assert summary["max_real_compressions"] == 2
    assert summary["status_counts"] == {
        "success": 1,
        "integer_workspace_too_small": 1,
        "real_workspace_too_small": 1,
        "singular": 1,
        "error": 0,
    }


def test_options_snapshot_source_for_override_artifact(tmp_path: Path) -> None:
    target = tmp_path / "override.yaml"
    target.write_text(DEFAULT_OPTIONS_PATH.read_text(encoding="utf-8"), encoding="utf-8")
    snapshot = build_options_snapshot(load_linear_solver_options(target))
    assert snapshot["options_source"] == "override_artifact"
    payload = yaml.safe_load(target.read_text(encoding="utf-8"))
    assert snapshot["pivoting"] == payload["pivoting"]
    assert snapshot["workspace"] == payload["workspace"]


def test_residual_metrics_for_view_and_scipy_matrix() -> None:
    full = np.asarray([[4.0, 1.0], [1.0, 3.0]])
    matrix = SymTripletMatrix.from_dense(full)
    b = np.asarray([1.0, 2.0])
    x = np.linalg.solve(full, b)

    exact = compute_residual_metrics(matrix, b, x)
    assert exact.res_rel < 1.0e-14
    off = compute_residual_metrics(csr_matrix(full), b, x + np.asarray([1.0, 0.0]))
    assert off.res_linf == pytest.approx(4.0)
    assert off.res_l2 == pytest.approx(np.sqrt(17.0))
    assert off.res_rel == pytest.approx(4.0 / (5.0 * np.max(np.abs(x + [1.0, 0.0])) + 2.0))
    with pytest.raises(TypeError):
        compute_residual_metrics(full, b, x)
