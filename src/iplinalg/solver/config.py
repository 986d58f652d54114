from __future__ import annotations

import math
from dataclasses import dataclass
from functools import cache
from pathlib import Path
from typing import cast

import yaml  # type: ignore[import-untyped]

DEFAULT_OPTIONS_PATH = Path(__file__).resolve().parent / "linear_solver_defaults.yaml"
OPTIONS_SCHEMA_ID = "linear_solver_options_v1"


class SolverConfigError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


@dataclass(frozen=True, slots=True)
class LinearSolverOptions:
    pivot_tolerance: float = 1.0e-8
    pivot_tolerance_max: float = 1.0e-4
    quality_exponent: float = 0.75
    integer_workspace_init_factor: float = 5.0
    real_workspace_init_factor: float = 5.0
    workspace_growth_factor: float = 10.0
    compression_count_threshold: int = 10
    analysis_integer_overestimate: float = 2.0
    artifact_path: str | None = None

    def __post_init__(self) -> None:
        _validate_options(self)


def load_linear_solver_options(path: str | Path | None = None) -> LinearSolverOptions:
    selected_path = Path(path) if path is not None else DEFAULT_OPTIONS_PATH
    return _load_linear_solver_options_cached(str(selected_path.resolve()))


@cache
def _load_linear_solver_options_cached(path: str) -> LinearSolverOptions:
    target = Path(path)
    raw = _read_yaml_file(target)
    schema = _require_string(raw, "schema")
    if schema != OPTIONS_SCHEMA_ID:
        raise SolverConfigError(
            "E_SOLVER_CONFIG_INVALID",
            f"unsupported options schema '{schema}'; expected '{OPTIONS_SCHEMA_ID}'",
        )
    pivoting = _require_mapping(raw, "pivoting")
    workspace = _require_mapping(raw, "workspace")
    return LinearSolverOptions(
        pivot_tolerance=_require_float(pivoting, "pivot_tolerance"),
        pivot_tolerance_max=_require_float(pivoting, "pivot_tolerance_max"),
        quality_exponent=_require_float(pivoting, "quality_exponent"),
        integer_workspace_init_factor=_require_float(workspace, "integer_workspace_init_factor"),
        real_workspace_init_factor=_require_float(workspace, "real_workspace_init_factor"),
        workspace_growth_factor=_require_float(workspace, "workspace_growth_factor"),
        compression_count_threshold=_require_int(workspace, "compression_count_threshold"),
        analysis_integer_overestimate=_require_float(workspace, "analysis_integer_overestimate"),
        artifact_path=str(target),
    )


def _validate_options(options: LinearSolverOptions) -> None:
    if not 0.0 < options.pivot_tolerance < 1.0:
        raise SolverConfigError(
            "E_SOLVER_CONFIG_INVALID", "pivot_tolerance must be between 0 and 1"
        )
    if not options.pivot_tolerance <= options.pivot_tolerance_max < 1.0:
        raise SolverConfigError(
            "E_SOLVER_CONFIG_INVALID",
            "pivot_tolerance_max must be between pivot_tolerance and 1",
        )
    if not 0.0 < options.quality_exponent < 1.0:
        raise SolverConfigError(
            "E_SOLVER_CONFIG_INVALID", "quality_exponent must be between 0 and 1"
        )
    for name in ("integer_workspace_init_factor", "real_workspace_init_factor"):
        if getattr(options, name) < 1.0:
            raise SolverConfigError("E_SOLVER_CONFIG_INVALID", f"{name} must be at least 1")
    if not options.workspace_growth_factor > 1.0:
        raise SolverConfigError(
            "E_SOLVER_CONFIG_INVALID", "workspace_growth_factor must be larger than 1"
        )
    if options.compression_count_threshold < 1:
        raise SolverConfigError(
            "E_SOLVER_CONFIG_INVALID", "compression_count_threshold must be >= 1"
        )
    if options.analysis_integer_overestimate < 1.0:
        raise SolverConfigError(
            "E_SOLVER_CONFIG_INVALID", "analysis_integer_overestimate must be at least 1"
        )


def _read_yaml_file(path: Path) -> dict[str, object]:
    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SolverConfigError(
            "E_SOLVER_CONFIG_READ_FAILED",
            f"unable to read linear solver options artifact '{path}': {exc}",
        ) from exc
    try:
        payload = yaml.safe_load(raw_text)
    except yaml.YAMLError as exc:
        raise SolverConfigError(
            "E_SOLVER_CONFIG_PARSE_FAILED",
            f"invalid linear solver options yaml in '{path}': {exc}",
        ) from exc
    if not isinstance(payload, dict):
        raise SolverConfigError(
            "E_SOLVER_CONFIG_INVALID",
            "linear solver options artifact root must be a mapping",
        )
    return cast(dict[str, object], payload)


def _require_mapping(data: dict[str, object], key: str) -> dict[str, object]:
    value = data.get(key)
    if isinstance(value, dict):
        return cast(dict[str, object], value)
    raise SolverConfigError(
        "E_SOLVER_CONFIG_INVALID", f"missing or invalid mapping for key '{key}'"
    )


def _require_string(data: dict[str, object], key: str) -> str:
    value = data.get(key)
    if isinstance(value, str) and value:
        return value
    raise SolverConfigError("E_SOLVER_CONFIG_INVALID", f"missing or invalid string for key '{key}'")


def _require_float(data: dict[str, object], key: str) -> float:
    value = data.get(key)
    if isinstance(value, bool):
        raise SolverConfigError("E_SOLVER_CONFIG_INVALID", f"invalid numeric value for key '{key}'")
    if isinstance(value, int | float):
        numeric = float(value)
        if math.isfinite(numeric):
            return numeric
    raise SolverConfigError("E_SOLVER_CONFIG_INVALID", f"missing or invalid float for key '{key}'")


def _require_int(data: dict[str, object], key: str) -> int:
    value = data.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise SolverConfigError(
        "E_SOLVER_CONFIG_INVALID", f"missing or invalid integer for key '{key}'"
    )
