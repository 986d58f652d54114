from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class SolverStage(StrEnum):
    PARSE = "parse"
    CONFIGURE = "configure"
    ANALYSE = "analyse"
    FACTORIZE = "factorize"
    BACKSOLVE = "backsolve"


def _witness_value(value: object) -> object:
    """Convert a witness payload into plain JSON values with sorted object keys.

    NumPy scalars and arrays (workspace lengths, INFO fields) are unwrapped.
    """
    if isinstance(value, np.generic | np.ndarray):
        value = value.tolist()
    if value is None or isinstance(value, bool | int | float | str):
        return value
    if isinstance(value, list | tuple):
        return [_witness_value(item) for item in value]
    if isinstance(value, Mapping):
        if not all(isinstance(key, str) for key in value):
            raise ValueError("witness object keys must be strings")
        return {key: _witness_value(value[key]) for key in sorted(value)}
    raise ValueError(f"witness value of type {type(value).__name__} is not JSON-serializable")


class DiagnosticEvent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    code: str = Field(min_length=1)
    severity: Severity
    message: str = Field(min_length=1)
    suggested_action: str = Field(min_length=1)
    solver_stage: SolverStage

    solver_id: str = Field(min_length=1)
    solve_index: int | None = Field(default=None, ge=0)
    attempt_index: int | None = Field(default=None, ge=0)

    witness: object | None = None

    @field_validator("witness", mode="before")
    @classmethod
    def _normalize_witness(cls, witness: object) -> object:
        if witness is None:
            return None
        return _witness_value(witness)

    @model_validator(mode="after")
    def _attempt_requires_solve(self) -> DiagnosticEvent:
        if self.attempt_index is not None and self.solve_index is None:
            raise ValueError("attempt_index requires solve_index")
        return self
