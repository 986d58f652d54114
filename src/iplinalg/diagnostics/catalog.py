from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from .models import Severity, SolverStage


@dataclass(frozen=True, slots=True)
class DiagnosticCatalogEntry:
    code: str
    severity: Severity
    solver_stage: SolverStage
    suggested_action: str

    def __post_init__(self) -> None:
        if not self.code:
            raise ValueError("diagnostic catalog code must be non-empty")
        if not self.suggested_action:
            raise ValueError(
                f"diagnostic catalog entry '{self.code}' suggested_action must be non-empty"
            )


def _entry(
    code: str,
    severity: Severity,
    solver_stage: SolverStage,
    suggested_action: str,
) -> DiagnosticCatalogEntry:
    return DiagnosticCatalogEntry(
        code=code,
        severity=severity,
        solver_stage=solver_stage,
        suggested_action=suggested_action,
    )


def _build_catalog(
    entries: tuple[DiagnosticCatalogEntry, ...],
) -> Mapping[str, DiagnosticCatalogEntry]:
    catalog: dict[str, DiagnosticCatalogEntry] = {}
    for entry in entries:
        if entry.code in catalog:
            raise ValueError(f"duplicate diagnostic catalog code: {entry.code}")
        catalog[entry.code] = entry
    return MappingProxyType(catalog)


_CATALOG_ENTRIES: tuple[DiagnosticCatalogEntry, ...] = (
    _entry(
        "E_LIN_STRUCTURE_INVALID",
        Severity.ERROR,
        SolverStage.ANALYSE,
        "check dimension and triplet indices, then reset the solver structure",
    ),
    _entry(
        "E_LIN_SINGULAR",
        Severity.ERROR,
        SolverStage.FACTORIZE,
        "perturb the matrix or increase factorization quality and retry",
    ),
    _entry(
        "E_LIN_WRONG_INERTIA",
        Severity.ERROR,
        SolverStage.FACTORIZE,
        "perturb the matrix until the expected inertia is obtained",
    ),
    _entry(
        "E_LIN_KERNEL_FAILED",
        Severity.ERROR,
        SolverStage.FACTORIZE,
        "inspect kernel status and reset the solver structure before retrying",
    ),
    _entry(
        "E_LIN_BACKSOLVE_FAILED",
        Severity.ERROR,
        SolverStage.BACKSOLVE,
        "inspect kernel status and reset the solver structure before retrying",
    ),
    _entry(
        "W_LIN_WORKSPACE_REALLOCATED",
        Severity.WARNING,
        SolverStage.FACTORIZE,
        "raise the workspace init factors if reallocations repeat",
    ),
    _entry(
        "W_LIN_WORKSPACE_GROWTH_SCHEDULED",
        Severity.WARNING,
        SolverStage.FACTORIZE,
        "raise the workspace init factors if compressions repeat",
    ),
    _entry(
        "W_LIN_QUALITY_INCREASED",
        Severity.WARNING,
        SolverStage.FACTORIZE,
        "expect a refactorization on the next solve",
    ),
    _entry(
        "E_CLI_MATRIX_LOAD_FAILED",
        Severity.ERROR,
        SolverStage.PARSE,
        "provide a square symmetric Matrix Market file and a matching right-hand side",
    ),
    _entry(
        "E_CLI_OPTIONS_INVALID",
        Severity.ERROR,
        SolverStage.CONFIGURE,
        "fix the linear solver options artifact",
    ),
)


CANONICAL_DIAGNOSTIC_CATALOG: Mapping[str, DiagnosticCatalogEntry] = _build_catalog(
    _CATALOG_ENTRIES
)

REQUIRED_CATALOG_FIELDS: tuple[str, ...] = ("code", "severity", "solver_stage", "suggested_action")
