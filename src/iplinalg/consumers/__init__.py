from .eq_mult import LeastSquareEqMultCalculator
from .probing_mu import (
    ComplementarityIterate,
    LinearSolveFailed,
    ProbingMuOracle,
    calculate_affine_mu,
    fraction_to_boundary,
)
from .resto_init import RestoInitialIterate, RestoIterateInitializer, solve_quadratic

__all__ = [
    "ComplementarityIterate",
    "LeastSquareEqMultCalculator",
    "LinearSolveFailed",
    "ProbingMuOracle",
    "RestoInitialIterate",
    "RestoIterateInitializer",
    "calculate_affine_mu",
    "fraction_to_boundary",
    "solve_quadratic",
]
