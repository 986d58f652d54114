from .adapter import (
    AnalysisResult,
    AnalysisStatus,
    BacksolveResult,
    FactorizationResult,
    FactorizationStatus,
    KernelAdapter,
    classify_analysis,
    classify_factorization,
)
from .codes import KernelContractError, KernelInfo
from .dense_ldl import DenseLdlKernel
from .protocol import FactorizationKernel, IntBuffer, RealBuffer

__all__ = [
    "AnalysisResult",
    "AnalysisStatus",
    "BacksolveResult",
    "DenseLdlKernel",
    "FactorizationKernel",
    "FactorizationResult",
    "FactorizationStatus",
    "IntBuffer",
    "KernelAdapter",
    "KernelContractError",
    "KernelInfo",
    "RealBuffer",
    "classify_analysis",
    "classify_factorization",
]
