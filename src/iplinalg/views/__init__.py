from .matrix import (
    IndexArray,
    MatrixViewError,
    SymMatrixView,
    SymTripletMatrix,
    ValueArray,
    next_tag,
)
from .vector import DenseVector, VectorView

__all__ = [
    "DenseVector",
    "IndexArray",
    "MatrixViewError",
    "SymMatrixView",
    "SymTripletMatrix",
    "ValueArray",
    "VectorView",
    "next_tag",
]
