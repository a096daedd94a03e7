"""
keygrad: a minimal reverse-mode automatic differentiation engine over
n-dimensional float tensors, backed by NumPy.

Typical usage
-------------
    from keygrad import tensor

    a = tensor((2, 2), [1, 2, 3, 4], requires_grad=True)
    b = tensor((2, 1), [10, 20], requires_grad=True)
    out = a * b
    out.backward([1, 1, 1, 1])
    a.grad, b.grad
"""

from .domain._errors import (
    ShapeMismatchError,
    IndexRankError,
    BroadcastError,
    DivideByZeroError,
)
from .domain._grad_fn import GradFn
from .infrastructure.tensor import Tensor, DEFAULT_DTYPE
from .infrastructure._functional import (
    tensor,
    add,
    sub,
    mul,
    div,
    neg,
    matmul,
    transpose,
    backward,
)

__version__ = "0.1.0"

__all__ = [
    "Tensor",
    "DEFAULT_DTYPE",
    "GradFn",
    "tensor",
    "add",
    "sub",
    "mul",
    "div",
    "neg",
    "matmul",
    "transpose",
    "backward",
    "ShapeMismatchError",
    "IndexRankError",
    "BroadcastError",
    "DivideByZeroError",
]
