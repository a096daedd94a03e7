"""
Autograd internals: per-operation backward rules and the backward engine.

The engine is exposed as `backward(root, seed=None)`; `Tensor.backward`
delegates to it.
"""

from ._engine import backward, discover, count_dependents, propagate
from ._grad_fns import (
    AddGradFn,
    SubGradFn,
    NegGradFn,
    MulGradFn,
    DivGradFn,
    MatMulGradFn,
    TransposeGradFn,
)

__all__ = [
    "backward",
    "discover",
    "count_dependents",
    "propagate",
    AddGradFn.__name__,
    SubGradFn.__name__,
    NegGradFn.__name__,
    MulGradFn.__name__,
    DivGradFn.__name__,
    MatMulGradFn.__name__,
    TransposeGradFn.__name__,
]
