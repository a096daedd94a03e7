from ._errors import (
    ShapeMismatchError,
    IndexRankError,
    BroadcastError,
    DivideByZeroError,
)
from ._tensor import ITensor, Number
from ._grad_fn import GradFn

__all__ = [
    ShapeMismatchError.__name__,
    IndexRankError.__name__,
    BroadcastError.__name__,
    DivideByZeroError.__name__,
    ITensor.__name__,
    GradFn.__name__,
    "Number",
]
