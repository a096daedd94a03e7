"""
CPU kernels for broadcast elementwise arithmetic.

These kernels operate on flat NumPy buffers plus shape metadata and know
nothing about tensors or autograd. The functional dispatchers in
`keygrad.infrastructure._functional` call them to compute forward values,
then wrap the result in a Tensor and attach the matching backward rule.

Each binary kernel:
- computes the broadcast output shape,
- maps every linear output index to one source index per operand
  (see `broadcast_source_indices`), and
- applies the scalar arithmetic to the gathered operand values.
"""

from __future__ import annotations

from typing import Callable, Sequence

import numpy as np

from ...domain._errors import DivideByZeroError
from .broadcast_cpu import broadcast_shape, broadcast_source_indices

BinaryKernel = Callable[[np.ndarray, np.ndarray], np.ndarray]


def binary_broadcast_cpu(
    a: np.ndarray,
    a_shape: Sequence[int],
    b: np.ndarray,
    b_shape: Sequence[int],
    fn: BinaryKernel,
) -> tuple[np.ndarray, tuple[int, ...]]:
    """
    Apply a binary elementwise function with broadcasting.

    Parameters
    ----------
    a, b : np.ndarray
        Flat operand buffers.
    a_shape, b_shape : Sequence[int]
        Declared operand shapes.
    fn : Callable[[np.ndarray, np.ndarray], np.ndarray]
        Vectorized scalar operation applied to the gathered operand values.

    Returns
    -------
    tuple[np.ndarray, tuple[int, ...]]
        Flat output buffer and the broadcast output shape.

    Raises
    ------
    BroadcastError
        If the operand shapes are incompatible.
    """
    out_shape = broadcast_shape(a_shape, b_shape)
    ia = broadcast_source_indices(out_shape, a_shape)
    ib = broadcast_source_indices(out_shape, b_shape)
    return fn(a[ia], b[ib]), out_shape


def add_cpu(a, a_shape, b, b_shape):
    return binary_broadcast_cpu(a, a_shape, b, b_shape, np.add)


def sub_cpu(a, a_shape, b, b_shape):
    return binary_broadcast_cpu(a, a_shape, b, b_shape, np.subtract)


def mul_cpu(a, a_shape, b, b_shape):
    return binary_broadcast_cpu(a, a_shape, b, b_shape, np.multiply)


def div_cpu(
    a: np.ndarray, a_shape: Sequence[int], b: np.ndarray, b_shape: Sequence[int]
) -> tuple[np.ndarray, tuple[int, ...]]:
    """
    Broadcast elementwise true division.

    Raises
    ------
    DivideByZeroError
        If any divisor element that participates in the output is exactly 0.
    BroadcastError
        If the operand shapes are incompatible.
    """

    def _safe_div(x: np.ndarray, y: np.ndarray) -> np.ndarray:
        if np.any(y == 0):
            raise DivideByZeroError("div")
        return np.divide(x, y)

    return binary_broadcast_cpu(a, a_shape, b, b_shape, _safe_div)


def neg_cpu(a: np.ndarray) -> np.ndarray:
    return np.negative(a)
