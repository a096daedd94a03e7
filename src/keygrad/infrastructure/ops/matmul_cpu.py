"""
CPU kernels for 2-D matrix multiplication and transpose.

Both kernels take flat row-major buffers plus a 2-D shape and return flat
row-major buffers. Batched / N-D matrix products are not supported: callers
must validate ranks before calling in (see `require_2d`).
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ...domain._errors import ShapeMismatchError


def require_2d(op: str, shape: Sequence[int]) -> tuple[int, int]:
    """
    Validate that `shape` is exactly 2-dimensional.

    Parameters
    ----------
    op : str
        Operation name used in the error message.
    shape : Sequence[int]
        Operand shape.

    Returns
    -------
    tuple[int, int]
        `(rows, cols)`.

    Raises
    ------
    ShapeMismatchError
        If the operand is not 2-D.
    """
    if len(shape) != 2:
        raise ShapeMismatchError(
            f"{op} only supports 2D tensors, got shape {tuple(shape)}.",
            expected=2,
            actual=len(shape),
        )
    return int(shape[0]), int(shape[1])


def matmul2d_cpu(
    a: np.ndarray, a_shape: Sequence[int], b: np.ndarray, b_shape: Sequence[int]
) -> tuple[np.ndarray, tuple[int, int]]:
    """
    Compute the row-major product of an (m, k) and a (k, n) matrix.

    Returns
    -------
    tuple[np.ndarray, tuple[int, int]]
        Flat (m * n) output buffer and the output shape `(m, n)`.

    Raises
    ------
    ShapeMismatchError
        If either operand is not 2-D or the inner dimensions differ.
    """
    m, k = require_2d("matmul", a_shape)
    k2, n = require_2d("matmul", b_shape)
    if k != k2:
        raise ShapeMismatchError(
            f"matmul shape mismatch: {tuple(a_shape)} @ {tuple(b_shape)}.",
            expected=k,
            actual=k2,
        )

    out = np.matmul(a.reshape(m, k), b.reshape(k, n))
    return out.reshape(-1), (m, n)


def transpose2d_cpu(
    a: np.ndarray, a_shape: Sequence[int]
) -> tuple[np.ndarray, tuple[int, int]]:
    """
    Transpose an (m, n) matrix into an (n, m) matrix.

    Raises
    ------
    ShapeMismatchError
        If the operand is not 2-D.
    """
    m, n = require_2d("transpose", a_shape)
    out = np.ascontiguousarray(a.reshape(m, n).T)
    return out.reshape(-1), (n, m)
