"""
Broadcast and index utilities (NumPy CPU backend).

This module provides the shape-broadcasting rule and the index conversions
used by every elementwise forward kernel and every elementwise backward rule.

Index model
-----------
Tensors are stored as flat row-major buffers. A linear index `i` into a
buffer of shape `s` corresponds to the multi-index returned by
`unravel_index(i, s)`. When an operand of shape `in_shape` is broadcast to a
larger `out_shape`, an output multi-index maps back to the operand by:

1) right-aligning `in_shape` against `out_shape`,
2) dropping the leading output coordinates the operand does not have, and
3) zeroing every coordinate on a dimension where the operand's size is 1.

`broadcast_source_indices` applies this mapping to *all* output positions at
once, producing an integer array that can be used both to gather operand
values in the forward pass and to scatter-add gradients in the backward pass.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ...domain._errors import BroadcastError, IndexRankError


def shape_numel(shape: Sequence[int]) -> int:
    """
    Return the number of elements described by `shape`.

    An empty shape describes a single (scalar) element.
    """
    n = 1
    for d in shape:
        n *= int(d)
    return n


def row_major_strides(shape: Sequence[int]) -> tuple[int, ...]:
    """
    Compute row-major (C-order) element strides for `shape`.

    Parameters
    ----------
    shape : Sequence[int]
        Tensor shape.

    Returns
    -------
    tuple[int, ...]
        Stride (in elements) of each dimension; the last dimension has
        stride 1.
    """
    strides = [1] * len(shape)
    acc = 1
    for i in range(len(shape) - 1, -1, -1):
        strides[i] = acc
        acc *= int(shape[i])
    return tuple(strides)


def broadcast_shape(a: Sequence[int], b: Sequence[int]) -> tuple[int, ...]:
    """
    Compute the broadcast result shape of two operand shapes.

    Both shapes are right-aligned and the shorter one is padded with leading
    ones. Each aligned pair of dimensions must be equal or contain a 1; the
    result dimension is the non-1 side of the pair (so a size-0 dimension
    broadcast against 1 stays 0).

    Parameters
    ----------
    a : Sequence[int]
        Left operand shape.
    b : Sequence[int]
        Right operand shape.

    Returns
    -------
    tuple[int, ...]
        The broadcast output shape.

    Raises
    ------
    BroadcastError
        If an aligned dimension pair is not equal and neither side is 1.
    """
    a = tuple(int(d) for d in a)
    b = tuple(int(d) for d in b)
    ndim = max(len(a), len(b))
    pa = (1,) * (ndim - len(a)) + a
    pb = (1,) * (ndim - len(b)) + b

    out: list[int] = []
    for da, db in zip(pa, pb):
        if da != db and da != 1 and db != 1:
            raise BroadcastError(a, b)
        out.append(db if da == 1 else da)
    return tuple(out)


def unravel_index(linear: int, shape: Sequence[int]) -> tuple[int, ...]:
    """
    Convert a linear row-major index into a multi-index for `shape`.
    """
    idx = [0] * len(shape)
    rem = int(linear)
    for i in range(len(shape) - 1, -1, -1):
        d = int(shape[i])
        idx[i] = rem % d if d else 0
        rem = rem // d if d else 0
    return tuple(idx)


def ravel_index(idx: Sequence[int], shape: Sequence[int]) -> int:
    """
    Convert a multi-index into a linear row-major index for `shape`.

    Parameters
    ----------
    idx : Sequence[int]
        One coordinate per dimension. Negative coordinates count from the end
        of their dimension.
    shape : Sequence[int]
        Tensor shape.

    Returns
    -------
    int
        Linear index into a flat row-major buffer.

    Raises
    ------
    IndexRankError
        If `len(idx) != len(shape)`.
    IndexError
        If any coordinate is out of range for its dimension.
    """
    if len(idx) != len(shape):
        raise IndexRankError(len(shape), len(idx))

    offset = 0
    for axis, (i, d, stride) in enumerate(zip(idx, shape, row_major_strides(shape))):
        i = int(i)
        if i < 0:
            i += d
        if not 0 <= i < d:
            raise IndexError(
                f"Index {idx[axis]} out of range for axis {axis} with size {d}."
            )
        offset += i * stride
    return offset


def ravel_index_broadcast(out_idx: Sequence[int], in_shape: Sequence[int]) -> int:
    """
    Map an output multi-index to the linear index of a broadcast operand.

    Parameters
    ----------
    out_idx : Sequence[int]
        Multi-index into the broadcast output shape.
    in_shape : Sequence[int]
        Declared shape of the operand (rank <= len(out_idx)).

    Returns
    -------
    int
        Linear index into the operand's flat buffer.
    """
    pad = len(out_idx) - len(in_shape)
    offset = 0
    for j, (d, stride) in enumerate(zip(in_shape, row_major_strides(in_shape))):
        coord = 0 if d == 1 else int(out_idx[pad + j])
        offset += coord * stride
    return offset


def broadcast_source_indices(
    out_shape: Sequence[int], in_shape: Sequence[int]
) -> np.ndarray:
    """
    Map every linear output index to the linear index of a broadcast operand.

    This is the vectorized form of applying `unravel_index` followed by
    `ravel_index_broadcast` to each output position.

    Parameters
    ----------
    out_shape : Sequence[int]
        Broadcast output shape.
    in_shape : Sequence[int]
        Operand shape; must broadcast to `out_shape`.

    Returns
    -------
    np.ndarray
        int64 array of length `prod(out_shape)`.

    Raises
    ------
    BroadcastError
        If `in_shape` cannot be broadcast to `out_shape`.
    """
    out_shape = tuple(int(d) for d in out_shape)
    in_shape = tuple(int(d) for d in in_shape)
    if len(in_shape) > len(out_shape):
        raise BroadcastError(in_shape, out_shape)

    n_out = shape_numel(out_shape)
    src = np.zeros(n_out, dtype=np.int64)
    if n_out == 0 or not in_shape:
        return src

    coords = np.unravel_index(np.arange(n_out, dtype=np.int64), out_shape)
    pad = len(out_shape) - len(in_shape)
    for j, (d, stride) in enumerate(zip(in_shape, row_major_strides(in_shape))):
        od = out_shape[pad + j]
        if d == 1:
            continue
        if d != od:
            raise BroadcastError(in_shape, out_shape)
        src += coords[pad + j] * stride
    return src


def scatter_add(n: int, index_map: np.ndarray, values: np.ndarray) -> np.ndarray:
    """
    Sum `values` into a zero buffer of length `n` at positions `index_map`.

    This is the inverse of gathering through `broadcast_source_indices`: every
    output element's contribution lands on the source element it was read
    from, and contributions to the same source element are summed. It is the
    single reduction rule used by every elementwise backward.

    Parameters
    ----------
    n : int
        Length of the source (operand) buffer.
    index_map : np.ndarray
        Source index per output element.
    values : np.ndarray
        Contribution per output element.

    Returns
    -------
    np.ndarray
        float64 array of length `n`.
    """
    return np.bincount(index_map, weights=values, minlength=n).astype(np.float64, copy=False)
