"""
Forward operation dispatchers with autograd support.

This module contains the public functional API for every differentiable
operation. Each dispatcher:

- lifts Python scalars into constant scalar tensors (shape ``()``),
- validates operand shapes and runs the matching CPU kernel,
- wraps the flat result in a new Tensor, and
- when at least one operand requires gradients, marks the result as
  requiring gradients and attaches the matching `GradFn`, which captures
  the operand handles.

Operator overloads on `Tensor` (``+``, ``-``, ``*``, ``/``, unary ``-``,
``@``) route here.
"""

from __future__ import annotations

import numbers
from typing import Optional, Sequence, Type, Union

import numpy as np

from .tensor._tensor import DEFAULT_DTYPE, Tensor
from .ops.elementwise_cpu import add_cpu, div_cpu, mul_cpu, neg_cpu, sub_cpu
from .ops.matmul_cpu import matmul2d_cpu, transpose2d_cpu
from .autograd._grad_fns import (
    AddGradFn,
    DivGradFn,
    MatMulGradFn,
    MulGradFn,
    NegGradFn,
    SubGradFn,
    TransposeGradFn,
)

Number = Union[int, float]
Operand = Union[Tensor, Number]


def tensor(
    shape: Union[int, Sequence[int]],
    value: Optional[Union[Number, Sequence[float], np.ndarray]] = None,
    *,
    requires_grad: bool = False,
) -> Tensor:
    """
    Construct a tensor.

    Parameters
    ----------
    shape : int or Sequence[int]
        Tensor shape.
    value : None, Number, or array-like, optional
        None for zeros, a scalar fill value, or explicit row-major values.
    requires_grad : bool, optional
        Whether gradients should be accumulated into the tensor.

    Returns
    -------
    Tensor
        The new leaf tensor.

    Raises
    ------
    ShapeMismatchError
        If explicit values do not match the shape's element count.
    """
    return Tensor(shape, value, requires_grad=requires_grad)


def _as_tensor(x: Operand, like: Optional[Tensor]) -> Tensor:
    """
    Convert an operand into a Tensor.

    Tensors are returned as-is. Real scalars become a constant scalar tensor
    of shape ``()`` (which broadcasts against any shape) that does not require
    gradients.

    Raises
    ------
    TypeError
        If `x` is neither a Tensor nor a real scalar.
    """
    if isinstance(x, Tensor):
        return x
    if isinstance(x, numbers.Real) and not isinstance(x, bool):
        dtype = like.dtype if like is not None else DEFAULT_DTYPE
        return Tensor((), float(x), dtype=dtype)
    raise TypeError(f"Unsupported operand type: {type(x)!r}")


def _binary_operands(a: Operand, b: Operand) -> tuple[Tensor, Tensor]:
    if not isinstance(a, Tensor) and not isinstance(b, Tensor):
        raise TypeError(
            f"At least one operand must be a Tensor, got {type(a)!r} and {type(b)!r}"
        )
    like = a if isinstance(a, Tensor) else b
    return _as_tensor(a, like), _as_tensor(b, like)


def _result_requires_grad(*parents: Tensor) -> bool:
    return any(p.requires_grad for p in parents)


def _finish(
    data: np.ndarray,
    shape: Sequence[int],
    grad_fn_cls: Type,
    *operands: Tensor,
    **grad_fn_kwargs,
) -> Tensor:
    """
    Wrap a kernel result and attach the backward rule when needed.
    """
    req = _result_requires_grad(*operands)
    out = Tensor._from_flat(data, tuple(shape), requires_grad=req)
    if req:
        out._set_grad_fn(grad_fn_cls(*operands, **grad_fn_kwargs))
    return out


# ----------------------------
# Elementwise
# ----------------------------
def add(a: Operand, b: Operand) -> Tensor:
    """
    Elementwise ``a + b`` with broadcasting.

    Raises
    ------
    BroadcastError
        If the operand shapes are incompatible.
    """
    a, b = _binary_operands(a, b)
    data, shape = add_cpu(a.data, a.shape, b.data, b.shape)
    return _finish(data, shape, AddGradFn, a, b, out_shape=shape)


def sub(a: Operand, b: Operand) -> Tensor:
    """
    Elementwise ``a - b`` with broadcasting.

    Raises
    ------
    BroadcastError
        If the operand shapes are incompatible.
    """
    a, b = _binary_operands(a, b)
    data, shape = sub_cpu(a.data, a.shape, b.data, b.shape)
    return _finish(data, shape, SubGradFn, a, b, out_shape=shape)


def mul(a: Operand, b: Operand) -> Tensor:
    """
    Elementwise ``a * b`` with broadcasting.

    Raises
    ------
    BroadcastError
        If the operand shapes are incompatible.
    """
    a, b = _binary_operands(a, b)
    data, shape = mul_cpu(a.data, a.shape, b.data, b.shape)
    return _finish(data, shape, MulGradFn, a, b, out_shape=shape)


def div(a: Operand, b: Operand) -> Tensor:
    """
    Elementwise ``a / b`` with broadcasting.

    Raises
    ------
    DivideByZeroError
        If any divisor element (or a scalar divisor) is exactly zero.
    BroadcastError
        If the operand shapes are incompatible.
    """
    a, b = _binary_operands(a, b)
    data, shape = div_cpu(a.data, a.shape, b.data, b.shape)
    return _finish(data, shape, DivGradFn, a, b, out_shape=shape)


def neg(a: Tensor) -> Tensor:
    """
    Elementwise ``-a``.
    """
    a = _as_tensor(a, None)
    return _finish(neg_cpu(a.data), a.shape, NegGradFn, a)


# ----------------------------
# Matrix
# ----------------------------
def matmul(a: Tensor, b: Tensor) -> Tensor:
    """
    2-D matrix product of an (m, k) and a (k, n) tensor.

    Raises
    ------
    ShapeMismatchError
        If either operand is not 2-D or the inner dimensions differ.
    TypeError
        If either operand is not a Tensor.
    """
    if not isinstance(a, Tensor) or not isinstance(b, Tensor):
        raise TypeError("matmul expects two Tensors")
    data, shape = matmul2d_cpu(a.data, a.shape, b.data, b.shape)
    return _finish(data, shape, MatMulGradFn, a, b)


def transpose(a: Tensor) -> Tensor:
    """
    2-D transpose into a new tensor.

    Raises
    ------
    ShapeMismatchError
        If the operand is not 2-D.
    TypeError
        If the operand is not a Tensor.
    """
    if not isinstance(a, Tensor):
        raise TypeError("transpose expects a Tensor")
    data, shape = transpose2d_cpu(a.data, a.shape)
    return _finish(data, shape, TransposeGradFn, a)


def backward(root: Tensor, seed=None) -> None:
    """
    Functional form of `Tensor.backward`.
    """
    root.backward(seed)
