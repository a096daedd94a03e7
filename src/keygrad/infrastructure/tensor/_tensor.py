"""
Concrete Tensor handle (NumPy CPU backend).

This module provides `Tensor`, a lightweight handle onto a shared `Storage`
that satisfies the domain-level `ITensor` protocol.

A `Storage` owns:
- the flat row-major value buffer and the shape metadata,
- the (lazily allocated) flat gradient buffer,
- the `requires_grad` flag and the optional `GradFn` of the producing op.

Design notes
------------
- Handles are cheap. `alias()` (and `copy.copy`) returns a new handle on the
  same storage; nothing is deep-copied. Mutations through any handle
  (reshape, element writes, gradient accumulation) are visible through all.
- Backward rules capture operand handles, so a storage stays alive as long
  as any handle or any reachable `GradFn` refers to it.
- Arithmetic operators are provided by `TensorMixinArithmetic` and routed to
  the functional dispatchers in `keygrad.infrastructure._functional`.
"""

from __future__ import annotations

import numbers
from typing import Any, Optional, Sequence, Union

import numpy as np

from ...domain._errors import ShapeMismatchError
from ...domain._grad_fn import GradFn
from ..ops.broadcast_cpu import shape_numel
from ._storage import Storage
from ._shape_and_indexing import TensorShapeAndIndexingMixin
from .mixins.arithmetic import TensorMixinArithmetic

Number = Union[int, float]

DEFAULT_DTYPE = np.float32
"""Element dtype used when a tensor is constructed without an explicit dtype."""


def _normalize_shape(shape: Union[int, Sequence[int]]) -> tuple[int, ...]:
    """
    Validate and normalize a user-provided shape into a tuple of ints.

    Raises
    ------
    TypeError
        If a dimension is not an integer.
    ShapeMismatchError
        If a dimension is negative.
    """
    if isinstance(shape, numbers.Integral):
        shape = (shape,)
    dims: list[int] = []
    for d in shape:
        if not isinstance(d, numbers.Integral) or isinstance(d, bool):
            raise TypeError(f"Shape dimensions must be integers, got {d!r}")
        if d < 0:
            raise ShapeMismatchError(
                f"Shape dimensions must be non-negative, got {tuple(shape)}.",
                actual=tuple(shape),
            )
        dims.append(int(d))
    return tuple(dims)


class Tensor(TensorMixinArithmetic, TensorShapeAndIndexingMixin):
    """
    Reference-counted handle onto one `Storage`.

    Parameters
    ----------
    shape : int or Sequence[int]
        Tensor shape. An empty shape `()` describes a scalar tensor.
    value : None, Number, or array-like, optional
        - None: zero-filled.
        - Number: every element set to `value`.
        - array-like: explicit values in row-major order; the element count
          must equal `prod(shape)`.
    requires_grad : bool, optional
        Whether backward passes should accumulate gradient into this tensor.
        Defaults to False.
    dtype : np.dtype, optional
        Element dtype; must be a floating-point dtype. Defaults to
        `DEFAULT_DTYPE` (float32).

    Raises
    ------
    ShapeMismatchError
        If explicit values do not match the shape's element count, or a
        dimension is negative.
    TypeError
        If `dtype` is not a floating-point dtype.
    """

    def __initialize_data(
        self, shape: tuple[int, ...], value: Any, dtype: np.dtype
    ) -> np.ndarray:
        """
        Allocate the flat value buffer for a new tensor.
        """
        n = shape_numel(shape)

        if value is None:
            return np.zeros(n, dtype=dtype)

        if isinstance(value, numbers.Real) and not isinstance(value, bool):
            return np.full(n, float(value), dtype=dtype)

        values = np.asarray(value, dtype=dtype).reshape(-1)
        if values.shape[0] != n:
            raise ShapeMismatchError(
                f"Data size {values.shape[0]} does not match tensor shape {shape} "
                f"({n} elements).",
                expected=n,
                actual=values.shape[0],
            )
        return values.copy()

    def __init__(
        self,
        shape: Union[int, Sequence[int]],
        value: Optional[Union[Number, Sequence[float], np.ndarray]] = None,
        *,
        requires_grad: bool = False,
        dtype: np.dtype = DEFAULT_DTYPE,
    ) -> None:
        shape = _normalize_shape(shape)
        dtype = np.dtype(dtype)
        if not np.issubdtype(dtype, np.floating):
            raise TypeError(f"Tensor dtype must be a floating-point dtype, got {dtype}")
        data = self.__initialize_data(shape, value, dtype)
        self._storage = Storage(data=data, shape=shape)
        self.set_requires_grad(requires_grad)

    # ----------------------------
    # Alternate constructors
    # ----------------------------
    @classmethod
    def _from_storage(cls, storage: Storage) -> "Tensor":
        """
        Construct a new handle onto an existing storage (no copy).
        """
        obj = cls.__new__(cls)
        obj._storage = storage
        return obj

    @classmethod
    def _from_flat(
        cls,
        data: np.ndarray,
        shape: tuple[int, ...],
        *,
        requires_grad: bool = False,
    ) -> "Tensor":
        """
        Wrap a freshly computed flat buffer without copying it.

        Intended for operation outputs whose buffer is not referenced anywhere
        else.
        """
        data = np.asarray(data).reshape(-1)
        if data.shape[0] != shape_numel(shape):
            raise ShapeMismatchError(
                f"Data size {data.shape[0]} does not match tensor shape {shape}.",
                expected=shape_numel(shape),
                actual=data.shape[0],
            )
        out = cls._from_storage(Storage(data=data, shape=tuple(shape)))
        out.set_requires_grad(requires_grad)
        return out

    @classmethod
    def _from_numpy(cls, arr: Any, *, requires_grad: bool = False) -> "Tensor":
        """
        Construct a tensor with the shape and values of a NumPy array-like.
        """
        arr = np.asarray(arr)
        dtype = arr.dtype if np.issubdtype(arr.dtype, np.floating) else DEFAULT_DTYPE
        return cls(arr.shape, arr, requires_grad=requires_grad, dtype=dtype)

    @classmethod
    def zeros(cls, shape, *, requires_grad: bool = False) -> "Tensor":
        return cls(shape, requires_grad=requires_grad)

    @classmethod
    def ones(cls, shape, *, requires_grad: bool = False) -> "Tensor":
        return cls(shape, 1.0, requires_grad=requires_grad)

    @classmethod
    def full(cls, shape, value: float, *, requires_grad: bool = False) -> "Tensor":
        """
        Construct a tensor with every element set to `value`.
        """
        return cls(shape, float(value), requires_grad=requires_grad)

    def alias(self) -> "Tensor":
        """
        Return a new handle sharing this tensor's storage.

        Returns
        -------
        Tensor
            A handle for which `alias.shares_storage(self)` is True.
        """
        return type(self)._from_storage(self._storage)

    def __copy__(self) -> "Tensor":
        return self.alias()

    def clone(self) -> "Tensor":
        """
        Return a deep copy of the values and shape with no autograd history.

        The clone has its own storage, `requires_grad=False`, no gradient
        buffer, and no `grad_fn`.
        """
        return type(self)._from_flat(self._storage.data.copy(), self.shape)

    def shares_storage(self, other: "Tensor") -> bool:
        return self._storage is other._storage

    # ----------------------------
    # Metadata
    # ----------------------------
    def __repr__(self) -> str:
        s = self._storage
        extra = ""
        if s.requires_grad:
            extra = ", requires_grad=True"
        if s.grad_fn is not None:
            extra += f", grad_fn={s.grad_fn.name}"
        return f"Tensor(shape={s.shape}, dtype={s.data.dtype}{extra})"

    @property
    def shape(self) -> tuple[int, ...]:
        """
        Return the tensor shape (as currently stored on the shared storage).
        """
        return self._storage.shape

    @property
    def ndim(self) -> int:
        return len(self._storage.shape)

    @property
    def dtype(self) -> np.dtype:
        return self._storage.data.dtype

    @property
    def data(self) -> np.ndarray:
        """
        Return the flat row-major value buffer.

        Notes
        -----
        The returned array is the live buffer, shared by every alias. Writing
        into it bypasses autograd.
        """
        return self._storage.data

    def numel(self) -> int:
        """
        Return the total number of elements in the tensor.

        Returns
        -------
        int
            Product of all dimensions in the tensor shape.
        """
        return self._storage.numel

    def to_numpy(self) -> np.ndarray:
        """
        Return a copy of the values as an ndarray shaped like the tensor.
        """
        return self._storage.data.reshape(self.shape).copy()

    def item(self) -> float:
        """
        Return the value of a single-element tensor as a Python float.

        Raises
        ------
        ShapeMismatchError
            If the tensor does not hold exactly one element.
        """
        if self.numel() != 1:
            raise ShapeMismatchError(
                f"item() requires a single-element tensor, got shape {self.shape}.",
                expected=1,
                actual=self.numel(),
            )
        return float(self._storage.data[0])

    # ----------------------------
    # Autograd fields
    # ----------------------------
    @property
    def requires_grad(self) -> bool:
        """
        Indicate whether this tensor should accumulate gradients.
        """
        return self._storage.requires_grad

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None:
        self.set_requires_grad(value)

    def set_requires_grad(self, value: bool) -> None:
        """
        Enable or disable gradient accumulation for this tensor.

        Parameters
        ----------
        value : bool
            New flag value. Enabling it for the first time allocates a
            zero-filled gradient buffer.
        """
        s = self._storage
        s.requires_grad = bool(value)
        if s.requires_grad:
            s.ensure_grad()

    @property
    def grad(self) -> Optional[np.ndarray]:
        """
        Return a copy of the accumulated gradient, shaped like the tensor.

        Returns
        -------
        Optional[np.ndarray]
            The gradient, or None if no gradient buffer has been allocated.
        """
        g = self._storage.grad
        if g is None:
            return None
        return g.reshape(self.shape).copy()

    @property
    def grad_fn(self) -> Optional[GradFn]:
        return self._storage.grad_fn

    @property
    def is_leaf(self) -> bool:
        return self._storage.grad_fn is None

    def _set_grad_fn(self, grad_fn: Optional[GradFn]) -> None:
        """
        Attach or detach the backward rule.

        Notes
        -----
        This is an internal hook intended for use by the operation
        dispatchers.
        """
        self._storage.grad_fn = grad_fn

    def _accumulate_grad_(self, g: np.ndarray) -> None:
        """
        In-place accumulate the flat contribution `g` into this tensor's grad.
        """
        self._storage.accumulate_grad(g)

    def zero_grad(self) -> None:
        """
        Reset the gradient buffer to all zeros.

        Notes
        -----
        Training loops typically call `zero_grad()` before backprop to avoid
        unintentional accumulation across iterations. This is a no-op when no
        gradient buffer has been allocated.
        """
        self._storage.zero_grad()

    def backward(self, seed: Optional[Any] = None) -> None:
        """
        Backpropagate gradients from this tensor through the autograd graph.

        Parameters
        ----------
        seed : Optional[Tensor | Number | array-like], optional
            Gradient w.r.t. this tensor, with `numel()` elements. If omitted,
            this tensor must hold exactly one element and the seed is 1.0.

        Raises
        ------
        ShapeMismatchError
            If no seed is given for a multi-element tensor, or the seed has
            the wrong number of elements.

        Notes
        -----
        Gradients of leaves accumulate across calls; see
        `keygrad.infrastructure.autograd.backward` for the full contract.
        """
        from ..autograd._engine import backward as run_backward

        run_backward(self, seed)
