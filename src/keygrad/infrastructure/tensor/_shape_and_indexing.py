"""
Tensor shape, indexing, and reshape mixin (NumPy CPU backend).

This module defines `TensorShapeAndIndexingMixin`, which implements element
access and shape-metadata rewriting for the concrete Tensor handle.

Design notes
------------
- The host class must expose `_storage` (a `Storage`) and `shape`.
- `reshape` and `flatten` never copy: they rewrite the shape stored on the
  shared `Storage`, so every alias of the handle observes the new shape.
- Element access addresses the flat row-major buffer. An integer key is a
  flat index; a tuple key is a multi-index converted via row-major strides.
"""

from __future__ import annotations

import operator
from typing import Any, Sequence, Union

from ...domain._errors import ShapeMismatchError
from ...domain._tensor import ITensor
from ..ops.broadcast_cpu import ravel_index, shape_numel


class TensorShapeAndIndexingMixin(ITensor):
    """
    Element access and shape metadata operations for the Tensor handle.

    Notes
    -----
    - `t[i]` reads the i-th element of the flat buffer (negative indices count
      from the end).
    - `t[i, j, ...]` reads by multi-index; the number of coordinates must
      equal the tensor's rank.
    - Assignment (`t[key] = value`) follows the same addressing and writes
      through to every alias.
    """

    def _flat_index(self, key: Any) -> int:
        """
        Resolve an indexing key into a flat buffer offset.

        Raises
        ------
        IndexError
            If a flat index or a coordinate is out of range.
        IndexRankError
            If a multi-index has the wrong number of coordinates.
        TypeError
            If the key is neither an integer nor a tuple of integers.
        """
        if isinstance(key, tuple):
            return ravel_index(key, self.shape)

        try:
            i = operator.index(key)
        except TypeError:
            raise TypeError(
                f"Tensor indices must be integers or tuples of integers, got {type(key)!r}"
            ) from None

        n = self.numel()
        if i < 0:
            i += n
        if not 0 <= i < n:
            raise IndexError(f"Flat index {key} out of range for tensor with {n} elements.")
        return i

    def __getitem__(self, key: Any) -> float:
        """
        Read one element by flat index or multi-index.

        Returns
        -------
        float
            The element value as a Python float.
        """
        return float(self._storage.data[self._flat_index(key)])

    def __setitem__(self, key: Any, value: float) -> None:
        """
        Write one element by flat index or multi-index.

        Notes
        -----
        This bypasses autograd: the write is not recorded in any graph, and
        backward rules that captured this tensor will observe the new value.
        """
        self._storage.data[self._flat_index(key)] = float(value)

    def reshape(self, new_shape: Union[int, Sequence[int]]) -> "ITensor":
        """
        Rewrite the shape metadata of the shared storage.

        Parameters
        ----------
        new_shape : int or Sequence[int]
            Target shape. At most one dimension may be -1, in which case it
            is inferred from the element count.

        Returns
        -------
        Tensor
            `self`, now reporting `new_shape`. Every alias sharing this
            tensor's storage observes the change.

        Raises
        ------
        ShapeMismatchError
            If the target element count differs from `numel()`, more than one
            dimension is -1, or a dimension is negative.
        """
        if isinstance(new_shape, int):
            new_shape = (new_shape,)
        dims = [int(d) for d in new_shape]
        n = self.numel()

        inferred = [i for i, d in enumerate(dims) if d == -1]
        if len(inferred) > 1:
            raise ShapeMismatchError(
                f"Only one dimension can be inferred, got shape {tuple(dims)}.",
                actual=tuple(dims),
            )
        if any(d < -1 for d in dims):
            raise ShapeMismatchError(
                f"Invalid negative dimension in shape {tuple(dims)}.", actual=tuple(dims)
            )
        if inferred:
            known = shape_numel(d for d in dims if d != -1)
            if known == 0 or n % known != 0:
                raise ShapeMismatchError(
                    f"Cannot reshape tensor of {n} elements into shape {tuple(dims)}.",
                    expected=n,
                    actual=tuple(dims),
                )
            dims[inferred[0]] = n // known

        target = tuple(dims)
        if shape_numel(target) != n:
            raise ShapeMismatchError(
                f"Cannot reshape tensor of shape {self.shape} ({n} elements) "
                f"into shape {target} ({shape_numel(target)} elements).",
                expected=n,
                actual=shape_numel(target),
            )

        self._storage.shape = target
        return self

    def flatten(self) -> "ITensor":
        """
        Reshape to a single dimension of size `numel()` (in place, shared).
        """
        return self.reshape((self.numel(),))
