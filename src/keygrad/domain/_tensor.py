"""
Tensor interface definitions.

This module defines the domain-level interface for tensor-like objects using
structural typing. The interface captures the properties required for tensors
to participate in computation graphs: shape metadata, element access, and the
autograd-facing hooks (`requires_grad`, `grad`, `grad_fn`, `backward`).

Notes
-----
The concrete implementation lives in `keygrad.infrastructure.tensor`. Domain
code (e.g., `GradFn`) types against this protocol so it does not depend on the
infrastructure layer.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, Union, runtime_checkable

Number = Union[int, float]


@runtime_checkable
class ITensor(Protocol):
    """
    Tensor interface.

    An `ITensor` is a handle onto a shared storage package holding a flat
    value buffer, a shape, and (lazily) a gradient buffer.

    Notes
    -----
    - Copying a handle shares the underlying storage; it never deep-copies
      values or gradients.
    - `grad_fn` is present only on tensors produced by an operation where at
      least one operand required gradients.
    """

    # ---------------------------------------------------------------------
    # Shape metadata
    # ---------------------------------------------------------------------
    @property
    def shape(self) -> tuple[int, ...]:
        """
        Return the shape of the tensor.

        Returns
        -------
        tuple[int, ...]
            The tensor's shape.
        """
        ...

    def numel(self) -> int:
        """
        Return the total number of elements in the tensor.

        Returns
        -------
        int
            Product of all dimensions in the tensor shape.
        """
        ...

    def reshape(self, new_shape: Sequence[int]) -> "ITensor":
        """
        Rewrite the shape metadata of the shared storage.

        Parameters
        ----------
        new_shape : Sequence[int]
            Requested shape. Must have the same element count.

        Returns
        -------
        ITensor
            The same handle, now reporting `new_shape`.
        """
        ...

    def flatten(self) -> "ITensor":
        """
        Reshape to a single dimension of size `numel()`.
        """
        ...

    def __getitem__(self, key: Any) -> float:
        """
        Read one element by flat index or by multi-index.
        """
        ...

    # ---------------------------------------------------------------------
    # Autograd flags and gradient storage
    # ---------------------------------------------------------------------
    @property
    def requires_grad(self) -> bool:
        """
        Indicate whether this tensor should accumulate gradients.

        Returns
        -------
        bool
            True if gradients should be tracked/accumulated, False otherwise.
        """
        ...

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None:
        """
        Enable or disable gradient accumulation for this tensor.
        """
        ...

    @property
    def grad(self) -> Optional[Any]:
        """
        Return the accumulated gradient reshaped to `shape`, or None if the
        gradient buffer has never been allocated.
        """
        ...

    @property
    def grad_fn(self) -> Optional[Any]:
        """
        Return the backward rule that produced this tensor, if any.
        """
        ...

    def zero_grad(self) -> None:
        """
        Reset the gradient buffer to all zeros.

        Notes
        -----
        This is a no-op when the gradient buffer has not been allocated.
        """
        ...

    def backward(self, seed: Optional[Any] = None) -> None:
        """
        Backpropagate gradients from this tensor through the autograd graph.

        Parameters
        ----------
        seed : Optional[Any], optional
            Gradient w.r.t. this tensor. If omitted, this tensor must hold a
            single element and the seed is 1.0.
        """
        ...
