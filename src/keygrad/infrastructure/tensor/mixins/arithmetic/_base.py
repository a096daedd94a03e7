"""
Arithmetic mixin defining Tensor operators.

This module declares :class:`TensorMixinArithmetic`, the mixin that gives the
Tensor handle its Python operators (``+``, ``-``, ``*``, ``/``, unary ``-``,
``@``) and the `matmul` / `transpose` methods.

The mixin does not compute anything itself. Every operator forwards to the
matching functional dispatcher in :mod:`keygrad.infrastructure._functional`,
which validates shapes, runs the CPU kernel, and attaches the backward rule.
The dispatchers are imported lazily to avoid a circular import with the
Tensor module.
"""

from typing import Union
from abc import ABC

from .....domain._tensor import ITensor

Number = Union[int, float]


class TensorMixinArithmetic(ABC):
    """
    Mixin providing elementwise arithmetic and 2-D matrix operators.

    Notes
    -----
    - Binary operators broadcast tensor operands against each other.
    - Python scalars are lifted to constant scalar tensors (shape ``()``)
      that do not require gradients.
    - Backward rules described in method docstrings are contractual.
    """

    # ----------------------------
    # Addition
    # ----------------------------
    def __add__(self: ITensor, other: Union["ITensor", Number]) -> "ITensor":
        """
        Elementwise addition with broadcasting.

        Notes
        -----
        Backward rule:
        - ``d(a + b) / da = 1``
        - ``d(a + b) / db = 1``
        (each summed over the dimensions that operand was broadcast along)
        """
        from ...._functional import add

        return add(self, other)

    def __radd__(self: ITensor, other: Number) -> "ITensor":
        from ...._functional import add

        return add(other, self)

    # ----------------------------
    # Subtraction
    # ----------------------------
    def __sub__(self: ITensor, other: Union["ITensor", Number]) -> "ITensor":
        """
        Elementwise subtraction with broadcasting.

        Notes
        -----
        Backward rule:
        - ``d(a - b) / da = 1``
        - ``d(a - b) / db = -1``
        """
        from ...._functional import sub

        return sub(self, other)

    def __rsub__(self: ITensor, other: Number) -> "ITensor":
        """
        Right-hand subtraction to support ``scalar - Tensor``.
        """
        from ...._functional import sub

        return sub(other, self)

    # ----------------------------
    # Multiplication
    # ----------------------------
    def __mul__(self: ITensor, other: Union["ITensor", Number]) -> "ITensor":
        """
        Elementwise multiplication with broadcasting.

        Notes
        -----
        Backward rule:
        - ``d(a * b) / da = b``
        - ``d(a * b) / db = a``
        """
        from ...._functional import mul

        return mul(self, other)

    def __rmul__(self: ITensor, other: Number) -> "ITensor":
        from ...._functional import mul

        return mul(other, self)

    # ----------------------------
    # True division
    # ----------------------------
    def __truediv__(self: ITensor, other: Union["ITensor", Number]) -> "ITensor":
        """
        Elementwise true division with broadcasting.

        Raises
        ------
        DivideByZeroError
            If any divisor element is exactly zero.

        Notes
        -----
        Backward rule:
        - ``d(a / b) / da = 1 / b``
        - ``d(a / b) / db = -a / (b^2)``
        """
        from ...._functional import div

        return div(self, other)

    def __rtruediv__(self: ITensor, other: Number) -> "ITensor":
        """
        Right-hand true division to support ``scalar / Tensor``.
        """
        from ...._functional import div

        return div(other, self)

    # ----------------------------
    # Negation
    # ----------------------------
    def __neg__(self: ITensor) -> "ITensor":
        """
        Elementwise negation.

        Notes
        -----
        Backward rule: ``d(-a) / da = -1``
        """
        from ...._functional import neg

        return neg(self)

    # ----------------------------
    # Matrix operations
    # ----------------------------
    def matmul(self: ITensor, other: "ITensor") -> "ITensor":
        """
        2-D matrix product ``self @ other``.

        Raises
        ------
        ShapeMismatchError
            If either operand is not 2-D or the inner dimensions differ.

        Notes
        -----
        Backward rule, with ``g`` the output gradient:
        - ``dA = g @ B^T``
        - ``dB = A^T @ g``
        """
        from ...._functional import matmul

        return matmul(self, other)

    def __matmul__(self: ITensor, other: "ITensor") -> "ITensor":
        return self.matmul(other)

    def transpose(self: ITensor) -> "ITensor":
        """
        2-D transpose. Produces a new tensor with its own storage.

        Raises
        ------
        ShapeMismatchError
            If the operand is not 2-D.
        """
        from ...._functional import transpose

        return transpose(self)

    @property
    def T(self: ITensor) -> "ITensor":
        return self.transpose()
