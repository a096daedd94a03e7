"""
Shape-, broadcast-, and arithmetic-related exceptions for keygrad.

This module defines the error taxonomy raised by tensor construction,
indexing, forward operations, and the backward engine. All errors are
raised synchronously by the call that detects them; no output tensor is
produced when one is raised.

The classes subclass the closest built-in exception so callers that only
care about the broad category (e.g., `ValueError`) can still catch them.
"""

from typing import Any


class ShapeMismatchError(ValueError):
    """
    Raised when a shape, element count, or rank does not match what an
    operation requires.

    Typical triggers are constructing a tensor from a value sequence of the
    wrong length, reshaping to a different element count, supplying a
    backward seed of the wrong size, or passing non-2-D operands to
    `matmul` / `transpose`.

    Attributes
    ----------
    expected : Any
        The shape, element count, or rank that was required.
    actual : Any
        The shape, element count, or rank that was received.
    """

    def __init__(self, message: str, *, expected: Any = None, actual: Any = None) -> None:
        """
        Initialize the ShapeMismatchError.

        Parameters
        ----------
        message : str
            Human-readable description of the mismatch.
        expected : Any, optional
            The required shape / count / rank.
        actual : Any, optional
            The received shape / count / rank.
        """
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class IndexRankError(ShapeMismatchError, IndexError):
    """
    Raised when a multi-index has a different number of coordinates than
    the tensor has dimensions.
    """

    def __init__(self, rank: int, got: int) -> None:
        super().__init__(
            f"Index rank mismatch: tensor has {rank} dimension(s), got {got} index value(s).",
            expected=rank,
            actual=got,
        )


class BroadcastError(ValueError):
    """
    Raised when two shapes cannot be broadcast together.

    Two dimensions are compatible when they are equal or one of them is 1,
    after right-aligning both shapes.

    Attributes
    ----------
    shape_a : tuple[int, ...]
        Shape of the left operand.
    shape_b : tuple[int, ...]
        Shape of the right operand.
    """

    def __init__(self, shape_a: tuple, shape_b: tuple) -> None:
        """
        Initialize the BroadcastError.

        Parameters
        ----------
        shape_a : tuple[int, ...]
            Shape of the left operand.
        shape_b : tuple[int, ...]
            Shape of the right operand.
        """
        super().__init__(f"Shapes {shape_a} and {shape_b} cannot be broadcast together.")
        self.shape_a = tuple(shape_a)
        self.shape_b = tuple(shape_b)


class DivideByZeroError(ZeroDivisionError):
    """
    Raised when a division (forward or backward) meets an exact-zero divisor.

    Attributes
    ----------
    op : str
        The name of the operation that hit the zero divisor.
    """

    def __init__(self, op: str = "div") -> None:
        super().__init__(f"{op}: division by zero.")
        self.op = op
