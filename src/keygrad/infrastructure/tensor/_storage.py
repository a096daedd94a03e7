from typing import Optional, TYPE_CHECKING
from dataclasses import dataclass, field

import numpy as np

if TYPE_CHECKING:
    from ...domain._grad_fn import GradFn


@dataclass(eq=False)
class Storage:
    """
    Owned buffer and autograd state shared by every handle onto one tensor.

    A `Storage` is the unit of identity in the computation graph: two tensor
    handles denote the same graph node exactly when they point at the same
    `Storage` object. Equality and hashing are therefore identity-based.

    Attributes
    ----------
    data : np.ndarray
        Flat row-major value buffer. `len(data) == prod(shape)`.
    shape : tuple[int, ...]
        Dimension sizes. Rewritten in place by `reshape`.
    grad : Optional[np.ndarray]
        Flat gradient buffer, same length and dtype as `data`. Allocated on
        first need (enabling `requires_grad`, or the first accumulation).
    requires_grad : bool
        Whether backward passes should accumulate gradient into `grad`.
    grad_fn : Optional[GradFn]
        Backward rule of the operation that produced this tensor. Never set
        on leaves.
    pending_dependents : int
        Number of consumers that still have to contribute gradient during an
        in-flight backward pass. Meaningless outside of one.
    """

    data: np.ndarray
    shape: tuple[int, ...]
    grad: Optional[np.ndarray] = None
    requires_grad: bool = False
    grad_fn: Optional["GradFn"] = None
    pending_dependents: int = field(default=0, repr=False)

    @property
    def numel(self) -> int:
        return int(self.data.shape[0])

    def ensure_grad(self) -> np.ndarray:
        """
        Allocate a zero gradient buffer if none exists and return it.
        """
        if self.grad is None:
            self.grad = np.zeros_like(self.data)
        return self.grad

    def accumulate_grad(self, g: np.ndarray) -> None:
        """
        Add `g` into the gradient buffer in place.

        Parameters
        ----------
        g : np.ndarray
            Flat contribution with one entry per element.

        Raises
        ------
        ValueError
            If `g` does not have one entry per element.
        """
        g = np.asarray(g).reshape(-1)
        if g.shape[0] != self.numel:
            raise ValueError(f"Grad size mismatch: expected {self.numel}, got {g.shape[0]}")
        buf = self.ensure_grad()
        buf += g.astype(buf.dtype, copy=False)

    def zero_grad(self) -> None:
        if self.grad is not None:
            self.grad.fill(0.0)
