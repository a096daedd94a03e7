"""
Backward-rule interface definitions.

This module defines the abstract base class for the local differentiation
rules attached to tensors produced by differentiable operations. A concrete
`GradFn` subclass captures the operand tensors of one operation and knows how
to route an incoming gradient into them.

Unlike function-level autograd systems where `backward` *returns* gradients,
a `GradFn` here writes its contributions directly into its parents' gradient
buffers. Ordering (making sure a node has received all of its gradient before
it propagates further) is the backward engine's job, never the rule's.
"""

from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np

from ._tensor import ITensor


class GradFn(ABC):
    """
    Abstract base class for per-operation backward rules.

    A `GradFn` represents a single node in the computation graph and
    encapsulates:
    - the operand tensors captured at operation time (shared handles, so
      they stay alive as long as the rule does), and
    - a local backward rule mapping the output gradient to per-parent
      contributions.

    Notes
    -----
    - `backward` must only accumulate into the tensors returned by
      `parents()`. It must never call a parent's own `grad_fn`.
    - Instances are immutable after construction; the same rule may be run
      on repeated backward passes.
    """

    @abstractmethod
    def parents(self) -> Sequence[ITensor]:
        """
        Return the distinct tensors this rule writes gradient into.

        Returns
        -------
        Sequence[ITensor]
            Operand tensors that require gradients, deduplicated by storage,
            in operand order.
        """
        ...

    @abstractmethod
    def backward(self, grad_out: np.ndarray) -> None:
        """
        Accumulate the local gradient contributions into each parent.

        Parameters
        ----------
        grad_out : np.ndarray
            Flat gradient of the root w.r.t. this rule's output, one entry per
            output element in row-major order.
        """
        ...

    @property
    def name(self) -> str:
        """
        Return a short display name for this rule (e.g., ``"AddGradFn"``).
        """
        return type(self).__name__

    def __repr__(self) -> str:
        return f"<{self.name}>"
