"""
Backward rules for the built-in differentiable operations.

Each class below is a concrete `GradFn` attached by a functional dispatcher to
the output of one operation. It captures the operand handles (sharing their
storage, so the operands stay alive as long as the rule does) and the shapes
the operands had when the operation ran.

Elementwise rules (Add, Sub, Neg, Mul, Div) share one reduction scheme: the
contribution for every output element is scattered back to the source element
that produced it (see `broadcast_source_indices` / `scatter_add`), so an
operand that was broadcast along a dimension receives the sum over that
dimension. The matrix rules (MatMul, Transpose) are expressed with the 2-D CPU
kernels.

Every `backward` only accumulates into the immediate parents. Propagating any
further is the backward engine's responsibility.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from ...domain._errors import DivideByZeroError
from ...domain._grad_fn import GradFn
from ...domain._tensor import ITensor
from ..ops.broadcast_cpu import broadcast_source_indices, scatter_add
from ..ops.matmul_cpu import matmul2d_cpu, transpose2d_cpu


def _distinct_requiring_grad(operands: Sequence[ITensor]) -> list[ITensor]:
    """
    Filter operands to those requiring grad, keeping one handle per storage.
    """
    seen: set[int] = set()
    out: list[ITensor] = []
    for t in operands:
        if not t.requires_grad:
            continue
        sid = id(t._storage)
        if sid in seen:
            continue
        seen.add(sid)
        out.append(t)
    return out


class _CapturingGradFn(GradFn):
    """
    Common base for rules that capture a fixed tuple of operands.

    Attributes
    ----------
    operands : tuple[ITensor, ...]
        Operand handles, in operation argument order.
    operand_shapes : tuple[tuple[int, ...], ...]
        Operand shapes at the time the operation ran.
    out_shape : tuple[int, ...]
        Output shape of the operation.
    """

    def __init__(self, *operands: ITensor, out_shape: Sequence[int]) -> None:
        self.operands = tuple(operands)
        self.operand_shapes = tuple(tuple(t.shape) for t in operands)
        self.out_shape = tuple(out_shape)

    def parents(self) -> Sequence[ITensor]:
        return _distinct_requiring_grad(self.operands)


class _ElementwiseGradFn(_CapturingGradFn):
    """
    Base for broadcast elementwise rules.

    Subclasses implement `_local_grads`, returning one flat per-output-element
    contribution per operand (or None when that operand gets nothing). This
    base maps each contribution back onto its operand's own shape.
    """

    def __init__(self, *operands: ITensor, out_shape: Sequence[int]) -> None:
        super().__init__(*operands, out_shape=out_shape)
        self._index_maps: Optional[tuple[np.ndarray, ...]] = None

    def index_maps(self) -> tuple[np.ndarray, ...]:
        """
        Return, per operand, the source index of every output element.

        Computed on first use and cached; shapes are fixed at construction.
        """
        if self._index_maps is None:
            self._index_maps = tuple(
                broadcast_source_indices(self.out_shape, shape)
                for shape in self.operand_shapes
            )
        return self._index_maps

    def _local_grads(self, grad_out: np.ndarray) -> Sequence[Optional[np.ndarray]]:
        raise NotImplementedError

    def backward(self, grad_out: np.ndarray) -> None:
        grad_out = np.asarray(grad_out, dtype=np.float64).reshape(-1)
        maps = self.index_maps()
        for operand, index_map, local in zip(
            self.operands, maps, self._local_grads(grad_out)
        ):
            if local is None or not operand.requires_grad:
                continue
            operand._accumulate_grad_(scatter_add(operand.numel(), index_map, local))

    def _gathered(self, i: int) -> np.ndarray:
        """
        Return operand `i`'s values expanded to one entry per output element.
        """
        return self.operands[i].data.astype(np.float64)[self.index_maps()[i]]


class AddGradFn(_ElementwiseGradFn):
    """
    Backward rule for ``out = a + b``.

    Both parents receive the output gradient, reduced onto their own shape.
    """

    def __init__(self, a: ITensor, b: ITensor, out_shape: Sequence[int]) -> None:
        super().__init__(a, b, out_shape=out_shape)

    def _local_grads(self, grad_out):
        return grad_out, grad_out


class SubGradFn(_ElementwiseGradFn):
    """
    Backward rule for ``out = a - b``.

    `a` receives the reduced gradient, `b` the reduced negated gradient.
    """

    def __init__(self, a: ITensor, b: ITensor, out_shape: Sequence[int]) -> None:
        super().__init__(a, b, out_shape=out_shape)

    def _local_grads(self, grad_out):
        return grad_out, -grad_out


class NegGradFn(_ElementwiseGradFn):
    """
    Backward rule for ``out = -a``.
    """

    def __init__(self, a: ITensor) -> None:
        super().__init__(a, out_shape=a.shape)

    def _local_grads(self, grad_out):
        return (-grad_out,)


class MulGradFn(_ElementwiseGradFn):
    """
    Backward rule for ``out = a * b``.

    For every output position `i` with broadcast sources `ia`, `ib`:

        grad_a[ia] += g[i] * b[ib]
        grad_b[ib] += g[i] * a[ia]
    """

    def __init__(self, a: ITensor, b: ITensor, out_shape: Sequence[int]) -> None:
        super().__init__(a, b, out_shape=out_shape)

    def _local_grads(self, grad_out):
        a, b = self.operands
        ga = grad_out * self._gathered(1) if a.requires_grad else None
        gb = grad_out * self._gathered(0) if b.requires_grad else None
        return ga, gb


class DivGradFn(_ElementwiseGradFn):
    """
    Backward rule for ``out = a / b``.

    For every output position `i` with broadcast sources `ia`, `ib`:

        grad_a[ia] += g[i] / b[ib]
        grad_b[ib] += g[i] * (-a[ia] / b[ib]^2)

    Raises
    ------
    DivideByZeroError
        If a divisor element is exactly zero when the rule runs.
    """

    def __init__(self, a: ITensor, b: ITensor, out_shape: Sequence[int]) -> None:
        super().__init__(a, b, out_shape=out_shape)

    def _local_grads(self, grad_out):
        a, b = self.operands
        bv = self._gathered(1)
        if np.any(bv == 0):
            raise DivideByZeroError("div backward")
        ga = grad_out / bv if a.requires_grad else None
        gb = grad_out * (-self._gathered(0) / (bv * bv)) if b.requires_grad else None
        return ga, gb


class MatMulGradFn(_CapturingGradFn):
    """
    Backward rule for ``out = a @ b`` with ``a: (m, k)``, ``b: (k, n)``.

    With ``g`` the ``(m, n)`` output gradient:

        grad_a = g @ b^T
        grad_b = a^T @ g
    """

    def __init__(self, a: ITensor, b: ITensor) -> None:
        (m, _), (_, n) = a.shape, b.shape
        super().__init__(a, b, out_shape=(m, n))

    def backward(self, grad_out: np.ndarray) -> None:
        a, b = self.operands
        a_shape, b_shape = self.operand_shapes
        g = np.asarray(grad_out).reshape(-1)

        if a.requires_grad:
            bt, bt_shape = transpose2d_cpu(b.data, b_shape)
            ga, _ = matmul2d_cpu(g, self.out_shape, bt, bt_shape)
            a._accumulate_grad_(ga)

        if b.requires_grad:
            at, at_shape = transpose2d_cpu(a.data, a_shape)
            gb, _ = matmul2d_cpu(at, at_shape, g, self.out_shape)
            b._accumulate_grad_(gb)


class TransposeGradFn(_CapturingGradFn):
    """
    Backward rule for the 2-D transpose ``out = a^T``: ``grad_a += g^T``.
    """

    def __init__(self, a: ITensor) -> None:
        m, n = a.shape
        super().__init__(a, out_shape=(n, m))

    def backward(self, grad_out: np.ndarray) -> None:
        (a,) = self.operands
        if not a.requires_grad:
            return
        ga, _ = transpose2d_cpu(np.asarray(grad_out).reshape(-1), self.out_shape)
        a._accumulate_grad_(ga)
