"""
Reverse-mode backward engine.

`backward(root, seed)` propagates a seed gradient from `root` to every tensor
in the graph behind it. The pass has three phases:

1) Discovery. An iterative depth-first traversal from `root` over `grad_fn`
   parents visits each distinct storage once and emits it in post-order, so
   every node appears after all nodes reachable through it.

2) Fan-in accounting. Each discovered node's `pending_dependents` counter is
   set to the number of distinct discovered consumers that list it as a
   parent.

3) Propagation. A FIFO queue is seeded with `root` (Kahn's algorithm over the
   consumer -> producer edges). A popped node runs its `grad_fn` with its
   current gradient, which accumulates into each parent; each parent's
   counter is decremented and the parent is enqueued when it reaches zero.
   A node therefore only propagates once every consumer has contributed.

Gradient buffer policy
----------------------
- Interior nodes (tensors with a `grad_fn`) are zeroed at the start of each
  pass, so they only ever hold the gradient of the current pass.
- The seed is then accumulated into the root. For an interior root this is a
  fresh seed; for a leaf root it adds onto what the leaf already holds.
- Leaves accumulate across passes until `zero_grad()` is called.
"""

from __future__ import annotations

import warnings
from collections import deque
from typing import Any, Optional

import numpy as np

from ...domain._errors import ShapeMismatchError
from ...domain._tensor import ITensor
from ..tensor._tensor import Tensor


def _resolve_seed(root: ITensor, seed: Optional[Any]) -> np.ndarray:
    """
    Validate the seed gradient and return it as a flat array.

    Raises
    ------
    ShapeMismatchError
        If no seed is given for a multi-element root, or the seed size does
        not match the root's element count.
    """
    n = root.numel()
    if seed is None:
        if n != 1:
            raise ShapeMismatchError(
                "A seed gradient must be provided for non-scalar tensors. "
                f"Got shape={root.shape}.",
                expected=1,
                actual=n,
            )
        return np.ones(1, dtype=np.float64)

    if isinstance(seed, Tensor):
        seed = seed.data
    arr = np.asarray(seed, dtype=np.float64).reshape(-1)
    if arr.shape[0] != n:
        raise ShapeMismatchError(
            f"Seed size mismatch: expected {n} element(s), got {arr.shape[0]}.",
            expected=n,
            actual=arr.shape[0],
        )
    return arr


def discover(root: ITensor) -> list[ITensor]:
    """
    Collect the graph behind `root` in depth-first post-order.

    Parameters
    ----------
    root : ITensor
        Tensor to start from.

    Returns
    -------
    list[ITensor]
        One handle per distinct storage. Every node appears after all of the
        nodes reachable through its `grad_fn`; `root` is last.
    """
    order: list[ITensor] = []
    visited: set[int] = set()
    stack: list[tuple[ITensor, bool]] = [(root, False)]

    while stack:
        t, expanded = stack.pop()
        if expanded:
            order.append(t)
            continue

        sid = id(t._storage)
        if sid in visited:
            continue
        visited.add(sid)

        stack.append((t, True))
        grad_fn = t.grad_fn
        if grad_fn is not None:
            for p in reversed(list(grad_fn.parents())):
                if id(p._storage) not in visited:
                    stack.append((p, False))

    return order


def count_dependents(order: list[ITensor]) -> None:
    """
    Set `pending_dependents` on every node of a discovered subgraph.

    Each node's counter becomes the number of distinct discovered consumers
    whose `grad_fn` lists it as a parent.
    """
    for t in order:
        t._storage.pending_dependents = 0
    for t in order:
        grad_fn = t.grad_fn
        if grad_fn is None:
            continue
        for p in grad_fn.parents():
            p._storage.pending_dependents += 1


def propagate(root: ITensor) -> int:
    """
    Run Kahn-ordered gradient propagation from `root`.

    Expects `count_dependents` to have been run on the subgraph and the root
    to already hold its seed.

    Returns
    -------
    int
        Number of nodes processed.
    """
    queue: deque[ITensor] = deque([root])
    processed = 0

    while queue:
        t = queue.popleft()
        processed += 1

        s = t._storage
        grad_fn = s.grad_fn
        if grad_fn is None:
            continue

        grad_fn.backward(s.ensure_grad())

        for p in grad_fn.parents():
            ps = p._storage
            ps.pending_dependents -= 1
            if ps.pending_dependents == 0:
                queue.append(p)

    return processed


def backward(root: ITensor, seed: Optional[Any] = None) -> None:
    """
    Backpropagate from `root`, accumulating gradients into the graph.

    Parameters
    ----------
    root : ITensor
        Output tensor to differentiate.
    seed : Optional[Tensor | array-like], optional
        Gradient w.r.t. `root`, with `root.numel()` elements. A Tensor seed
        contributes its flat values. Defaults to 1.0
        for single-element roots.

    Raises
    ------
    ShapeMismatchError
        If the seed is missing for a multi-element root or has the wrong size.

    Notes
    -----
    If `root` does not require gradients this emits a `RuntimeWarning` and
    returns without touching any buffer.
    """
    if not root.requires_grad:
        warnings.warn(
            "backward() called on a tensor that does not require grad; nothing to do.",
            RuntimeWarning,
            stacklevel=3,
        )
        return

    seed_arr = _resolve_seed(root, seed)

    order = discover(root)
    for t in order:
        if t.grad_fn is not None:
            t._storage.ensure_grad().fill(0.0)
    root._accumulate_grad_(seed_arr)

    count_dependents(order)
    processed = propagate(root)

    if processed != len(order):
        raise RuntimeError(
            f"Backward visited {processed} of {len(order)} discovered nodes; "
            "the graph was mutated during the pass."
        )
