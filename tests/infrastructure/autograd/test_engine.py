from unittest import TestCase
import unittest
import warnings
import numpy as np

from src.keygrad.infrastructure.tensor._tensor import Tensor
from src.keygrad.infrastructure._functional import tensor, backward as functional_backward
from src.keygrad.infrastructure.autograd._engine import (
    backward,
    discover,
    count_dependents,
    propagate,
)
from src.keygrad.domain._errors import ShapeMismatchError


def storages(ts):
    return [t._storage for t in ts]


class TestDiscovery(TestCase):
    def test_leaf_root(self):
        a = tensor((1,), [1.0], requires_grad=True)
        order = discover(a)
        self.assertEqual(storages(order), [a._storage])

    def test_post_order_producers_before_consumers(self):
        a = tensor((2,), [1, 2], requires_grad=True)
        b = tensor((2,), [3, 4], requires_grad=True)
        c = a * b
        d = c + a
        order = storages(discover(d))

        self.assertEqual(order[-1], d._storage)
        self.assertEqual(len(order), 4)
        self.assertEqual(len(set(map(id, order))), 4)
        self.assertLess(order.index(a._storage), order.index(c._storage))
        self.assertLess(order.index(b._storage), order.index(c._storage))
        self.assertLess(order.index(c._storage), order.index(d._storage))

    def test_skips_operands_that_do_not_require_grad(self):
        a = tensor((2,), [1, 2], requires_grad=True)
        k = tensor((2,), [3, 4])
        d = a * k
        self.assertEqual(set(map(id, storages(discover(d)))), {id(a._storage), id(d._storage)})

    def test_deep_chain_does_not_hit_recursion_limit(self):
        x = tensor((1,), [0.0], requires_grad=True)
        y = x
        for _ in range(5000):
            y = y + 1.0
        self.assertEqual(len(discover(y)), 5001)
        y.backward()
        np.testing.assert_array_equal(x.grad, [1.0])


class TestFanInAccounting(TestCase):
    def test_counts_distinct_consumers(self):
        a = tensor((1,), [1.0], requires_grad=True)
        b = tensor((1,), [2.0], requires_grad=True)
        c = a + b
        d = c + c
        e = d * a
        order = discover(e)
        count_dependents(order)

        self.assertEqual(e._storage.pending_dependents, 0)
        self.assertEqual(d._storage.pending_dependents, 1)
        # c is used twice by d, but d is one consumer
        self.assertEqual(c._storage.pending_dependents, 1)
        # a is consumed by c and e
        self.assertEqual(a._storage.pending_dependents, 2)
        self.assertEqual(b._storage.pending_dependents, 1)

    def test_propagate_visits_every_node_once(self):
        a = tensor((1,), [1.0], requires_grad=True)
        c = a * a
        d = c + a
        order = discover(d)
        count_dependents(order)
        d._accumulate_grad_(np.ones(1))
        self.assertEqual(propagate(d), len(order))
        for t in order:
            self.assertEqual(t._storage.pending_dependents, 0)


class TestBackwardSeeding(TestCase):
    def test_scalar_root_default_seed(self):
        a = tensor((), 3.0, requires_grad=True)
        out = a * a
        out.backward()
        np.testing.assert_allclose(a.grad, 6.0)

    def test_non_scalar_root_without_seed_raises(self):
        a = tensor((2,), [1, 2], requires_grad=True)
        with self.assertRaises(ShapeMismatchError):
            (a * 2).backward()

    def test_seed_size_mismatch_raises(self):
        a = tensor((2,), [1, 2], requires_grad=True)
        with self.assertRaises(ShapeMismatchError):
            (a * 2).backward([1.0, 1.0, 1.0])

    def test_seed_forms(self):
        for seed in ([2.0, 3.0], np.array([[2.0], [3.0]]), Tensor((2,), [2.0, 3.0])):
            a = tensor((2,), [1, 2], requires_grad=True)
            (a * 2).backward(seed)
            np.testing.assert_array_equal(a.grad, [4.0, 6.0])

    def test_engine_accepts_tensor_seed(self):
        a = tensor((2,), [1, 2], requires_grad=True)
        backward(a * 2, Tensor((2,), [1.0, 3.0]))
        np.testing.assert_array_equal(a.grad, [2.0, 6.0])

        b = tensor((2,), [1, 2], requires_grad=True)
        with self.assertRaises(ShapeMismatchError):
            backward(b * 2, Tensor((3,), 1.0))

    def test_root_without_requires_grad_is_noop_with_warning(self):
        a = tensor((1,), [1.0])
        b = a * 2
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            b.backward()
        self.assertTrue(any(issubclass(w.category, RuntimeWarning) for w in caught))
        self.assertIsNone(a.grad)
        self.assertIsNone(b.grad)

    def test_interior_root_holds_seed(self):
        a = tensor((2,), [1, 2], requires_grad=True)
        out = a * 3
        out.backward([1.0, 2.0])
        np.testing.assert_array_equal(out.grad, [1.0, 2.0])

    def test_leaf_root_accumulates_seed(self):
        a = tensor((1,), [5.0], requires_grad=True)
        a.backward()
        a.backward()
        np.testing.assert_array_equal(a.grad, [2.0])

    def test_functional_backward(self):
        a = tensor((1,), [2.0], requires_grad=True)
        functional_backward(a * a)
        np.testing.assert_array_equal(a.grad, [4.0])


class TestBackwardPropagation(TestCase):
    def test_diamond_fan_out_sums_contributions(self):
        a = tensor((1,), [1.0], requires_grad=True)
        b = tensor((1,), [2.0], requires_grad=True)
        c = a + b
        d = c + c
        d.backward()
        np.testing.assert_array_equal(a.grad, [2.0])
        np.testing.assert_array_equal(b.grad, [2.0])
        np.testing.assert_array_equal(c.grad, [2.0])

    def test_interior_node_waits_for_all_consumers(self):
        # y = (x * 2) used by two branches; dL/dx = 2 * (3 + 5)
        x = tensor((1,), [1.0], requires_grad=True)
        y = x * 2
        p = y * 3
        q = y * 5
        loss = p + q
        loss.backward()
        np.testing.assert_array_equal(x.grad, [16.0])

    def test_mul_gradient_with_broadcast(self):
        a = tensor((2, 2), [1, 2, 3, 4], requires_grad=True)
        b = tensor((2, 1), [10, 20], requires_grad=True)
        g = a * b
        np.testing.assert_array_equal(g.to_numpy(), [[10, 20], [60, 80]])
        g.backward(np.ones(4))
        np.testing.assert_array_equal(a.grad, [[10, 10], [20, 20]])
        np.testing.assert_array_equal(b.grad, [[3], [7]])

    def test_div_gradient_with_broadcast(self):
        a = tensor((3,), [10, 20, 30], requires_grad=True)
        b = tensor((1,), [2], requires_grad=True)
        c = a / b
        np.testing.assert_array_equal(c.data, [5, 10, 15])
        c.backward([1, 1, 1])
        np.testing.assert_allclose(a.grad, [0.5, 0.5, 0.5])
        np.testing.assert_allclose(b.grad, [-15.0])

    def test_matmul_gradient(self):
        A = tensor((2, 3), [1, 2, 3, 4, 5, 6], requires_grad=True)
        B = tensor((3, 2), [7, 8, 9, 10, 11, 12], requires_grad=True)
        C = A @ B
        np.testing.assert_array_equal(C.data, [58, 64, 139, 154])
        C.backward(np.ones(4))
        self.assertEqual(A.grad.shape, (2, 3))
        self.assertEqual(B.grad.shape, (3, 2))
        self.assertEqual(A.grad[0, 0], 15.0)
        self.assertEqual(B.grad[0, 0], 5.0)
        np.testing.assert_array_equal(A.grad, [[15, 19, 23], [15, 19, 23]])
        np.testing.assert_array_equal(B.grad, [[5, 5], [7, 7], [9, 9]])

    def test_sub_neg_and_scalar_chain(self):
        x = tensor((2,), [1.0, 2.0], requires_grad=True)
        y = tensor((2,), [3.0, 5.0], requires_grad=True)
        out = -(x - y) * 2 + 1
        out.backward([1.0, 1.0])
        np.testing.assert_array_equal(x.grad, [-2.0, -2.0])
        np.testing.assert_array_equal(y.grad, [2.0, 2.0])

    def test_scalar_divided_by_tensor(self):
        x = tensor((2,), [1.0, 2.0], requires_grad=True)
        (1.0 / x).backward([1.0, 1.0])
        np.testing.assert_allclose(x.grad, [-1.0, -0.25])

    def test_transpose_then_matmul(self):
        rng = np.random.default_rng(4)
        a_np = rng.standard_normal((3, 2)).astype(np.float32)
        b_np = rng.standard_normal((3, 4)).astype(np.float32)
        a = Tensor(a_np.shape, a_np, requires_grad=True)
        b = Tensor(b_np.shape, b_np, requires_grad=True)
        out = a.T @ b
        out.backward(np.ones(8))
        g = np.ones((2, 4), dtype=np.float32)
        np.testing.assert_allclose(a.grad, (g @ b_np.T).T, rtol=1e-5, atol=1e-5)
        np.testing.assert_allclose(b.grad, a_np @ g, rtol=1e-5, atol=1e-5)

    def test_graph_survives_caller_rebinding(self):
        a = tensor((1,), [3.0], requires_grad=True)
        b = tensor((1,), [4.0], requires_grad=True)
        out = a * b
        leaf_a = a.alias()
        a = None
        b = tensor((1,), [100.0], requires_grad=True)
        out.backward()
        np.testing.assert_array_equal(leaf_a.grad, [4.0])
        np.testing.assert_array_equal(b.grad, [0.0])

    def test_zero_size_operand_broadcast_against_one(self):
        a = tensor((0,), [], requires_grad=True)
        b = tensor((1,), [2.0], requires_grad=True)
        out = a * b
        self.assertEqual(out.shape, (0,))
        out.backward([])
        self.assertEqual(a.grad.shape, (0,))
        np.testing.assert_array_equal(b.grad, [0.0])

    def test_frozen_operand_receives_no_grad(self):
        a = tensor((2,), [1, 2], requires_grad=True)
        k = tensor((2,), [3, 4])
        (a * k).backward([1, 1])
        self.assertIsNone(k.grad)
        np.testing.assert_array_equal(a.grad, [3, 4])


class TestRepeatedBackward(TestCase):
    def _build(self):
        a = tensor((2,), [1.0, 2.0], requires_grad=True)
        b = tensor((2,), [3.0, 4.0], requires_grad=True)
        c = a * b
        d = c + c
        return a, b, d

    def test_zero_grad_then_backward_reproduces_gradients(self):
        a, b, d = self._build()
        d.backward([1.0, 1.0])
        first_a, first_b = a.grad, b.grad

        a.zero_grad()
        b.zero_grad()
        d.backward([1.0, 1.0])
        np.testing.assert_array_equal(a.grad, first_a)
        np.testing.assert_array_equal(b.grad, first_b)

    def test_second_backward_without_zero_grad_adds(self):
        a, b, d = self._build()
        d.backward([1.0, 1.0])
        first_a, first_b = a.grad, b.grad

        d.backward([1.0, 1.0])
        np.testing.assert_array_equal(a.grad, 2 * first_a)
        np.testing.assert_array_equal(b.grad, 2 * first_b)

    def test_interior_gradients_reflect_only_latest_pass(self):
        a = tensor((1,), [1.0], requires_grad=True)
        c = a * 3
        d = c * 2
        d.backward()
        d.backward()
        np.testing.assert_array_equal(c.grad, [2.0])
        np.testing.assert_array_equal(a.grad, [12.0])

    def test_backward_from_intermediate_then_output(self):
        a = tensor((1,), [2.0], requires_grad=True)
        c = a * a
        d = c * 3
        c.backward()
        np.testing.assert_array_equal(a.grad, [4.0])
        d.backward()
        np.testing.assert_array_equal(a.grad, [4.0 + 12.0])


if __name__ == "__main__":
    unittest.main()
