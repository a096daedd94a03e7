from unittest import TestCase
import unittest
import numpy as np

from src.keygrad.infrastructure.tensor._tensor import Tensor
from src.keygrad.infrastructure._functional import (
    tensor,
    add,
    sub,
    mul,
    div,
    neg,
    matmul,
    transpose,
)
from src.keygrad.infrastructure.autograd._grad_fns import (
    AddGradFn,
    SubGradFn,
    MulGradFn,
    DivGradFn,
    NegGradFn,
    MatMulGradFn,
    TransposeGradFn,
)
from src.keygrad.domain._errors import (
    BroadcastError,
    DivideByZeroError,
    ShapeMismatchError,
)


class _TensorFactoryMixin:
    def _tensor_from_numpy(self, arr, requires_grad: bool = False) -> Tensor:
        arr = np.asarray(arr, dtype=np.float32)
        return Tensor(arr.shape, arr, requires_grad=requires_grad)


class TestBroadcastForward(TestCase, _TensorFactoryMixin):
    def test_ops_match_numpy_after_broadcast(self):
        rng = np.random.default_rng(1)
        for a_shape, b_shape in [((2, 3), (3,)), ((3, 1), (1, 4)), ((2, 2), (2, 2))]:
            a_np = rng.standard_normal(a_shape).astype(np.float32)
            b_np = (rng.random(b_shape) + 1.0).astype(np.float32)
            a = self._tensor_from_numpy(a_np)
            b = self._tensor_from_numpy(b_np)

            for out, expected in [
                (a + b, a_np + b_np),
                (a - b, a_np - b_np),
                (a * b, a_np * b_np),
                (a / b, a_np / b_np),
            ]:
                self.assertEqual(out.shape, expected.shape)
                np.testing.assert_allclose(out.to_numpy(), expected, rtol=1e-6)

    def test_functional_and_operator_forms_agree(self):
        a = self._tensor_from_numpy([[1, 2], [3, 4]])
        b = self._tensor_from_numpy([[10], [20]])
        np.testing.assert_array_equal(add(a, b).to_numpy(), (a + b).to_numpy())
        np.testing.assert_array_equal(sub(a, b).to_numpy(), (a - b).to_numpy())
        np.testing.assert_array_equal(mul(a, b).to_numpy(), [[10, 20], [60, 80]])
        np.testing.assert_array_equal(div(a, b).to_numpy(), (a / b).to_numpy())
        np.testing.assert_array_equal(neg(a).to_numpy(), (-a).to_numpy())

    def test_incompatible_shapes_raise(self):
        a = Tensor((2, 3))
        b = Tensor((4, 3))
        for op in (add, sub, mul, div):
            with self.assertRaises(BroadcastError):
                op(a, b)

    def test_division_by_zero_element_raises(self):
        a = self._tensor_from_numpy([1, 2, 3])
        b = self._tensor_from_numpy([1, 0, 1])
        with self.assertRaises(DivideByZeroError):
            _ = a / b

    def test_operands_are_not_modified(self):
        a = self._tensor_from_numpy([1, 2])
        b = self._tensor_from_numpy([3, 4])
        _ = a + b
        np.testing.assert_array_equal(a.to_numpy(), [1, 2])
        np.testing.assert_array_equal(b.to_numpy(), [3, 4])


class TestScalarVariants(TestCase, _TensorFactoryMixin):
    def test_tensor_scalar(self):
        a = self._tensor_from_numpy([2, 4])
        np.testing.assert_array_equal((a + 1).to_numpy(), [3, 5])
        np.testing.assert_array_equal((a - 1).to_numpy(), [1, 3])
        np.testing.assert_array_equal((a * 3).to_numpy(), [6, 12])
        np.testing.assert_array_equal((a / 2).to_numpy(), [1, 2])

    def test_scalar_tensor(self):
        a = self._tensor_from_numpy([2, 4])
        np.testing.assert_array_equal((1 + a).to_numpy(), [3, 5])
        np.testing.assert_array_equal((10 - a).to_numpy(), [8, 6])
        np.testing.assert_array_equal((3 * a).to_numpy(), [6, 12])
        np.testing.assert_array_equal((8 / a).to_numpy(), [4, 2])

    def test_scalar_result_keeps_tensor_shape(self):
        a = Tensor((2, 3))
        self.assertEqual((a + 1.0).shape, (2, 3))
        self.assertEqual((2.0 * a).shape, (2, 3))

    def test_divide_by_zero_scalar_raises(self):
        a = self._tensor_from_numpy([1, 2])
        with self.assertRaises(DivideByZeroError):
            _ = a / 0
        with self.assertRaises(DivideByZeroError):
            _ = 1.0 / self._tensor_from_numpy([1, 0])

    def test_scalar_variants_attach_grad_fn(self):
        a = self._tensor_from_numpy([1, 2], requires_grad=True)
        self.assertIsInstance((a + 1).grad_fn, AddGradFn)
        self.assertIsInstance((1 - a).grad_fn, SubGradFn)
        self.assertIsInstance((a * 2).grad_fn, MulGradFn)
        self.assertIsInstance((2 / a).grad_fn, DivGradFn)
        self.assertTrue((a * 2).requires_grad)

    def test_unsupported_operand_raises(self):
        a = Tensor((2,))
        with self.assertRaises(TypeError):
            add(a, "x")
        with self.assertRaises(TypeError):
            add(1.0, 2.0)


class TestGradFnAttachment(TestCase, _TensorFactoryMixin):
    def test_no_grad_fn_when_no_operand_requires_grad(self):
        a = Tensor((2,))
        b = Tensor((2,))
        for out in (a + b, a - b, a * b, a / Tensor((2,), 1.0), -a):
            self.assertFalse(out.requires_grad)
            self.assertIsNone(out.grad_fn)
            self.assertTrue(out.is_leaf)

    def test_grad_fn_when_any_operand_requires_grad(self):
        a = Tensor((2,), 1.0, requires_grad=True)
        b = Tensor((2,), 2.0)
        cases = [
            (a + b, AddGradFn),
            (b - a, SubGradFn),
            (a * b, MulGradFn),
            (b / a, DivGradFn),
            (-a, NegGradFn),
        ]
        for out, cls in cases:
            self.assertTrue(out.requires_grad)
            self.assertIsInstance(out.grad_fn, cls)
            self.assertFalse(out.is_leaf)

    def test_grad_fn_parents_are_requiring_grad_operands(self):
        a = Tensor((2,), requires_grad=True)
        b = Tensor((2,))
        parents = (a * b).grad_fn.parents()
        self.assertEqual(len(parents), 1)
        self.assertTrue(parents[0].shares_storage(a))

    def test_grad_fn_parents_are_deduplicated(self):
        a = Tensor((2,), requires_grad=True)
        self.assertEqual(len((a + a).grad_fn.parents()), 1)

    def test_result_owns_fresh_storage(self):
        a = Tensor((2,), requires_grad=True)
        out = a + 1
        self.assertFalse(out.shares_storage(a))


class TestMatmulAndTranspose(TestCase, _TensorFactoryMixin):
    def test_matmul_reference_values(self):
        A = tensor((2, 3), [1, 2, 3, 4, 5, 6])
        B = tensor((3, 2), [7, 8, 9, 10, 11, 12])
        C = A @ B
        self.assertEqual(C.shape, (2, 2))
        np.testing.assert_array_equal(C.data, [58, 64, 139, 154])
        np.testing.assert_array_equal(matmul(A, B).data, C.data)

    def test_matmul_matches_numpy(self):
        rng = np.random.default_rng(2)
        a_np = rng.standard_normal((3, 4)).astype(np.float32)
        b_np = rng.standard_normal((4, 2)).astype(np.float32)
        out = self._tensor_from_numpy(a_np).matmul(self._tensor_from_numpy(b_np))
        np.testing.assert_allclose(out.to_numpy(), a_np @ b_np, rtol=1e-5, atol=1e-6)

    def test_matmul_rejects_non_2d(self):
        a = Tensor((2, 3, 4))
        b = Tensor((4, 5))
        with self.assertRaises(ShapeMismatchError):
            _ = a @ b
        with self.assertRaises(ShapeMismatchError):
            _ = b @ Tensor((5,))

    def test_matmul_inner_dim_mismatch_raises(self):
        with self.assertRaises(ShapeMismatchError):
            _ = Tensor((3, 4)) @ Tensor((5, 2))

    def test_matmul_attaches_grad_fn(self):
        a = Tensor((2, 3), requires_grad=True)
        out = a @ Tensor((3, 1))
        self.assertIsInstance(out.grad_fn, MatMulGradFn)

    def test_transpose(self):
        a = tensor((2, 3), [1, 2, 3, 4, 5, 6], requires_grad=True)
        t = a.T
        self.assertEqual(t.shape, (3, 2))
        np.testing.assert_array_equal(t.to_numpy(), [[1, 4], [2, 5], [3, 6]])
        self.assertIsInstance(t.grad_fn, TransposeGradFn)
        np.testing.assert_array_equal(transpose(a).to_numpy(), t.to_numpy())

    def test_transpose_rejects_non_2d(self):
        with self.assertRaises(ShapeMismatchError):
            Tensor((4,)).transpose()


if __name__ == "__main__":
    unittest.main()
