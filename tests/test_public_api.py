from unittest import TestCase
import unittest
import numpy as np

import src.keygrad as keygrad
from src.keygrad.domain import ITensor


class TestPublicApi(TestCase):
    def test_exports(self):
        for name in keygrad.__all__:
            self.assertTrue(hasattr(keygrad, name), name)

    def test_tensor_satisfies_protocol(self):
        self.assertIsInstance(keygrad.tensor((2,)), ITensor)

    def test_errors_subclass_builtins(self):
        self.assertTrue(issubclass(keygrad.ShapeMismatchError, ValueError))
        self.assertTrue(issubclass(keygrad.IndexRankError, IndexError))
        self.assertTrue(issubclass(keygrad.BroadcastError, ValueError))
        self.assertTrue(issubclass(keygrad.DivideByZeroError, ZeroDivisionError))

    def test_end_to_end(self):
        a = keygrad.tensor((2, 2), [1, 2, 3, 4], requires_grad=True)
        b = keygrad.tensor((2, 1), [10, 20], requires_grad=True)
        out = keygrad.mul(a, b)
        keygrad.backward(out, [1, 1, 1, 1])
        np.testing.assert_array_equal(a.grad, [[10, 10], [20, 20]])
        np.testing.assert_array_equal(b.grad, [[3], [7]])


if __name__ == "__main__":
    unittest.main()
