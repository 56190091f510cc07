import unittest
from unittest import TestCase

import gpuarray as ga


class TestErrorHierarchy(TestCase):
    def test_everything_derives_from_base(self):
        for cls in [
            ga.ShapeMismatchError,
            ga.InvalidReshapeError,
            ga.IndexOutOfBoundsError,
            ga.AllocationError,
            ga.TransferError,
            ga.TensorReleasedError,
            ga.DispatchError,
            ga.ContextError,
            ga.ContextMismatchError,
            ga.TensorModeError,
            ga.DTypeMismatchError,
        ]:
            self.assertTrue(issubclass(cls, ga.GpuArrayError), msg=cls.__name__)

    def test_builtin_bases(self):
        self.assertTrue(issubclass(ga.ShapeMismatchError, ValueError))
        self.assertTrue(issubclass(ga.InvalidReshapeError, ga.ShapeMismatchError))
        self.assertTrue(issubclass(ga.IndexOutOfBoundsError, IndexError))
        self.assertTrue(issubclass(ga.AllocationError, MemoryError))
        self.assertTrue(issubclass(ga.TensorReleasedError, ga.TransferError))
        self.assertTrue(issubclass(ga.DispatchError, RuntimeError))
        self.assertTrue(issubclass(ga.ContextMismatchError, ga.ContextError))
        self.assertTrue(issubclass(ga.TensorModeError, ValueError))
        self.assertTrue(issubclass(ga.DTypeMismatchError, TypeError))

    def test_invalid_reshape_message(self):
        e = ga.InvalidReshapeError((2, 3), (4,))
        self.assertEqual(str(e), "Failed to reshape array of shape (2, 3) to (4,)")
        self.assertEqual(e.old_shape, (2, 3))
        self.assertEqual(e.new_shape, (4,))

    def test_allocation_error_fields(self):
        e = ga.AllocationError(1024, "host", "limit exceeded")
        self.assertEqual(e.nbytes, 1024)
        self.assertEqual(e.backend, "host")
        self.assertIn("limit exceeded", str(e))

    def test_dispatch_error_kernel(self):
        e = ga.DispatchError("matmul", "boom")
        self.assertEqual(e.kernel, "matmul")
        self.assertEqual(str(e), "matmul dispatch failed: boom")


if __name__ == "__main__":
    unittest.main()
