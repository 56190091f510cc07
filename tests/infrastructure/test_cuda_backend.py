# tests/infrastructure/test_cuda_backend.py
"""
Unit tests for the ctypes CUDA backend.

The fake-library tests run everywhere and check device selection, the
null handle for zero-byte buffers and synchronization policy. The native
tests skip unless GPUARRAY_CUDA_LIB points at a loadable library.
"""

import os
import unittest
from unittest import TestCase
from unittest.mock import MagicMock

import numpy as np
from numpy.testing import assert_allclose

from gpuarray import (
    Array,
    Context,
    CudaBackend,
    DTypeMismatchError,
    IBackend,
    Tensor,
    TensorMode,
    matmul,
)
from gpuarray.infrastructure import CudaLib, load_gpuarray_cuda_native


def _fake_lib() -> MagicMock:
    lib = MagicMock(spec=CudaLib)
    lib.cuda_malloc.side_effect = iter(range(0x1000, 0x100000, 0x100))
    return lib


class TestCudaBackendWithFakeLib(TestCase):
    def test_satisfies_protocol(self):
        self.assertIsInstance(CudaBackend(_fake_lib()), IBackend)

    def test_allocate_selects_device(self):
        lib = _fake_lib()
        backend = CudaBackend(lib, device_index=2)
        h = backend.allocate(64)
        self.assertEqual(h, 0x1000)
        lib.cuda_set_device.assert_called_with(2)
        lib.cuda_malloc.assert_called_once_with(64)

    def test_zero_byte_allocation_is_null_handle(self):
        lib = _fake_lib()
        backend = CudaBackend(lib)
        self.assertEqual(backend.allocate(0), 0)
        backend.upload(0, np.empty(0, dtype=np.float32))
        backend.readback(0, np.empty(0, dtype=np.float32))
        backend.release(0)
        lib.cuda_malloc.assert_not_called()
        lib.cuda_memcpy_h2d.assert_not_called()
        lib.cuda_memcpy_d2h.assert_not_called()
        lib.cuda_free.assert_not_called()

    def test_sync_after_submission(self):
        lib = _fake_lib()
        backend = CudaBackend(lib, sync=True)
        backend.upload(0x1000, np.zeros(4, dtype=np.float32))
        lib.cuda_synchronize.assert_called_once_with()

        lib = _fake_lib()
        backend = CudaBackend(lib, sync=False)
        backend.upload(0x1000, np.zeros(4, dtype=np.float32))
        lib.cuda_synchronize.assert_not_called()

    def test_readback_always_drains_queue(self):
        lib = _fake_lib()
        backend = CudaBackend(lib, sync=False)
        out = np.empty(4, dtype=np.float32)
        backend.readback(0x1000, out)
        lib.cuda_synchronize.assert_called_once_with()
        lib.cuda_memcpy_d2h.assert_called_once_with(out, 0x1000)

    def test_matmul_forwards_dims(self):
        lib = _fake_lib()
        backend = CudaBackend(lib)
        backend.matmul(1, 2, 3, 4, 5, 6, np.dtype(np.float32))
        lib.matmul.assert_called_once_with(
            a_dev=1, b_dev=2, c_dev=3, m=4, n=5, k=6, dtype=np.dtype(np.float32)
        )

    def test_context_rejects_unsupported_dtype(self):
        ctx = Context(backend=CudaBackend(_fake_lib()))
        a = Tensor.from_array(ctx, Array((2, 2), 1, dtype=np.int32), TensorMode.In)
        c = Tensor.new(ctx, (2, 2), TensorMode.Out, dtype=np.int32)
        with self.assertRaises(DTypeMismatchError):
            matmul(ctx, a, a, c)
        ctx.close()


class TestCudaLibStatus(TestCase):
    def test_non_zero_status_raises(self):
        raw = MagicMock()
        raw.gpuarray_cuda_synchronize.return_value = 3
        with self.assertRaises(RuntimeError):
            CudaLib(raw).cuda_synchronize()

    def test_matmul_rejects_integer_dtype(self):
        with self.assertRaises(TypeError):
            CudaLib(MagicMock()).matmul(
                a_dev=1, b_dev=2, c_dev=3, m=1, n=1, k=1, dtype=np.int32
            )

    def test_loader_requires_path(self):
        with self.assertRaises(FileNotFoundError):
            load_gpuarray_cuda_native("/nonexistent/libgpuarray_cuda.so")


class TestCudaBackendNative(TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        path = os.environ.get("GPUARRAY_CUDA_LIB", "")
        if not path:
            raise unittest.SkipTest("GPUARRAY_CUDA_LIB not set; CUDA tests skipped.")
        try:
            cls.backend = CudaBackend.load(path)
            cls.backend.synchronize()
        except Exception as e:
            raise unittest.SkipTest(f"CUDA native library not available: {e}")

    def test_round_trip(self):
        with Context(backend=self.backend) as ctx:
            ref = np.arange(12, dtype=np.float32).reshape(3, 4)
            with Tensor.from_array(ctx, ref, TensorMode.Mut) as t:
                assert_allclose(t.get(ctx).to_numpy(), ref)

    def test_matmul(self):
        rng = np.random.default_rng(0)
        with Context(backend=self.backend) as ctx:
            for dtype, rtol in ((np.float32, 1e-4), (np.float64, 1e-10)):
                A = rng.standard_normal((8, 16)).astype(dtype)
                B = rng.standard_normal((16, 9)).astype(dtype)
                a = Tensor.from_array(ctx, A, TensorMode.In)
                b = Tensor.from_array(ctx, B, TensorMode.In)
                c = Tensor.new(ctx, (8, 9), TensorMode.Out, dtype=dtype)
                matmul(ctx, a, b, c)
                assert_allclose(c.get(ctx).to_numpy(), A @ B, rtol=rtol, atol=rtol)
                for t in (a, b, c):
                    t.release()


if __name__ == "__main__":
    unittest.main()
